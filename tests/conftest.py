"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from mcserverctl.config import AppConfig, load_config
from mcserverctl.errors import ServerManagerError
from mcserverctl.lifecycle import ServerManager
from mcserverctl.state import ServerRegistry


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@dataclass
class FakeGateway:
    """In-memory stand-in for :class:`~mcserverctl.providers.DockerProvider`.

    Running containers are tracked by name so tests can simulate a container
    being killed outside of mcserverctl by editing :attr:`running`.
    """

    container_prefix: str = "mc-"
    available: bool = True
    running: set[str] = field(default_factory=set)
    calls: list[tuple[str, str]] = field(default_factory=list)
    failures: dict[str, ServerManagerError] = field(default_factory=dict)

    def _record(self, operation: str, value: object) -> None:
        self.calls.append((operation, str(value)))
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def _container(self, data_path: str | Path) -> str:
        return f"{self.container_prefix}{Path(data_path).name}"

    def operations(self) -> list[str]:
        """Return the recorded operation names in call order."""
        return [operation for operation, _ in self.calls]

    def is_available(self) -> bool:
        self.calls.append(("is_available", ""))
        return self.available

    def up(self, data_path: str | Path) -> None:
        self._record("up", data_path)
        self.running.add(self._container(data_path))

    def down(self, data_path: str | Path) -> None:
        self._record("down", data_path)
        self.running.discard(self._container(data_path))

    def logs(self, data_path: str | Path, *, follow: bool = False) -> None:
        self._record("logs", f"{data_path} follow={follow}")

    def attach(self, container_name: str) -> None:
        self._record("attach", container_name)

    def query_running(self, container_name: str) -> bool:
        self._record("query_running", container_name)
        return container_name in self.running

    def archive_create(self, data_path: str | Path, dest_file: str | Path) -> None:
        self._record("archive_create", dest_file)
        Path(dest_file).write_bytes(b"archive")

    def archive_extract(self, data_path: str | Path, src_file: str | Path) -> None:
        self._record("archive_extract", src_file)


@pytest.fixture
def gateway() -> FakeGateway:
    """Return a fresh fake runtime gateway."""
    return FakeGateway()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Return configuration rooted in a temporary config directory."""
    return load_config(env={}, overrides={"config_dir": str(tmp_path / "mc-servers")})


@pytest.fixture
def manager(app_config: AppConfig, gateway: FakeGateway) -> ServerManager:
    """Return an orchestrator wired to the fake gateway."""
    registry = ServerRegistry(app_config.registry_file)
    server_manager = ServerManager(config=app_config, registry=registry, gateway=gateway)
    server_manager.ensure_layout()
    return server_manager


@pytest.fixture
def create_server(manager: ServerManager) -> Callable[..., object]:
    """Return a helper creating a PAPER server with default settings."""

    def _create(name: str, **overrides: object) -> object:
        options: dict[str, object] = {"server_type": "PAPER"}
        options.update(overrides)
        return manager.create(name, **options)  # type: ignore[arg-type]

    return _create
