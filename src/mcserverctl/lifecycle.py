"""Lifecycle orchestration for managed servers.

:class:`ServerManager` composes the registry, the descriptor generator, and
the runtime gateway. Each server moves through ABSENT -> CONFIGURED ->
RUNNING/STOPPED. Only configuration is persisted; whether a server is running
is always derived from the container runtime.

Write ordering keeps the registry and the filesystem in lockstep:

* create writes the descriptor before committing the registry entry;
* remove deletes the data directory before dropping the registry entry.

A crash between those two removal steps leaves a registry entry pointing at a
missing directory. Readers treat such an entry as already removed, and a
second ``remove`` simply drops it.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .archive import backup_filename
from .config import AppConfig
from .descriptor import descriptor_path, generate, write_descriptor
from .errors import (
    ArchiveNotFound,
    InvalidServerName,
    IoFailure,
    ServerExists,
    ServerManagerError,
    ServerNotFound,
)
from .models import (
    ServerConfig,
    ServerInfo,
    ServerState,
    ServerType,
    utc_now,
    validate_server_name,
)
from .providers.installer import RuntimeInstaller
from .state import ServerRegistry

LOGGER = logging.getLogger(__name__)

DEFAULT_VERSION = "LATEST"
DEFAULT_PORT = "25565"
DEFAULT_MEMORY = "2G"


class RuntimeGateway(Protocol):
    """Operations the orchestrator needs from the container runtime."""

    def is_available(self) -> bool: ...

    def up(self, data_path: str | Path) -> subprocess.CompletedProcess[str]: ...

    def down(self, data_path: str | Path) -> subprocess.CompletedProcess[str]: ...

    def logs(
        self, data_path: str | Path, *, follow: bool = False
    ) -> subprocess.CompletedProcess[str]: ...

    def attach(self, container_name: str) -> subprocess.CompletedProcess[str]: ...

    def query_running(self, container_name: str) -> bool: ...

    def archive_create(self, data_path: str | Path, dest_file: str | Path) -> None: ...

    def archive_extract(self, data_path: str | Path, src_file: str | Path) -> None: ...


@dataclass(slots=True, frozen=True)
class ServerSummary:
    """A registry entry paired with its derived runtime state."""

    name: str
    info: ServerInfo
    state: ServerState
    data_present: bool


@dataclass(slots=True, frozen=True)
class RemoveResult:
    """Outcome of a remove request."""

    removed: bool
    stop_error: str | None = None
    data_missing: bool = False


@dataclass(slots=True, frozen=True)
class RestoreResult:
    """Outcome of a restore."""

    archive: Path
    stop_error: str | None = None


@dataclass(slots=True)
class ServerManager:
    """Implement create/start/stop/remove/backup/restore/status for servers."""

    config: AppConfig
    registry: ServerRegistry
    gateway: RuntimeGateway

    def ensure_layout(self) -> None:
        """Create the config and backup directories on first run."""
        self.registry.ensure_root()
        try:
            self.config.backups_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoFailure(
                f"Failed to create backup directory {self.config.backups_dir}: {exc}"
            ) from exc

    def ensure_runtime(
        self,
        installer: RuntimeInstaller,
        *,
        confirm: Callable[[str], bool],
        notify: Callable[[str], None],
    ) -> bool:
        """Install the container runtime when missing; return ``True`` if attempted."""
        if self.gateway.is_available():
            return False
        LOGGER.info("Container runtime not found; using %s installer", installer.label)
        installer.install(confirm=confirm, notify=notify)
        return True

    # ------------------------------------------------------------------
    # Registry-backed operations
    # ------------------------------------------------------------------
    def create(
        self,
        name: str,
        *,
        server_type: ServerType | str,
        version: str = DEFAULT_VERSION,
        port: str = DEFAULT_PORT,
        memory: str = DEFAULT_MEMORY,
        mod_loader_version: str | None = None,
        java_args: str | None = None,
    ) -> ServerInfo:
        """Register a new server and write its descriptor.

        The loader version only applies to FORGE and FABRIC servers; other
        types ignore it. Modded servers without an explicit loader version get
        the loader's default sentinel.
        """
        validate_server_name(name)
        kind = ServerType(server_type)

        config = self.registry.load()
        if name in config:
            raise ServerExists(name)

        loader = kind.mod_loader
        loader_version: str | None = None
        if loader is not None:
            loader_version = mod_loader_version or loader.default_version

        data_path = self.config.data_path_for(name).absolute()
        self._check_data_path(name, data_path)
        info = ServerInfo(
            version=version,
            port=str(port),
            memory=memory,
            data_path=str(data_path),
            server_type=kind,
            mod_loader=loader,
            mod_loader_version=loader_version,
            java_args=java_args or None,
            created_at=utc_now(),
        )
        document = generate(name, info, self.config)

        created_dir = not data_path.exists()
        try:
            data_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoFailure(f"Failed to create data directory {data_path}: {exc}") from exc

        try:
            write_descriptor(descriptor_path(data_path), document)
            config.servers[name] = info
            self.registry.save(config)
        except ServerManagerError:
            if created_dir:
                shutil.rmtree(data_path, ignore_errors=True)
            raise
        LOGGER.info("Created server %s at %s", name, data_path)
        return info

    def get(self, name: str) -> ServerInfo:
        """Return the registry entry for *name* or raise :class:`ServerNotFound`."""
        info = self.registry.load().get(name)
        if info is None:
            raise ServerNotFound(name)
        return info

    def list_servers(self) -> list[ServerSummary]:
        """Return every registered server with its derived state."""
        summaries: list[ServerSummary] = []
        for name, info in self.registry.load().servers.items():
            summaries.append(
                ServerSummary(
                    name=name,
                    info=info,
                    state=self.status(name),
                    data_present=Path(info.data_path).is_dir(),
                )
            )
        return summaries

    def start(
        self,
        name: str | None = None,
        *,
        progress: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Start *name*, or every registered server when *name* is ``None``.

        The first failure aborts the remaining targets and leaves that
        server's ``last_started`` untouched. *progress* is called with each
        server name once it is up.
        """
        started: list[str] = []
        for target, info in self._targets(self.registry.load(), name):
            self.gateway.up(info.data_path)
            self._record_started(target)
            started.append(target)
            LOGGER.info("Started server %s", target)
            if progress is not None:
                progress(target)
        return started

    def stop(
        self,
        name: str | None = None,
        *,
        progress: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Stop *name*, or every registered server when *name* is ``None``."""
        stopped: list[str] = []
        for target, info in self._targets(self.registry.load(), name):
            self.gateway.down(info.data_path)
            stopped.append(target)
            LOGGER.info("Stopped server %s", target)
            if progress is not None:
                progress(target)
        return stopped

    def remove(
        self,
        name: str,
        *,
        force: bool = False,
        confirm: Callable[[str], bool] | None = None,
    ) -> RemoveResult:
        """Stop (best-effort), delete the data directory, then unregister *name*."""
        info = self.get(name)
        if not force:
            prompt = (
                f"Are you sure you want to remove server '{name}'? "
                "This will delete all data!"
            )
            if confirm is None or not confirm(prompt):
                LOGGER.info("Removal of %s cancelled", name)
                return RemoveResult(removed=False)

        data_path = Path(info.data_path)
        data_missing = not data_path.exists()
        stop_error = None if data_missing else self._stop_best_effort(name, info)

        if data_missing:
            LOGGER.warning("Data directory %s already missing; dropping entry", data_path)
        else:
            try:
                shutil.rmtree(data_path)
            except OSError as exc:
                raise IoFailure(f"Failed to remove data directory {data_path}: {exc}") from exc

        config = self.registry.load()
        config.servers.pop(name, None)
        self.registry.save(config)
        LOGGER.info("Removed server %s", name)
        return RemoveResult(removed=True, stop_error=stop_error, data_missing=data_missing)

    def backup(self, name: str) -> Path:
        """Archive the data directory of *name* and return the archive path."""
        info = self.get(name)
        data_path = Path(info.data_path)
        if not data_path.is_dir():
            raise IoFailure(f"Server data directory {data_path} does not exist.")
        try:
            self.config.backups_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoFailure(
                f"Failed to create backup directory {self.config.backups_dir}: {exc}"
            ) from exc

        archive = (self.config.backups_dir / backup_filename(name)).absolute()
        if archive.exists():
            raise IoFailure(f"Backup archive {archive} already exists.")
        try:
            self.gateway.archive_create(data_path, archive)
        except ServerManagerError:
            archive.unlink(missing_ok=True)
            raise
        LOGGER.info("Backed up %s to %s", name, archive)
        return archive

    def restore(self, name: str, archive_path: str | Path) -> RestoreResult:
        """Stop *name* (best-effort) and extract *archive_path* into its data directory."""
        info = self.get(name)
        archive = Path(archive_path).expanduser()
        if not archive.is_file():
            raise ArchiveNotFound(archive)

        data_path = Path(info.data_path)
        stop_error = self._stop_best_effort(name, info) if data_path.is_dir() else None
        try:
            data_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoFailure(f"Failed to create data directory {data_path}: {exc}") from exc

        self.gateway.archive_extract(data_path, archive.absolute())
        LOGGER.info("Restored %s from %s", name, archive)
        return RestoreResult(archive=archive, stop_error=stop_error)

    # ------------------------------------------------------------------
    # Runtime passthrough
    # ------------------------------------------------------------------
    def status(self, name: str) -> ServerState:
        """Return the live state of *name*; never touches the registry."""
        if self.gateway.query_running(self.config.container_name(name)):
            return ServerState.RUNNING
        return ServerState.STOPPED

    def logs(self, name: str, *, follow: bool = False) -> None:
        """Stream logs for *name* to the terminal."""
        info = self.get(name)
        self.gateway.logs(info.data_path, follow=follow)

    def console(self, name: str) -> None:
        """Attach the terminal to the console of *name*."""
        self.get(name)
        self.gateway.attach(self.config.container_name(name))

    # ------------------------------------------------------------------
    def _targets(
        self,
        config: ServerConfig,
        name: str | None,
    ) -> Iterable[tuple[str, ServerInfo]]:
        if name is None:
            return list(config.servers.items())
        info = config.get(name)
        if info is None:
            raise ServerNotFound(name)
        return [(name, info)]

    def _record_started(self, name: str) -> None:
        config = self.registry.load()
        info = config.get(name)
        if info is None:
            return
        info.last_started = utc_now()
        self.registry.save(config)

    def _check_data_path(self, name: str, data_path: Path) -> None:
        for path in self.config.reserved_paths():
            reserved = path.absolute()
            if data_path.is_relative_to(reserved) or reserved.is_relative_to(data_path):
                raise InvalidServerName(name, f"data directory would overlap {reserved}")

    def _stop_best_effort(self, name: str, info: ServerInfo) -> str | None:
        try:
            self.gateway.down(info.data_path)
        except ServerManagerError as exc:
            LOGGER.warning("Ignoring stop failure for %s: %s", name, exc)
            return str(exc)
        return None


__all__ = [
    "DEFAULT_MEMORY",
    "DEFAULT_PORT",
    "DEFAULT_VERSION",
    "RemoveResult",
    "RestoreResult",
    "RuntimeGateway",
    "ServerManager",
    "ServerSummary",
]
