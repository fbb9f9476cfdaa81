"""Best-effort container runtime installation, selected per platform."""
from __future__ import annotations

import logging
import platform
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from ..errors import RuntimeCommandFailed, RuntimeUnavailable

LOGGER = logging.getLogger(__name__)

DOCKER_DESKTOP_URL = "https://www.docker.com/products/docker-desktop"

Confirm = Callable[[str], bool]
Notify = Callable[[str], None]


class RuntimeInstaller(Protocol):
    """Capability interface for installing the container runtime."""

    label: str

    def install(self, *, confirm: Confirm, notify: Notify) -> None:
        """Install the runtime or raise when that is not possible."""


@dataclass(slots=True)
class CommandInstaller:
    """Install the runtime by running a single shell command."""

    label: str
    command: Sequence[str]

    def install(self, *, confirm: Confirm, notify: Notify) -> None:
        """Run the install command, raising on a non-zero exit."""
        notify(f"Installing Docker on {self.label}...")
        LOGGER.debug("Running installer: %s", " ".join(self.command))
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(self.command),
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise RuntimeUnavailable(
                f"Cannot install Docker: failed to run {self.command[0]}: {exc}"
            ) from exc
        if result.returncode != 0:
            raise RuntimeCommandFailed(
                " ".join(self.command),
                result.returncode,
                result.stderr or result.stdout or "",
            )


@dataclass(slots=True)
class ManualInstaller:
    """Ask the user to install the runtime themselves."""

    label: str
    url: str = DOCKER_DESKTOP_URL
    prompt: str = field(default="Have you installed Docker Desktop?")

    def install(self, *, confirm: Confirm, notify: Notify) -> None:
        """Point the user at the download page and wait for confirmation."""
        notify(f"Please download and install Docker Desktop from:\n{self.url}")
        if not confirm(self.prompt):
            raise RuntimeUnavailable("Docker not installed")


def select_installer(system: str | None = None) -> RuntimeInstaller:
    """Return the installer for *system* (defaults to the running platform)."""
    name = (system or platform.system()).lower()
    if name == "linux":
        return CommandInstaller(
            label="Linux",
            command=("sh", "-c", "curl -fsSL https://get.docker.com | sh"),
        )
    if name == "darwin":
        return CommandInstaller(label="macOS", command=("brew", "install", "docker"))
    return ManualInstaller(label=system or platform.system() or "this platform")


__all__ = [
    "CommandInstaller",
    "ManualInstaller",
    "RuntimeInstaller",
    "select_installer",
]
