"""Error taxonomy shared by the registry, gateway, and lifecycle layers.

Every error carries the :class:`ExitCode` the CLI should terminate with, so
command handlers can translate failures without inspecting their type.
"""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes used by the CLI."""

    OK = 0
    VALIDATION = 2  # bad input, unknown or duplicate server, malformed files
    ENVIRONMENT = 3  # filesystem problems, missing container runtime
    PROVIDER = 4  # docker, docker-compose, or tar exited non-zero


class ServerManagerError(RuntimeError):
    """Base class for failures surfaced to the user."""

    exit_code: ExitCode = ExitCode.VALIDATION


class IoFailure(ServerManagerError):
    """Raised when a filesystem operation fails."""

    exit_code = ExitCode.ENVIRONMENT


class ArchiveNotFound(IoFailure):
    """Raised when a backup archive supplied for restore does not exist."""

    def __init__(self, path: object) -> None:
        """Record the missing archive path."""
        super().__init__(f"Backup file not found: {path}")
        self.path = path


class ServerNotFound(ServerManagerError):
    """Raised when a named server is not present in the registry."""

    def __init__(self, name: str) -> None:
        """Record the missing server name."""
        super().__init__(f"Server '{name}' not found")
        self.name = name


class ServerExists(ServerManagerError):
    """Raised when creating a server whose name is already registered."""

    def __init__(self, name: str) -> None:
        """Record the duplicate server name."""
        super().__init__(f"Server '{name}' already exists")
        self.name = name


class InvalidServerName(ServerManagerError):
    """Raised when a server name is malformed or collides with a managed path."""

    def __init__(self, name: str, reason: str | None = None) -> None:
        """Record the rejected server name."""
        detail = reason or "use letters, digits, '-' or '_'"
        super().__init__(f"Invalid server name: {name!r} ({detail})")
        self.name = name


class ConfigParseFailure(ServerManagerError):
    """Raised when the registry, a descriptor, or the settings file is malformed."""


class RuntimeUnavailable(ServerManagerError):
    """Raised when the container runtime cannot be found or installed."""

    exit_code = ExitCode.ENVIRONMENT


class RuntimeCommandFailed(ServerManagerError):
    """Raised when an external command exits with a non-zero status."""

    exit_code = ExitCode.PROVIDER

    def __init__(self, command: str, returncode: int, output: str = "") -> None:
        """Capture the failing command, its exit status, and diagnostic output."""
        detail = output.strip() or "no output"
        super().__init__(f"{command} failed (exit {returncode}): {detail}")
        self.command = command
        self.returncode = returncode
        self.output = output


class UserCancelled(ServerManagerError):
    """Raised by prompt helpers when the user declines a confirmation."""

    exit_code = ExitCode.OK


__all__ = [
    "ArchiveNotFound",
    "ConfigParseFailure",
    "ExitCode",
    "InvalidServerName",
    "IoFailure",
    "RuntimeCommandFailed",
    "RuntimeUnavailable",
    "ServerExists",
    "ServerManagerError",
    "ServerNotFound",
    "UserCancelled",
]
