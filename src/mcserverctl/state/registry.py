"""Helpers for interacting with the server registry.

The registry (``<config_dir>/servers.json`` by default) is the single source
of truth for which servers exist. Callers always load the whole document,
mutate it, and save it back; there are no partial or merge writes. Saves go
through a temporary file in the same directory followed by ``os.replace`` so a
crash mid-write never leaves a truncated registry behind.

There is no locking: concurrent invocations against the same registry file are
not supported.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..errors import ConfigParseFailure, IoFailure
from ..models import ServerConfig

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerRegistry:
    """Load and save the JSON server registry."""

    path: Path

    def __post_init__(self) -> None:
        """Normalise the registry path after initialisation."""
        object.__setattr__(self, "path", self.path.expanduser())

    @property
    def root(self) -> Path:
        """Return the directory holding the registry file."""
        return self.path.parent

    def ensure_root(self) -> None:
        """Create the registry directory and an empty registry on first run."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoFailure(f"Failed to create config directory {self.root}: {exc}") from exc
        if not self.path.exists():
            LOGGER.debug("Bootstrapping empty registry at %s", self.path)
            self.save(ServerConfig())

    def load(self) -> ServerConfig:
        """Return the registry contents (empty when the file is missing)."""
        if not self.path.exists():
            return ServerConfig()
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ServerConfig()
        except OSError as exc:
            raise IoFailure(f"Failed to read registry {self.path}: {exc}") from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigParseFailure(f"Registry corrupted ({self.path}): {exc}") from exc
        return ServerConfig.from_dict(payload)

    def save(self, config: ServerConfig) -> None:
        """Atomically replace the registry file with *config*."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoFailure(f"Failed to create config directory {self.root}: {exc}") from exc

        tmp_fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=f".{self.path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                json.dump(config.to_dict(), handle, indent=2, sort_keys=False)
                handle.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise IoFailure(f"Failed to write registry {self.path}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)


__all__ = ["ServerRegistry"]
