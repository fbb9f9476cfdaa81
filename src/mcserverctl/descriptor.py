"""Compose descriptor generation for server containers.

:func:`generate` is a pure transformation from a registry entry to the
compose document consumed by ``docker-compose``. Writing the document to disk
is left to :func:`write_descriptor`, which always replaces the whole file.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

import yaml

from .config import AppConfig
from .errors import ConfigParseFailure, IoFailure
from .models import ServerInfo

DESCRIPTOR_FILENAME = "docker-compose.yml"
DATA_MOUNT = "/data"
RESTART_POLICY = "unless-stopped"


def build_environment(info: ServerInfo) -> list[str]:
    """Return the ``KEY=VALUE`` environment list for *info*."""
    environment = [
        "EULA=TRUE",
        f"MEMORY={info.memory}",
        f"VERSION={info.version}",
        f"TYPE={info.server_type.value}",
    ]
    if info.mod_loader is not None:
        # Later TYPE entries override earlier ones.
        environment.append(f"TYPE={info.mod_loader.value}")
        if info.mod_loader_version:
            environment.append(f"{info.mod_loader.version_variable}={info.mod_loader_version}")
    if info.java_args:
        environment.append(f"JVM_OPTS={info.java_args}")
    return environment


def generate(name: str, info: ServerInfo, config: AppConfig) -> dict[str, object]:
    """Return the compose document describing how to run server *name*."""
    service: dict[str, object] = {
        "image": config.image,
        "container_name": config.container_name(name),
        "ports": [f"{info.port}:{config.container_port}"],
        "environment": build_environment(info),
        "volumes": [f"{info.data_path}:{DATA_MOUNT}"],
        "restart": RESTART_POLICY,
        "stdin_open": True,
        "tty": True,
    }
    return {
        "version": config.compose_version,
        "services": {name: service},
    }


def descriptor_path(data_path: str | Path) -> Path:
    """Return the descriptor location inside a server data directory."""
    return Path(data_path) / DESCRIPTOR_FILENAME


def write_descriptor(path: Path, document: Mapping[str, object]) -> None:
    """Atomically write *document* as YAML to *path*."""
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(dict(document), handle, sort_keys=False)
        os.replace(tmp_path, path)
    except OSError as exc:
        raise IoFailure(f"Failed to write descriptor {path}: {exc}") from exc
    finally:
        tmp_path.unlink(missing_ok=True)


def read_descriptor(path: Path) -> dict[str, object]:
    """Return the parsed descriptor at *path*."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise IoFailure(f"Failed to read descriptor {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigParseFailure(f"Failed to parse descriptor {path}: {exc}") from exc
    if not isinstance(data, Mapping) or not isinstance(data.get("services"), Mapping):
        raise ConfigParseFailure(f"Descriptor {path} does not define any services.")
    return dict(data)


__all__ = [
    "DESCRIPTOR_FILENAME",
    "build_environment",
    "descriptor_path",
    "generate",
    "read_descriptor",
    "write_descriptor",
]
