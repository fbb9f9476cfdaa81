"""Configuration loader for mcserverctl.

Values are resolved from multiple sources, later sources winning:

1. Built-in defaults.
2. ``<config_dir>/config.yml`` (or an override path).
3. Environment variables prefixed with ``MCSERVERCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export MCSERVERCTL_CONFIG_DIR=/srv/minecraft
    export MCSERVERCTL_RUNTIME__COMPOSE_BIN=/usr/local/bin/docker-compose

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import copy
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

from .errors import ConfigParseFailure

ENV_PREFIX = "MCSERVERCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(ConfigParseFailure):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class RuntimeConfig:
    """Executables used to drive containers and archives."""

    docker_bin: str = "docker"
    compose_bin: str = "docker-compose"
    tar_bin: str = "tar"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "docker_bin": self.docker_bin,
            "compose_bin": self.compose_bin,
            "tar_bin": self.tar_bin,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for mcserverctl."""

    config_file: Path
    config_dir: Path
    registry_file: Path
    backups_dir: Path
    logs_dir: Path
    image: str
    container_prefix: str
    container_port: int
    compose_version: str
    runtime: RuntimeConfig

    def data_path_for(self, name: str) -> Path:
        """Return the data directory owned by server *name*."""
        return self.config_dir / name

    def reserved_paths(self) -> tuple[Path, ...]:
        """Return the paths mcserverctl itself owns and no server may claim."""
        return (self.config_file, self.registry_file, self.backups_dir, self.logs_dir)

    def container_name(self, name: str) -> str:
        """Return the container name for server *name*."""
        return f"{self.container_prefix}{name}"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "config_dir": str(self.config_dir),
            "registry_file": str(self.registry_file),
            "backups_dir": str(self.backups_dir),
            "logs_dir": str(self.logs_dir),
            "image": self.image,
            "container_prefix": self.container_prefix,
            "container_port": self.container_port,
            "compose_version": self.compose_version,
            "runtime": self.runtime.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": None,  # derived from config_dir when absent
    "config_dir": ".mc-servers",
    "registry_file": None,  # <config_dir>/servers.json
    "backups_dir": None,  # <config_dir>/backups
    "logs_dir": None,  # <config_dir>/logs
    "image": "itzg/minecraft-server",
    "container_prefix": "mc-",
    "container_port": 25565,
    "compose_version": "3.8",
    "runtime": {
        "docker_bin": "docker",
        "compose_bin": "docker-compose",
        "tar_bin": "tar",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_RUNTIME_KEYS = {"docker_bin", "compose_bin", "tar_bin"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = copy.deepcopy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    env_values = _build_env_overrides(resolved_env)
    override_values = dict(overrides or {})

    # The config directory decides where the default config file lives, so it
    # is resolved from env/overrides before the file is read.
    bootstrap: dict[str, object] = copy.deepcopy(merged)
    _deep_merge(bootstrap, env_values)
    _deep_merge(bootstrap, override_values)
    config_dir_hint = _to_path(bootstrap.get("config_dir"))
    config_path = _determine_config_path(config_dir_hint, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)
    if env_values:
        _deep_merge(merged, env_values)
    if override_values:
        _deep_merge(merged, override_values)

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    config_dir: Path,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return config_dir / "config.yml"


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    runtime = raw.get("runtime")
    if runtime is not None:
        runtime_map = _as_dict(runtime, "runtime")
        unknown = set(runtime_map.keys()) - ALLOWED_RUNTIME_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown runtime configuration keys: {joined}.")
        for key, value in runtime_map.items():
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"runtime.{key} must be a non-empty string.")

    prefix = raw.get("container_prefix")
    if prefix is not None and not isinstance(prefix, str):
        raise ConfigError("container_prefix must be a string.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_dir = _to_path(raw.get("config_dir"))
    config_file = _to_path(raw.get("config_file"))

    registry_value = raw.get("registry_file")
    registry_file = _to_path(registry_value) if registry_value else config_dir / "servers.json"
    backups_value = raw.get("backups_dir")
    backups_dir = _to_path(backups_value) if backups_value else config_dir / "backups"
    logs_value = raw.get("logs_dir")
    logs_dir = _to_path(logs_value) if logs_value else config_dir / "logs"

    container_port = _port_value(raw.get("container_port", 25565))

    runtime_mapping = _as_dict(raw.get("runtime"), "runtime")
    runtime = RuntimeConfig(
        docker_bin=str(runtime_mapping.get("docker_bin", "docker")),
        compose_bin=str(runtime_mapping.get("compose_bin", "docker-compose")),
        tar_bin=str(runtime_mapping.get("tar_bin", "tar")),
    )

    return AppConfig(
        config_file=config_file,
        config_dir=config_dir,
        registry_file=registry_file,
        backups_dir=backups_dir,
        logs_dir=logs_dir,
        image=str(raw.get("image", "itzg/minecraft-server")),
        container_prefix=str(raw.get("container_prefix", "mc-")),
        container_port=container_port,
        compose_version=str(raw.get("compose_version", "3.8")),
        runtime=runtime,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS or not key.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if segments:
            _assign_nested(overrides, segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: dict[str, object], path: list[str], value: object) -> None:
    node = tree
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(f"Environment override {'.'.join(path)} conflicts with a scalar.")
        node = child
    node[path[-1]] = value


def _deep_merge(target: dict[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, Mapping):
            _deep_merge(existing, value)
        else:
            target[key] = value


def _coerce_value(raw: str) -> object:
    try:
        return yaml.safe_load(raw.strip())
    except yaml.YAMLError:
        return raw.strip()


def _to_path(value: object) -> Path:
    if not isinstance(value, (str, Path)):
        raise ConfigError(f"Expected a filesystem path, got {value!r}.")
    return Path(value).expanduser()


def _port_value(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigError(f"container_port must be an integer. Got {value!r}.")
    try:
        port = int(value)
    except ValueError as exc:
        raise ConfigError(f"container_port must be an integer. Got {value!r}.") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"container_port must be between 1 and 65535. Got {port}.")
    return port


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    return {str(key): item for key, item in value.items()}


__all__ = [
    "AppConfig",
    "ConfigError",
    "RuntimeConfig",
    "load_config",
]
