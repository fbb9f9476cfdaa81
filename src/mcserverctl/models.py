"""Data models for the server registry."""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .errors import ConfigParseFailure, InvalidServerName

SERVER_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class ServerType(str, Enum):
    """Server distributions supported by the container image."""

    VANILLA = "VANILLA"
    PAPER = "PAPER"
    FORGE = "FORGE"
    FABRIC = "FABRIC"
    SPIGOT = "SPIGOT"
    PURPUR = "PURPUR"

    @property
    def mod_loader(self) -> ModLoader | None:
        """Return the mod loader implied by this server type, if any."""
        if self is ServerType.FORGE:
            return ModLoader.FORGE
        if self is ServerType.FABRIC:
            return ModLoader.FABRIC
        return None


class ModLoader(str, Enum):
    """Modding runtimes layered onto a server type."""

    FORGE = "FORGE"
    FABRIC = "FABRIC"

    @property
    def version_variable(self) -> str:
        """Return the environment variable carrying the loader version."""
        return f"{self.value}_VERSION"

    @property
    def default_version(self) -> str:
        """Return the version sentinel offered by default at creation time."""
        return "RECOMMENDED" if self is ModLoader.FORGE else "LATEST"


class ServerState(str, Enum):
    """Derived runtime state of a server container."""

    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


def validate_server_name(name: str) -> str:
    """Return *name* when it matches the allowed pattern, else raise."""
    if not isinstance(name, str) or not SERVER_NAME_PATTERN.fullmatch(name):
        raise InvalidServerName(str(name))
    return name


def utc_now() -> datetime:
    """Return the current UTC time truncated to whole seconds."""
    return datetime.now(tz=UTC).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Serialise *value* as an ISO-8601 UTC string with a ``Z`` suffix."""
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: object, *, label: str) -> datetime:
    """Parse an ISO-8601 timestamp from the registry."""
    if not isinstance(value, str) or not value.strip():
        raise ConfigParseFailure(f"{label} must be an ISO-8601 timestamp string.")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ConfigParseFailure(f"{label} is not a valid timestamp: {value!r}.") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass(slots=True)
class ServerInfo:
    """Registry entry describing a single server."""

    version: str
    port: str
    memory: str
    data_path: str
    server_type: ServerType
    mod_loader: ModLoader | None = None
    mod_loader_version: str | None = None
    java_args: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    last_started: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-serialisable representation stored in the registry."""
        return {
            "version": self.version,
            "port": self.port,
            "memory": self.memory,
            "data_path": self.data_path,
            "server_type": self.server_type.value,
            "mod_loader": self.mod_loader.value if self.mod_loader else None,
            "mod_loader_version": self.mod_loader_version,
            "java_args": self.java_args,
            "created_at": format_timestamp(self.created_at),
            "last_started": (
                format_timestamp(self.last_started) if self.last_started else None
            ),
        }

    @classmethod
    def from_dict(cls, name: str, payload: Mapping[str, object]) -> ServerInfo:
        """Build an entry from registry data, raising on malformed values."""
        if not isinstance(payload, Mapping):
            raise ConfigParseFailure(f"Registry entry '{name}' must be a JSON object.")

        def _required(key: str) -> str:
            value = payload.get(key)
            if not isinstance(value, str) or not value:
                raise ConfigParseFailure(
                    f"Registry entry '{name}' is missing string field '{key}'."
                )
            return value

        def _optional(key: str) -> str | None:
            value = payload.get(key)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ConfigParseFailure(
                    f"Registry entry '{name}' field '{key}' must be a string or null."
                )
            return value

        server_type_raw = _required("server_type")
        try:
            server_type = ServerType(server_type_raw)
        except ValueError as exc:
            raise ConfigParseFailure(
                f"Registry entry '{name}' has unknown server_type {server_type_raw!r}."
            ) from exc

        loader_raw = _optional("mod_loader")
        mod_loader: ModLoader | None = None
        if loader_raw is not None:
            try:
                mod_loader = ModLoader(loader_raw)
            except ValueError as exc:
                raise ConfigParseFailure(
                    f"Registry entry '{name}' has unknown mod_loader {loader_raw!r}."
                ) from exc

        last_started_raw = payload.get("last_started")
        return cls(
            version=_required("version"),
            port=_required("port"),
            memory=_required("memory"),
            data_path=_required("data_path"),
            server_type=server_type,
            mod_loader=mod_loader,
            mod_loader_version=_optional("mod_loader_version"),
            java_args=_optional("java_args"),
            created_at=parse_timestamp(payload.get("created_at"), label=f"{name}.created_at"),
            last_started=(
                parse_timestamp(last_started_raw, label=f"{name}.last_started")
                if last_started_raw is not None
                else None
            ),
        )


@dataclass(slots=True)
class ServerConfig:
    """Registry root: server name to :class:`ServerInfo`."""

    servers: dict[str, ServerInfo] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.servers

    def get(self, name: str) -> ServerInfo | None:
        """Return the entry for *name*, if registered."""
        return self.servers.get(name)

    def to_dict(self) -> dict[str, object]:
        """Return the JSON document persisted to ``servers.json``."""
        return {"servers": {name: info.to_dict() for name, info in self.servers.items()}}

    @classmethod
    def from_dict(cls, payload: object) -> ServerConfig:
        """Parse the registry document."""
        if not isinstance(payload, Mapping):
            raise ConfigParseFailure("Registry must contain a JSON object at the top level.")
        raw_servers = payload.get("servers", {})
        if not isinstance(raw_servers, Mapping):
            raise ConfigParseFailure("Registry 'servers' must be a JSON object.")
        servers: dict[str, ServerInfo] = {}
        for name, entry in raw_servers.items():
            if not isinstance(name, str) or not SERVER_NAME_PATTERN.fullmatch(name):
                raise ConfigParseFailure(f"Registry contains an invalid server name {name!r}.")
            servers[name] = ServerInfo.from_dict(name, entry)
        return cls(servers=servers)


__all__ = [
    "ModLoader",
    "SERVER_NAME_PATTERN",
    "ServerConfig",
    "ServerInfo",
    "ServerState",
    "ServerType",
    "format_timestamp",
    "parse_timestamp",
    "utc_now",
    "validate_server_name",
]
