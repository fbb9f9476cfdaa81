"""Compose descriptor generation tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from mcserverctl.config import AppConfig
from mcserverctl.descriptor import (
    build_environment,
    descriptor_path,
    generate,
    read_descriptor,
    write_descriptor,
)
from mcserverctl.errors import ConfigParseFailure
from mcserverctl.models import ModLoader, ServerInfo, ServerType


def _info(data_path: str = "/srv/mc/alice", **overrides: object) -> ServerInfo:
    values: dict[str, object] = {
        "version": "LATEST",
        "port": "25565",
        "memory": "2G",
        "data_path": data_path,
        "server_type": ServerType.PAPER,
    }
    values.update(overrides)
    return ServerInfo(**values)  # type: ignore[arg-type]


def test_paper_server_descriptor(app_config: AppConfig) -> None:
    """A plain PAPER server maps onto the fixed compose layout."""
    document = generate("alice", _info(), app_config)

    assert document["version"] == "3.8"
    service = document["services"]["alice"]  # type: ignore[index]
    assert service == {
        "image": "itzg/minecraft-server",
        "container_name": "mc-alice",
        "ports": ["25565:25565"],
        "environment": ["EULA=TRUE", "MEMORY=2G", "VERSION=LATEST", "TYPE=PAPER"],
        "volumes": ["/srv/mc/alice:/data"],
        "restart": "unless-stopped",
        "stdin_open": True,
        "tty": True,
    }


def test_forge_server_adds_loader_entries() -> None:
    """FORGE servers get a TYPE override and the loader version variable."""
    info = _info(
        server_type=ServerType.FORGE,
        mod_loader=ModLoader.FORGE,
        mod_loader_version="47.1.0",
    )

    environment = build_environment(info)

    assert environment == [
        "EULA=TRUE",
        "MEMORY=2G",
        "VERSION=LATEST",
        "TYPE=FORGE",
        "TYPE=FORGE",
        "FORGE_VERSION=47.1.0",
    ]


def test_fabric_server_and_java_args() -> None:
    """FABRIC servers use FABRIC_VERSION and Java args become JVM_OPTS."""
    info = _info(
        server_type=ServerType.FABRIC,
        mod_loader=ModLoader.FABRIC,
        mod_loader_version="LATEST",
        java_args="-XX:+UseG1GC",
    )

    environment = build_environment(info)

    assert "FABRIC_VERSION=LATEST" in environment
    assert environment[-1] == "JVM_OPTS=-XX:+UseG1GC"
    assert not any(entry.startswith("FORGE_VERSION") for entry in environment)


def test_host_port_is_published_to_container_port(app_config: AppConfig) -> None:
    """The host port is user-defined; the container side stays fixed."""
    document = generate("alice", _info(port="25570"), app_config)

    assert document["services"]["alice"]["ports"] == ["25570:25565"]  # type: ignore[index]


def test_write_and_read_descriptor_roundtrip(tmp_path: Path, app_config: AppConfig) -> None:
    """Written descriptors parse back to the generated document."""
    document = generate("alice", _info(str(tmp_path)), app_config)
    path = descriptor_path(tmp_path)

    write_descriptor(path, document)

    assert path.name == "docker-compose.yml"
    assert read_descriptor(path) == document
    assert sorted(item.name for item in tmp_path.iterdir()) == ["docker-compose.yml"]


@pytest.mark.parametrize("contents", ["services: [unclosed\n", "version: '3.8'\n"])
def test_read_descriptor_rejects_malformed_documents(tmp_path: Path, contents: str) -> None:
    """Bad YAML or a document without services raises ConfigParseFailure."""
    path = tmp_path / "docker-compose.yml"
    path.write_text(contents, encoding="utf-8")

    with pytest.raises(ConfigParseFailure):
        read_descriptor(path)
