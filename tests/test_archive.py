"""Archive helper tests."""
from __future__ import annotations

import shutil
import subprocess
from datetime import datetime
from pathlib import Path

import pytest

from mcserverctl.archive import backup_filename, create_archive, extract_archive
from mcserverctl.errors import RuntimeCommandFailed, RuntimeUnavailable
from mcserverctl.providers import DockerProvider

requires_tar = pytest.mark.skipif(shutil.which("tar") is None, reason="tar not installed")


def _snapshot(root: Path) -> dict[str, bytes]:
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_backup_filename_uses_local_timestamp() -> None:
    """Archive names embed the server name and a sortable timestamp."""
    moment = datetime(2024, 3, 9, 7, 5, 1)

    assert backup_filename("alice", moment) == "alice_20240309_070501.tar.gz"


@requires_tar
def test_archive_roundtrip_reproduces_files(tmp_path: Path) -> None:
    """Extracting a backup into a fresh directory reproduces the file set."""
    source = tmp_path / "alice"
    (source / "world" / "region").mkdir(parents=True)
    (source / "server.properties").write_text("motd=hello\n", encoding="utf-8")
    (source / "world" / "level.dat").write_bytes(bytes(range(256)))
    (source / "world" / "region" / "r.0.0.mca").write_bytes(b"\x00" * 1024)
    archive = tmp_path / "alice.tar.gz"
    restored = tmp_path / "restored"
    restored.mkdir()

    provider = DockerProvider()
    provider.archive_create(source, archive)
    provider.archive_extract(restored, archive)

    assert archive.exists()
    assert _snapshot(restored) == _snapshot(source)


@requires_tar
def test_extract_corrupt_archive_raises(tmp_path: Path) -> None:
    """tar failures surface as RuntimeCommandFailed."""
    archive = tmp_path / "broken.tar.gz"
    archive.write_bytes(b"definitely not gzip")

    with pytest.raises(RuntimeCommandFailed) as excinfo:
        extract_archive(archive, tmp_path)

    assert excinfo.value.command == "tar -xzf"


def test_missing_tar_binary_raises(tmp_path: Path) -> None:
    """A tar executable that cannot be found is reported as unavailable."""
    with pytest.raises(RuntimeUnavailable):
        create_archive(tmp_path, tmp_path / "out.tar.gz", tar_bin="no-such-tar-binary")


def test_unexecutable_tar_binary_raises(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A tar executable that exists but cannot run is reported as unavailable."""

    def denied(*args: object, **kwargs: object) -> None:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(shutil, "which", lambda name: "/opt/bin/tar")
    monkeypatch.setattr(subprocess, "run", denied)

    with pytest.raises(RuntimeUnavailable, match="Permission denied"):
        create_archive(tmp_path, tmp_path / "out.tar.gz", tar_bin="/opt/bin/tar")
