"""Archive helpers shared by the backup and restore workflows."""
from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from .errors import RuntimeCommandFailed, RuntimeUnavailable

LOGGER = logging.getLogger(__name__)

ARCHIVE_EXTENSION = "tar.gz"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def backup_filename(name: str, moment: datetime | None = None) -> str:
    """Return ``<name>_<YYYYMMDD_HHMMSS>.tar.gz`` for *moment* (local time)."""
    stamp = (moment or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return f"{name}_{stamp}.{ARCHIVE_EXTENSION}"


def create_archive(source_dir: Path, archive_path: Path, *, tar_bin: str = "tar") -> None:
    """Create a gzip archive of the contents of *source_dir* at *archive_path*."""
    _run_tar(
        tar_bin,
        ["-czf", str(archive_path), "-C", str(source_dir), "."],
    )


def extract_archive(archive_path: Path, dest_dir: Path, *, tar_bin: str = "tar") -> None:
    """Extract the gzip archive at *archive_path* into *dest_dir*."""
    _run_tar(
        tar_bin,
        ["-xzf", str(archive_path), "-C", str(dest_dir)],
    )


def _run_tar(tar_bin: str, args: Sequence[str]) -> None:
    resolved = shutil.which(tar_bin)
    if resolved is None:
        raise RuntimeUnavailable(f"The '{tar_bin}' command is required for backups.")

    command = [resolved, *args]
    LOGGER.debug("Running %s", " ".join(command))
    try:
        result = subprocess.run(  # noqa: S603 - controlled command execution
            command,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise RuntimeUnavailable(f"Cannot run {tar_bin}: {exc}") from exc
    if result.returncode != 0:
        message = result.stderr or result.stdout or "tar command failed"
        raise RuntimeCommandFailed(f"{tar_bin} {args[0]}", result.returncode, message)


__all__ = [
    "ARCHIVE_EXTENSION",
    "backup_filename",
    "create_archive",
    "extract_archive",
]
