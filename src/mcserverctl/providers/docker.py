"""Docker provider wrapping the container runtime, compose tool, and tar."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..archive import create_archive, extract_archive
from ..errors import IoFailure, RuntimeCommandFailed, RuntimeUnavailable

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DockerProvider:
    """Invoke ``docker``/``docker-compose``/``tar`` with fixed argument templates.

    Success is always a zero exit status; output is never interpreted beyond
    the running-container query.
    """

    docker_bin: str = "docker"
    compose_bin: str = "docker-compose"
    tar_bin: str = "tar"

    def is_available(self) -> bool:
        """Return ``True`` when ``docker --version`` runs successfully."""
        try:
            result = subprocess.run(  # noqa: S603, S607
                [self.docker_bin, "--version"],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError:
            return False
        return result.returncode == 0

    def up(self, data_path: str | Path) -> subprocess.CompletedProcess[str]:
        """Start the service described by the descriptor in *data_path*."""
        return self._compose(data_path, ["up", "-d"])

    def down(self, data_path: str | Path) -> subprocess.CompletedProcess[str]:
        """Stop and remove the service described in *data_path*."""
        return self._compose(data_path, ["down"])

    def logs(
        self,
        data_path: str | Path,
        *,
        follow: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Stream service logs to the terminal; blocks until interrupted when following."""
        args = ["logs"]
        if follow:
            args.append("-f")
        return self._compose(data_path, args, capture_output=False)

    def attach(self, container_name: str) -> subprocess.CompletedProcess[str]:
        """Attach the terminal to the container console."""
        return self._run_command(
            [self.docker_bin, "attach", container_name],
            error_prefix=f"{self.docker_bin} attach {container_name}",
            capture_output=False,
        )

    def query_running(self, container_name: str) -> bool:
        """Return ``True`` when a running container matches *container_name*."""
        result = self._run_command(
            [self.docker_bin, "ps", "-q", "-f", f"name=^/?{container_name}$"],
            error_prefix=f"{self.docker_bin} ps",
            check=False,
        )
        if result.returncode != 0:
            LOGGER.debug(
                "docker ps exited with %s; treating %s as stopped",
                result.returncode,
                container_name,
            )
            return False
        return bool((result.stdout or "").strip())

    def archive_create(self, data_path: str | Path, dest_file: str | Path) -> None:
        """Archive the contents of *data_path* into *dest_file*."""
        create_archive(Path(data_path), Path(dest_file), tar_bin=self.tar_bin)

    def archive_extract(self, data_path: str | Path, src_file: str | Path) -> None:
        """Extract *src_file* into *data_path*."""
        extract_archive(Path(src_file), Path(data_path), tar_bin=self.tar_bin)

    # ------------------------------------------------------------------
    def _compose(
        self,
        data_path: str | Path,
        args: Sequence[str],
        *,
        capture_output: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        workdir = Path(data_path)
        if not workdir.is_dir():
            raise IoFailure(f"Server data directory {workdir} does not exist.")
        joined = " ".join(args)
        return self._run_command(
            [self.compose_bin, *args],
            error_prefix=f"{self.compose_bin} {joined}",
            cwd=workdir,
            capture_output=capture_output,
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        error_prefix: str,
        cwd: Path | None = None,
        check: bool = True,
        capture_output: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        LOGGER.debug("Running %s (cwd=%s)", " ".join(args), cwd)
        try:
            if capture_output:
                result = subprocess.run(  # noqa: S603, S607
                    list(args),
                    cwd=cwd,
                    capture_output=True,
                    text=True,
                    check=False,
                )
            else:
                result = subprocess.run(  # noqa: S603, S607
                    list(args),
                    cwd=cwd,
                    text=True,
                    check=False,
                )
        except OSError as exc:
            raise RuntimeUnavailable(f"Cannot run {args[0]}: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            raise RuntimeCommandFailed(error_prefix, result.returncode, stderr or stdout)
        return result


__all__ = ["DockerProvider"]
