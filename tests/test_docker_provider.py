"""Tests for the Docker provider."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from mcserverctl.errors import IoFailure, RuntimeCommandFailed, RuntimeUnavailable
from mcserverctl.providers import DockerProvider


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class Recorder:
    """Capture ``subprocess.run`` invocations and replay canned results."""

    def __init__(self, result: DummyResult | None = None) -> None:
        """Prepare the recorder with an optional canned result."""
        self.result = result or DummyResult()
        self.calls: list[dict[str, Any]] = []

    def __call__(self, args: Sequence[str], **kwargs: Any) -> DummyResult:
        self.calls.append({"args": list(args), **kwargs})
        return self.result


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> Recorder:
    """Patch ``subprocess.run`` with a recorder."""
    fake = Recorder()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


def test_is_available_true_on_zero_exit(recorder: Recorder) -> None:
    """``docker --version`` succeeding means the runtime is installed."""
    assert DockerProvider().is_available() is True
    assert recorder.calls[0]["args"] == ["docker", "--version"]


def test_is_available_false_on_failure(recorder: Recorder) -> None:
    """A non-zero exit means the runtime is not usable."""
    recorder.result = DummyResult(returncode=127)

    assert DockerProvider().is_available() is False


def test_is_available_false_when_binary_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing executable is reported as unavailable rather than raised."""

    def missing(*args: object, **kwargs: object) -> None:
        raise FileNotFoundError("docker")

    monkeypatch.setattr(subprocess, "run", missing)

    assert DockerProvider().is_available() is False


def test_up_and_down_run_compose_in_data_dir(recorder: Recorder, tmp_path: Path) -> None:
    """Compose commands run with the data directory as working directory."""
    provider = DockerProvider()

    provider.up(tmp_path)
    provider.down(tmp_path)

    assert [call["args"] for call in recorder.calls] == [
        ["docker-compose", "up", "-d"],
        ["docker-compose", "down"],
    ]
    assert all(call["cwd"] == tmp_path for call in recorder.calls)
    assert all(call["capture_output"] is True for call in recorder.calls)


def test_logs_inherit_terminal(recorder: Recorder, tmp_path: Path) -> None:
    """Logs stream to the terminal and honour the follow flag."""
    provider = DockerProvider()

    provider.logs(tmp_path)
    provider.logs(tmp_path, follow=True)

    assert recorder.calls[0]["args"] == ["docker-compose", "logs"]
    assert recorder.calls[1]["args"] == ["docker-compose", "logs", "-f"]
    assert all("capture_output" not in call for call in recorder.calls)


def test_attach_targets_container(recorder: Recorder) -> None:
    """Console attach uses the container name without capturing output."""
    DockerProvider(docker_bin="/usr/local/bin/docker").attach("mc-alice")

    call = recorder.calls[0]
    assert call["args"] == ["/usr/local/bin/docker", "attach", "mc-alice"]
    assert "capture_output" not in call


@pytest.mark.parametrize(
    ("stdout", "expected"),
    [("3f2a1b9c0d1e\n", True), ("", False), ("\n", False)],
)
def test_query_running_reads_container_ids(
    recorder: Recorder,
    stdout: str,
    expected: bool,
) -> None:
    """Any container id on stdout means the server is running."""
    recorder.result = DummyResult(stdout=stdout)

    assert DockerProvider().query_running("mc-alice") is expected
    assert recorder.calls[0]["args"] == ["docker", "ps", "-q", "-f", "name=^/?mc-alice$"]


def test_query_running_nonzero_exit_reports_stopped(recorder: Recorder) -> None:
    """A failing ``docker ps`` is treated as not running."""
    recorder.result = DummyResult(returncode=1, stdout="abc", stderr="daemon down")

    assert DockerProvider().query_running("mc-alice") is False


def test_failure_raises_with_captured_stderr(recorder: Recorder, tmp_path: Path) -> None:
    """Non-zero exits raise RuntimeCommandFailed carrying stderr."""
    recorder.result = DummyResult(returncode=1, stdout="partial", stderr="port is taken")

    with pytest.raises(RuntimeCommandFailed) as excinfo:
        DockerProvider().up(tmp_path)

    assert excinfo.value.returncode == 1
    assert excinfo.value.output == "port is taken"
    assert "docker-compose up -d failed (exit 1)" in str(excinfo.value)


def test_failure_falls_back_to_stdout(recorder: Recorder, tmp_path: Path) -> None:
    """Without stderr, stdout is used as diagnostic output."""
    recorder.result = DummyResult(returncode=2, stdout="no such service")

    with pytest.raises(RuntimeCommandFailed, match="no such service"):
        DockerProvider().down(tmp_path)


def test_missing_compose_binary_raises_unavailable(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    """A missing compose executable surfaces as RuntimeUnavailable."""

    def missing(*args: object, **kwargs: object) -> None:
        raise FileNotFoundError("docker-compose")

    monkeypatch.setattr(subprocess, "run", missing)

    with pytest.raises(RuntimeUnavailable):
        DockerProvider().up(tmp_path)


def test_unexecutable_binaries_raise_unavailable(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Permission and other OS errors from exec are reported as RuntimeUnavailable."""

    def denied(*args: object, **kwargs: object) -> None:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(subprocess, "run", denied)
    provider = DockerProvider(compose_bin="/opt/bin/docker-compose", docker_bin="/opt/bin/docker")

    with pytest.raises(RuntimeUnavailable, match="Permission denied"):
        provider.up(tmp_path)
    with pytest.raises(RuntimeUnavailable, match="/opt/bin/docker"):
        provider.query_running("mc-alice")


def test_compose_requires_existing_data_dir(recorder: Recorder, tmp_path: Path) -> None:
    """Compose is never invoked against a missing data directory."""
    with pytest.raises(IoFailure):
        DockerProvider().up(tmp_path / "missing")

    assert recorder.calls == []
