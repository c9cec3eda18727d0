from __future__ import annotations

import os
import signal
import sys
import time
from pathlib import Path

import pytest

from zipdeploy.errors import LaunchError
from zipdeploy.launcher import launch, read_pid_file, stop_launched


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def _cleanup(pid: int) -> None:
    try:
        os.killpg(pid, signal.SIGKILL)
    except OSError:
        pass


def test_launch_detaches_and_records_pid(tmp_path: Path) -> None:
    script = "import os, time; print('port=' + os.environ['PORT'], flush=True); time.sleep(30)"
    record = launch(tmp_path, [sys.executable, "-c", script], {"PORT": "3999"}, tmp_path / "logs")
    try:
        assert record.pid > 0
        assert read_pid_file(record.pid_file) == record.pid
        assert record.log_path == tmp_path / "logs" / "backend.log"
        assert _wait_for(lambda: "port=3999" in record.log_path.read_text())
        assert os.getpgid(record.pid) == record.pid
    finally:
        _cleanup(record.pid)


def test_stderr_goes_to_the_same_log(tmp_path: Path) -> None:
    script = "import sys, time; sys.stderr.write('oops\\n'); sys.stderr.flush(); time.sleep(30)"
    record = launch(tmp_path, [sys.executable, "-c", script], None, tmp_path / "logs", name="api")
    try:
        assert record.log_path.name == "api.log"
        assert _wait_for(lambda: "oops" in record.log_path.read_text())
    finally:
        _cleanup(record.pid)


def test_immediate_exit_is_a_launch_failure(tmp_path: Path) -> None:
    script = "import sys; print('bad config'); sys.exit(3)"
    with pytest.raises(LaunchError) as exc:
        launch(tmp_path, [sys.executable, "-c", script], None, tmp_path / "logs", startup_check=1.0)
    assert "code 3" in str(exc.value)
    assert not (tmp_path / "logs" / "backend.pid").exists()


def test_missing_executable_is_a_launch_failure(tmp_path: Path) -> None:
    with pytest.raises(LaunchError):
        launch(tmp_path, ["definitely-not-a-real-binary-xyz"], None, tmp_path / "logs")


def test_empty_command_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(LaunchError):
        launch(tmp_path, [], None, tmp_path / "logs")


def test_read_pid_file_rejects_garbage(tmp_path: Path) -> None:
    pid_file = tmp_path / "backend.pid"
    pid_file.write_text("")
    with pytest.raises(LaunchError):
        read_pid_file(pid_file)


def test_stop_escalates_when_process_survives(tmp_path: Path) -> None:
    pid_file = tmp_path / "backend.pid"
    pid_file.write_text("4242\n")
    sent: list[tuple[int, int]] = []

    stopped = stop_launched(
        pid_file,
        grace_period=0.1,
        killpg=lambda pid, sig: sent.append((pid, sig)),
        alive=lambda pid: True,
        sleep=lambda s: None,
    )

    assert stopped is True
    assert sent == [(4242, signal.SIGTERM), (4242, signal.SIGKILL)]


def test_stop_graceful_only(tmp_path: Path) -> None:
    pid_file = tmp_path / "backend.pid"
    pid_file.write_text("4242\n")
    sent: list[tuple[int, int]] = []
    states = iter([True, False])

    stop_launched(
        pid_file,
        killpg=lambda pid, sig: sent.append((pid, sig)),
        alive=lambda pid: next(states),
        sleep=lambda s: None,
    )

    assert sent == [(4242, signal.SIGTERM)]


def test_stop_not_running(tmp_path: Path) -> None:
    pid_file = tmp_path / "backend.pid"
    pid_file.write_text("4242\n")
    assert stop_launched(pid_file, killpg=lambda *a: None, alive=lambda pid: False) is False


def test_stop_real_process(tmp_path: Path) -> None:
    record = launch(tmp_path, [sys.executable, "-c", "import time; time.sleep(30)"], None, tmp_path / "logs")
    try:
        assert stop_launched(record.pid_file, grace_period=0.5) is True
    finally:
        _cleanup(record.pid)
