"""Start the application as a detached background process."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .errors import LaunchError

logger = logging.getLogger("zipdeploy.launcher")

STARTUP_CHECK_S = 0.2


@dataclass(frozen=True)
class LaunchRecord:
    """Identifier and log location of a launched process."""
    pid: int
    log_path: Path
    pid_file: Path
    command: tuple[str, ...] = ()
    started_at: float = field(default_factory=time.time)

    @property
    def stop_hint(self) -> str:
        return f"kill {self.pid}"


def _tail(path: Path, max_chars: int = 2000) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")[-max_chars:]
    except OSError:
        return ""


def launch(
    cwd: str | Path,
    command: list[str],
    env: Optional[dict[str, str]],
    logs_dir: str | Path,
    name: str = "backend",
    startup_check: float = STARTUP_CHECK_S,
) -> LaunchRecord:
    """Start ``command`` in ``cwd`` with output going to ``<logs_dir>/<name>.log``.

    The process runs in its own session and is not waited on. Its PID is
    written to ``<logs_dir>/<name>.pid``.

    Raises:
        LaunchError: if the command cannot be executed or exits during the
            startup check.
    """
    cwd = Path(cwd)
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"{name}.log"
    pid_file = logs_dir / f"{name}.pid"

    if not command:
        raise LaunchError(f"No start command configured for {name}")

    full_env = os.environ.copy()
    for k, v in (env or {}).items():
        if k is None or v is None:
            continue
        full_env[str(k)] = str(v)

    with open(log_path, "wb") as log_file:
        try:
            process = subprocess.Popen(
                list(command),
                cwd=str(cwd),
                env=full_env,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            raise LaunchError(f"Could not start {' '.join(command)}: {e}") from e

    logger.info(f"[{name}] Process started with PID: {process.pid}")

    if startup_check > 0:
        time.sleep(startup_check)
        exit_code = process.poll()
        if exit_code is not None:
            raise LaunchError(
                f"{name} exited immediately with code {exit_code}; see {log_path}\n{_tail(log_path)}"
            )

    pid_file.write_text(f"{process.pid}\n", encoding="utf-8")
    return LaunchRecord(
        pid=process.pid,
        log_path=log_path,
        pid_file=pid_file,
        command=tuple(command),
    )


def read_pid_file(pid_file: str | Path) -> int:
    pid_file = Path(pid_file)
    try:
        first = pid_file.read_text(encoding="utf-8").split()[0]
        return int(first)
    except (IndexError, ValueError):
        raise LaunchError(f"No PID recorded in {pid_file}") from None


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def stop_launched(
    pid_file: str | Path,
    grace_period: float = 1.0,
    killpg: Callable[[int, int], None] = os.killpg,
    alive: Callable[[int], bool] = _alive,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Terminate a process started by :func:`launch` using its PID marker.

    The whole process group gets SIGTERM, then SIGKILL if it is still alive
    after ``grace_period``. Returns False if the process was already gone.
    """
    pid = read_pid_file(pid_file)
    if not alive(pid):
        logger.info(f"PID {pid} is not running")
        return False

    logger.info(f"Stopping PID {pid}")
    try:
        killpg(pid, signal.SIGTERM)
    except ProcessLookupError:
        return False

    sleep(grace_period)
    if alive(pid):
        logger.warning(f"PID {pid} didn't stop gracefully, sending SIGKILL")
        try:
            killpg(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    return True
