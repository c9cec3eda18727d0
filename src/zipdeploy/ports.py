"""Port inspection and reclamation.

A :class:`PortProber` reports which processes listen on a TCP port. The
variant is chosen once by :func:`select_prober` depending on which tool is
installed (``lsof``, then ``ss``); without either, :class:`NullProber`
turns every check into a warning.

:class:`PortReclaimer` frees a port in two phases: SIGTERM to every listener
in one batch, a grace period, then SIGKILL to whatever is still listening.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

logger = logging.getLogger("zipdeploy.ports")

DEFAULT_GRACE_PERIOD = 1.0


class PortPurpose(str, Enum):
    BACKEND = "backend"
    FRONTEND = "frontend"
    HTTP = "http"
    HTTPS = "https"
    EXTRA = "extra"


@dataclass(frozen=True)
class PortSpec:
    """A port to free before launch, labelled with what it is for."""
    port: int
    purpose: PortPurpose = PortPurpose.EXTRA

    def __str__(self) -> str:
        return f"{self.port} ({self.purpose.value})"


class PortProber:
    """Discovers the PIDs listening on a TCP port."""

    name = "none"
    available = True

    def listeners(self, port: int) -> frozenset[int]:
        raise NotImplementedError

    def _run(self, cmd: list[str]) -> str:
        # Both tools exit non-zero when nothing matches; only stdout matters.
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            logger.warning(f"{self.name} failed to run: {e}")
            return ""
        return result.stdout or ""


class LsofProber(PortProber):
    name = "lsof"

    def listeners(self, port: int) -> frozenset[int]:
        out = self._run(["lsof", f"-tiTCP:{int(port)}", "-sTCP:LISTEN"])
        pids = set()
        for line in out.splitlines():
            line = line.strip()
            if line.isdigit():
                pids.add(int(line))
        return frozenset(pids)


_SS_PID_RE = re.compile(r"pid=(\d+)")


class SsProber(PortProber):
    name = "ss"

    def listeners(self, port: int) -> frozenset[int]:
        out = self._run(["ss", "-Hltnp", f"sport = :{int(port)}"])
        return frozenset(int(m) for m in _SS_PID_RE.findall(out))


class NullProber(PortProber):
    """Used when no inspection tool is installed; reports nothing."""

    name = "none"
    available = False

    def listeners(self, port: int) -> frozenset[int]:
        return frozenset()


_PROBERS: tuple[type[PortProber], ...] = (LsofProber, SsProber)


def select_prober(which: Callable[[str], Optional[str]] = shutil.which) -> PortProber:
    """Pick the first prober whose backing tool is on PATH."""
    for prober_cls in _PROBERS:
        if which(prober_cls.name):
            logger.debug(f"Using {prober_cls.name} to inspect ports")
            return prober_cls()
    logger.warning("Neither lsof nor ss found; listening ports cannot be checked")
    return NullProber()


class ReclaimStatus(str, Enum):
    FREE = "free"
    RECLAIMED = "reclaimed"
    FORCED = "forced"
    UNCHECKED = "unchecked"


@dataclass
class ReclaimResult:
    """Outcome of one reclaim cycle for a port."""
    port: int
    status: ReclaimStatus
    terminated: frozenset[int] = field(default_factory=frozenset)
    killed: frozenset[int] = field(default_factory=frozenset)

    @property
    def signals_sent(self) -> int:
        return len(self.terminated) + len(self.killed)


class PortReclaimer:
    """Frees ports by terminating their listeners, escalating to SIGKILL."""

    def __init__(
        self,
        prober: Optional[PortProber] = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        kill: Callable[[int, int], None] = os.kill,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.prober = prober if prober is not None else select_prober()
        self.grace_period = grace_period
        self._kill = kill
        self._sleep = sleep

    def _signal_all(self, pids: Iterable[int], sig: int) -> None:
        for pid in sorted(pids):
            try:
                self._kill(pid, sig)
            except ProcessLookupError:
                logger.debug(f"PID {pid} already gone")
            except PermissionError as e:
                logger.warning(f"Not allowed to signal PID {pid}: {e}")

    def reclaim(self, port: int) -> ReclaimResult:
        """Make sure nothing listens on ``port``. Best effort, never raises."""
        if not self.prober.available:
            logger.warning(f"No port inspection tool; cannot check port {port}")
            return ReclaimResult(port=port, status=ReclaimStatus.UNCHECKED)

        pids = self.prober.listeners(port)
        if not pids:
            logger.info(f"Port {port} is free")
            return ReclaimResult(port=port, status=ReclaimStatus.FREE)

        logger.warning(f"Port {port} is in use by PID(s): {_fmt(pids)}; terminating")
        self._signal_all(pids, signal.SIGTERM)
        self._sleep(self.grace_period)

        still = self.prober.listeners(port)
        if not still:
            return ReclaimResult(port=port, status=ReclaimStatus.RECLAIMED, terminated=pids)

        logger.warning(f"PID(s) still listening on {port}: {_fmt(still)}; force killing")
        self._signal_all(still, signal.SIGKILL)
        return ReclaimResult(port=port, status=ReclaimStatus.FORCED, terminated=pids, killed=still)

    def reclaim_all(self, specs: Iterable[PortSpec]) -> list[ReclaimResult]:
        results = []
        for spec in specs:
            logger.debug(f"Checking port {spec}")
            results.append(self.reclaim(spec.port))
        return results


def _fmt(pids: Iterable[int]) -> str:
    return " ".join(str(p) for p in sorted(pids))
