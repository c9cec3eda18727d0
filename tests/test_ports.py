"""Tests for port probing and reclamation."""

from __future__ import annotations

import signal
from types import SimpleNamespace

import pytest

import zipdeploy.ports as ports_module
from zipdeploy.ports import (
    LsofProber,
    NullProber,
    PortProber,
    PortPurpose,
    PortReclaimer,
    PortSpec,
    ReclaimStatus,
    SsProber,
    select_prober,
)


class ScriptedProber(PortProber):
    """Returns a prepared answer per probe call."""

    name = "scripted"

    def __init__(self, *answers: set[int]):
        self.answers = [frozenset(a) for a in answers]
        self.calls = 0

    def listeners(self, port: int) -> frozenset[int]:
        answer = self.answers[min(self.calls, len(self.answers) - 1)]
        self.calls += 1
        return answer


class Recorder:
    def __init__(self):
        self.events: list[tuple] = []

    def kill(self, pid: int, sig: int) -> None:
        self.events.append(("kill", pid, sig))

    def sleep(self, seconds: float) -> None:
        self.events.append(("sleep", seconds))


def _reclaimer(prober: PortProber, rec: Recorder, grace: float = 1.0) -> PortReclaimer:
    return PortReclaimer(prober, grace_period=grace, kill=rec.kill, sleep=rec.sleep)


def test_free_port_sends_no_signals() -> None:
    rec = Recorder()
    result = _reclaimer(ScriptedProber(set()), rec).reclaim(8080)
    assert result.status == ReclaimStatus.FREE
    assert result.signals_sent == 0
    assert rec.events == []


def test_graceful_termination_clears_port_without_sigkill() -> None:
    rec = Recorder()
    prober = ScriptedProber({101, 102}, set())
    result = _reclaimer(prober, rec).reclaim(3000)

    assert result.status == ReclaimStatus.RECLAIMED
    assert result.terminated == {101, 102}
    assert result.killed == frozenset()
    assert rec.events == [
        ("kill", 101, signal.SIGTERM),
        ("kill", 102, signal.SIGTERM),
        ("sleep", 1.0),
    ]
    assert prober.calls == 2


def test_survivors_are_force_killed_after_grace_period() -> None:
    rec = Recorder()
    result = _reclaimer(ScriptedProber({7, 8}, {8}), rec, grace=0.5).reclaim(3000)

    assert result.status == ReclaimStatus.FORCED
    assert result.killed == {8}
    assert rec.events == [
        ("kill", 7, signal.SIGTERM),
        ("kill", 8, signal.SIGTERM),
        ("sleep", 0.5),
        ("kill", 8, signal.SIGKILL),
    ]


def test_no_reprobe_after_forced_kill() -> None:
    rec = Recorder()
    prober = ScriptedProber({5}, {5}, {5})
    _reclaimer(prober, rec).reclaim(3000)
    assert prober.calls == 2


def test_vanished_and_forbidden_pids_do_not_raise() -> None:
    def kill(pid: int, sig: int) -> None:
        if pid == 1:
            raise ProcessLookupError
        raise PermissionError("not yours")

    reclaimer = PortReclaimer(ScriptedProber({1, 2}, set()), kill=kill, sleep=lambda s: None)
    assert reclaimer.reclaim(3000).status == ReclaimStatus.RECLAIMED


def test_unavailable_prober_degrades_to_noop() -> None:
    rec = Recorder()
    result = _reclaimer(NullProber(), rec).reclaim(3000)
    assert result.status == ReclaimStatus.UNCHECKED
    assert rec.events == []


def test_reclaim_all_keeps_order() -> None:
    rec = Recorder()
    specs = [PortSpec(3000, PortPurpose.BACKEND), PortSpec(8080, PortPurpose.HTTP)]
    results = _reclaimer(ScriptedProber(set()), rec).reclaim_all(specs)
    assert [r.port for r in results] == [3000, 8080]


def test_lsof_prober_parses_pids(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    def fake_run(cmd, capture_output=False, text=False, check=False, **kwargs):
        captured["cmd"] = cmd
        return SimpleNamespace(returncode=0, stdout="1234\n5678\n\n", stderr="")

    monkeypatch.setattr(ports_module.subprocess, "run", fake_run)
    assert LsofProber().listeners(3000) == {1234, 5678}
    assert captured["cmd"] == ["lsof", "-tiTCP:3000", "-sTCP:LISTEN"]


def test_lsof_prober_no_match(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        ports_module.subprocess,
        "run",
        lambda *a, **k: SimpleNamespace(returncode=1, stdout="", stderr=""),
    )
    assert LsofProber().listeners(3000) == frozenset()


def test_ss_prober_parses_users_column(monkeypatch: pytest.MonkeyPatch) -> None:
    out = (
        'LISTEN 0 511 0.0.0.0:3000 0.0.0.0:* users:(("node",pid=4321,fd=20))\n'
        'LISTEN 0 511 [::]:3000 [::]:* users:(("node",pid=4321,fd=21),("node",pid=99,fd=3))\n'
    )
    monkeypatch.setattr(
        ports_module.subprocess,
        "run",
        lambda *a, **k: SimpleNamespace(returncode=0, stdout=out, stderr=""),
    )
    assert SsProber().listeners(3000) == {4321, 99}


def test_prober_survives_tool_disappearing(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*a, **k):
        raise FileNotFoundError("lsof")

    monkeypatch.setattr(ports_module.subprocess, "run", fake_run)
    assert LsofProber().listeners(3000) == frozenset()


def test_select_prober_prefers_lsof() -> None:
    assert isinstance(select_prober(lambda name: f"/usr/bin/{name}"), LsofProber)


def test_select_prober_falls_back_to_ss() -> None:
    which = lambda name: "/usr/sbin/ss" if name == "ss" else None  # noqa: E731
    assert isinstance(select_prober(which), SsProber)


def test_select_prober_without_tools() -> None:
    prober = select_prober(lambda name: None)
    assert isinstance(prober, NullProber)
    assert prober.available is False
