from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

import zipdeploy.installer as installer_module
from zipdeploy.installer import DependencyInstaller


def _fake_npm(monkeypatch: pytest.MonkeyPatch, codes: dict[str, int]) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(cmd, capture_output=False, text=False, check=False, env=None, cwd=None, **kwargs):
        calls.append(list(cmd))
        return SimpleNamespace(returncode=codes.get(cmd[1], 0), stdout="ok", stderr="boom")

    monkeypatch.setattr(installer_module.subprocess, "run", fake_run)
    return calls


def test_lockfile_uses_npm_ci(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "package-lock.json").write_text("{}")
    calls = _fake_npm(monkeypatch, {})

    result = DependencyInstaller().install(tmp_path)

    assert result.success
    assert result.mode == "ci"
    assert [c[1] for c in calls] == ["ci"]


def test_lockfile_mismatch_falls_back_to_npm_install(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "package-lock.json").write_text("{}")
    calls = _fake_npm(monkeypatch, {"ci": 1})

    result = DependencyInstaller().install(tmp_path)

    assert result.success
    assert result.mode == "install"
    assert [c[1] for c in calls] == ["ci", "install"]


def test_no_lockfile_uses_npm_install(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _fake_npm(monkeypatch, {})

    result = DependencyInstaller().install(tmp_path)

    assert result.success
    assert [c[1] for c in calls] == ["install"]


def test_both_modes_failing_reports_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "package-lock.json").write_text("{}")
    _fake_npm(monkeypatch, {"ci": 1, "install": 1})

    result = DependencyInstaller().install(tmp_path)

    assert not result.success
    assert result.output == "boom"


def test_missing_npm_reports_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*a, **k):
        raise FileNotFoundError("npm")

    monkeypatch.setattr(installer_module.subprocess, "run", fake_run)
    assert DependencyInstaller().install(tmp_path).success is False


def test_install_runs_in_target_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    def fake_run(cmd, cwd=None, **kwargs):
        seen["cwd"] = cwd
        return SimpleNamespace(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(installer_module.subprocess, "run", fake_run)
    DependencyInstaller().install(tmp_path)
    assert seen["cwd"] == str(tmp_path)
