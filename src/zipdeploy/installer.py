"""npm dependency installation for the extracted project."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("zipdeploy.installer")

LOCKFILE = "package-lock.json"

NPM_FLAGS = ["--no-audit", "--no-fund", "--progress=false"]


@dataclass
class InstallResult:
    directory: Path
    success: bool
    mode: Optional[str] = None  # "ci" or "install"
    output: str = ""


class DependencyInstaller:
    """Installs declared npm dependencies.

    With a lockfile, ``npm ci`` is tried first and ``npm install`` is used when
    the lockfile disagrees with ``package.json``.
    """

    def __init__(self, npm: str = "npm", env: Optional[dict[str, str]] = None):
        self.npm = npm
        self.env = env

    def _npm(self, directory: Path, subcommand: str) -> subprocess.CompletedProcess | None:
        cmd = [self.npm, subcommand, *NPM_FLAGS]
        logger.debug(f"[{directory.name}] {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                cwd=str(directory),
                capture_output=True,
                text=True,
                check=False,
                env=self.env,
            )
        except FileNotFoundError:
            logger.error(f"{self.npm} not found in PATH (Node.js runtime missing)")
            return None

    def install(self, directory: str | Path) -> InstallResult:
        directory = Path(directory)
        if (directory / LOCKFILE).exists():
            proc = self._npm(directory, "ci")
            if proc is None:
                return InstallResult(directory, success=False)
            if proc.returncode == 0:
                logger.info(f"[{directory.name}] Dependencies installed (npm ci)")
                return InstallResult(directory, True, "ci", proc.stdout or "")
            logger.warning(
                f"[{directory.name}] npm ci failed (exit {proc.returncode}); falling back to npm install"
            )

        proc = self._npm(directory, "install")
        if proc is None:
            return InstallResult(directory, success=False)
        if proc.returncode != 0:
            logger.error(f"[{directory.name}] npm install failed (exit {proc.returncode})")
            if proc.stderr:
                logger.debug(proc.stderr[-2000:])
            return InstallResult(directory, False, "install", proc.stderr or proc.stdout or "")

        logger.info(f"[{directory.name}] Dependencies installed (npm install)")
        return InstallResult(directory, True, "install", proc.stdout or "")
