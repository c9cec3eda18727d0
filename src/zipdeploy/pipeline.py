"""The bootstrap sequence: extract, detect, free ports, install, patch, launch.

Steps run strictly in order, each on explicit absolute paths; the process
working directory is never changed.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .archive import extract_archive, resolve_archive
from .config import DeployConfig
from .errors import InstallError, PreconditionError
from .installer import DependencyInstaller, InstallResult
from .launcher import LaunchRecord, launch
from .layout import detect_project_root
from .patcher import PatchResult, find_entrypoint, patch_privileged_ports
from .ports import PortReclaimer, ReclaimResult
from .preflight import check_required_tools
from .provision import ensure_env_file, init_database, provision_tls

logger = logging.getLogger("zipdeploy.pipeline")


@dataclass
class DeployReport:
    """What a run did, for the summary printed by the CLI."""
    archive: Optional[Path] = None
    workspace: Optional[Path] = None
    project_root: Optional[Path] = None
    ports: list[ReclaimResult] = field(default_factory=list)
    backend_install: Optional[InstallResult] = None
    frontend_install: Optional[InstallResult] = None
    patch: Optional[PatchResult] = None
    tls_files: list[Path] = field(default_factory=list)
    database_created: bool = False
    launch: Optional[LaunchRecord] = None
    warnings: list[str] = field(default_factory=list)

    def warn(self, msg: str) -> None:
        logger.warning(msg)
        self.warnings.append(msg)


class Deployer:
    """Runs the bootstrap steps for one :class:`DeployConfig`."""

    def __init__(
        self,
        config: DeployConfig,
        base_path: Optional[Path] = None,
        reclaimer: Optional[PortReclaimer] = None,
        installer: Optional[DependencyInstaller] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        launcher: Callable[..., LaunchRecord] = launch,
    ):
        self.config = config
        self.base_path = Path(base_path or Path.cwd()).resolve()
        self._reclaimer = reclaimer
        self.installer = installer or DependencyInstaller()
        self.which = which
        self.launcher = launcher

    @property
    def reclaimer(self) -> PortReclaimer:
        # Created lazily so the prober is selected once, after preflight.
        if self._reclaimer is None:
            self._reclaimer = PortReclaimer(grace_period=self.config.grace_period)
        return self._reclaimer

    @property
    def workspace(self) -> Path:
        workdir = Path(self.config.workdir)
        if not workdir.is_absolute():
            workdir = self.base_path / workdir
        return workdir

    def preflight(self) -> Path:
        check_required_tools(self.config.required_tools, which=self.which)
        archive = resolve_archive(self.config.archive_candidates, base=self.base_path)
        logger.info("Preflight OK")
        return archive

    def prepare(self, report: DeployReport) -> Path:
        """Extract the archive and return the detected project root."""
        report.workspace = extract_archive(report.archive, self.workspace, base=self.base_path)
        root = detect_project_root(report.workspace, self.config.backend_subdir)
        backend_dir = root / self.config.backend_subdir
        if not backend_dir.is_dir():
            raise PreconditionError(f"Backend folder not found at: {backend_dir}")
        logger.info(f"Project directory: {root}")
        report.project_root = root
        return root

    def free_ports(self, report: DeployReport) -> None:
        logger.info("Checking ports...")
        report.ports = self.reclaimer.reclaim_all(self.config.port_specs())

    def install(self, report: DeployReport, root: Path) -> None:
        backend_dir = root / self.config.backend_subdir
        logger.info("Installing backend dependencies...")
        result = self.installer.install(backend_dir)
        report.backend_install = result
        if not result.success:
            raise InstallError(f"Backend dependency installation failed in {backend_dir}")
        ensure_env_file(backend_dir)

        frontend_dir = root / self.config.frontend_subdir
        if (frontend_dir / "package.json").is_file():
            logger.info("Installing frontend dependencies...")
            result = self.installer.install(frontend_dir)
            report.frontend_install = result
            if not result.success:
                report.warn(f"Frontend dependency installation failed in {frontend_dir}; continuing")
        else:
            logger.info("No frontend package.json detected. Skipping frontend install.")

    def patch_ports(self, report: DeployReport, root: Path) -> None:
        if not self.config.patch_ports:
            return
        backend_dir = root / self.config.backend_subdir
        entry = find_entrypoint(backend_dir)
        if entry is None:
            report.warn(f"No startup file found in {backend_dir}; skipping port patch")
            return
        try:
            report.patch = patch_privileged_ports(entry, self.config.http_port, self.config.https_port)
        except (OSError, UnicodeDecodeError) as e:
            report.warn(f"Port patch failed for {entry}: {e}")

    def provision(self, report: DeployReport, root: Path) -> None:
        report.tls_files = provision_tls(self.config.tls, root / self.config.backend_subdir)
        report.database_created = init_database(root / self.config.database_subdir)

    def start(self, report: DeployReport, root: Path) -> LaunchRecord:
        logs_dir = Path(self.config.logs_dir)
        if not logs_dir.is_absolute():
            logs_dir = root / logs_dir
        logger.info(f"Starting backend on port {self.config.backend_port}...")
        record = self.launcher(
            root / self.config.backend_subdir,
            self.config.start_command,
            self.config.launch_env(),
            logs_dir,
        )
        report.launch = record
        logger.info(f"Backend started (PID: {record.pid}). Logs: {record.log_path}")
        return record

    def run(self) -> DeployReport:
        report = DeployReport()
        report.archive = self.preflight()
        root = self.prepare(report)
        self.free_ports(report)
        self.install(report, root)
        self.patch_ports(report, root)
        self.provision(report, root)
        self.start(report, root)
        return report
