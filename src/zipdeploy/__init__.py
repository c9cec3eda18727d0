"""zipdeploy – local bootstrapper for packaged Node.js applications"""

__version__ = "0.1.0"

from .config import DeployConfig, TLSConfig, load_config
from .errors import (
    ArchiveError,
    ConfigError,
    DeployError,
    InstallError,
    LaunchError,
    LayoutNotFound,
    PreconditionError,
)
from .installer import DependencyInstaller, InstallResult
from .launcher import LaunchRecord, launch, stop_launched
from .layout import detect_project_root
from .patcher import PatchResult, find_entrypoint, patch_privileged_ports
from .pipeline import Deployer, DeployReport
from .ports import (
    LsofProber,
    NullProber,
    PortProber,
    PortPurpose,
    PortReclaimer,
    PortSpec,
    ReclaimResult,
    ReclaimStatus,
    SsProber,
    select_prober,
)

__all__ = [
    # Pipeline
    "Deployer",
    "DeployReport",
    # Configuration
    "DeployConfig",
    "TLSConfig",
    "load_config",
    # Layout
    "detect_project_root",
    # Ports
    "PortProber",
    "LsofProber",
    "SsProber",
    "NullProber",
    "select_prober",
    "PortReclaimer",
    "PortSpec",
    "PortPurpose",
    "ReclaimResult",
    "ReclaimStatus",
    # Install / patch / launch
    "DependencyInstaller",
    "InstallResult",
    "PatchResult",
    "find_entrypoint",
    "patch_privileged_ports",
    "LaunchRecord",
    "launch",
    "stop_launched",
    # Errors
    "DeployError",
    "ConfigError",
    "PreconditionError",
    "ArchiveError",
    "LayoutNotFound",
    "InstallError",
    "LaunchError",
    "__version__",
]
