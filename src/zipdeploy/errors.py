"""Exceptions raised by zipdeploy for fatal deployment failures."""


class DeployError(Exception):
    """Base exception for zipdeploy errors."""
    pass


class ConfigError(DeployError):
    """Raised when configuration values cannot be interpreted."""
    pass


class PreconditionError(DeployError):
    """Raised when a required tool or input is missing."""
    pass


class ArchiveError(DeployError):
    """Raised when the application archive cannot be extracted."""
    pass


class LayoutNotFound(DeployError):
    """Raised when no project root can be located in the extracted tree."""

    def __init__(self, root, backend_subdir: str):
        super().__init__(
            f"Backend folder '{backend_subdir}' not found under {root} "
            f"(checked the root, a single wrapping folder and two levels deep)"
        )
        self.root = root
        self.backend_subdir = backend_subdir


class InstallError(DeployError):
    """Raised when backend dependencies cannot be installed."""
    pass


class LaunchError(DeployError):
    """Raised when the application process fails to start."""
    pass
