"""Configuration model for zipdeploy runs."""

import os

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError
from .ports import PortPurpose, PortSpec


DEFAULT_CONFIG_FILE = "zipdeploy.yaml"

DEFAULT_ARCHIVE_CANDIDATES = ["bundle/project.zip", "project.zip"]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def _as_port(name: str, value) -> int:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a port number, got {value!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"{name} out of range: {port}")
    return port


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_seconds(name: str, value) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number of seconds, got {value!r}") from None
    if seconds < 0:
        raise ConfigError(f"{name} must not be negative: {seconds}")
    return seconds


@dataclass
class TLSConfig:
    """Where to copy certificate material from."""
    source: Optional[str] = None
    cert: str = "cert.pem"
    key: str = "key.pem"
    target_subdir: str = "certs"


@dataclass
class DeployConfig:
    """Configuration for a single bootstrap run."""
    archive_candidates: list[str] = field(default_factory=lambda: list(DEFAULT_ARCHIVE_CANDIDATES))
    workdir: str = "run"
    backend_subdir: str = "backend"
    frontend_subdir: str = "frontend"
    database_subdir: str = "database"
    backend_port: int = 3000
    frontend_port: int = 5173
    http_port: int = 8080
    https_port: int = 8443
    kill_ports: list[int] = field(default_factory=list)
    start_command: list[str] = field(default_factory=lambda: ["npm", "start"])
    required_tools: list[str] = field(default_factory=lambda: ["node", "npm"])
    patch_ports: bool = True
    grace_period: float = 1.0
    logs_dir: str = "logs"
    tls: TLSConfig = field(default_factory=TLSConfig)
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DeployConfig":
        """Create configuration from a dictionary (e.g. parsed YAML)."""
        data = dict(data or {})
        defaults = cls()

        candidates = data.get("archive_candidates", defaults.archive_candidates)
        if isinstance(candidates, str):
            candidates = [candidates]

        tls_data = data.get("tls") or {}
        if not isinstance(tls_data, dict):
            raise ConfigError(f"tls must be a mapping, got {tls_data!r}")
        env_data = data.get("env") or {}
        if not isinstance(env_data, dict):
            raise ConfigError(f"env must be a mapping, got {env_data!r}")
        tls = TLSConfig(
            source=_clean(tls_data.get("source")),
            cert=tls_data.get("cert", "cert.pem"),
            key=tls_data.get("key", "key.pem"),
            target_subdir=tls_data.get("target_subdir", "certs"),
        )

        start_command = data.get("start_command", defaults.start_command)
        if isinstance(start_command, str):
            start_command = start_command.split()

        return cls(
            archive_candidates=[str(c) for c in candidates],
            workdir=str(data.get("workdir", defaults.workdir)),
            backend_subdir=str(data.get("backend_subdir", defaults.backend_subdir)),
            frontend_subdir=str(data.get("frontend_subdir", defaults.frontend_subdir)),
            database_subdir=str(data.get("database_subdir", defaults.database_subdir)),
            backend_port=_as_port("backend_port", data.get("backend_port", defaults.backend_port)),
            frontend_port=_as_port("frontend_port", data.get("frontend_port", defaults.frontend_port)),
            http_port=_as_port("http_port", data.get("http_port", defaults.http_port)),
            https_port=_as_port("https_port", data.get("https_port", defaults.https_port)),
            kill_ports=[_as_port("kill_ports", p) for p in (data.get("kill_ports") or [])],
            start_command=[str(part) for part in start_command],
            required_tools=[str(t) for t in data.get("required_tools", defaults.required_tools)],
            patch_ports=_as_bool(data.get("patch_ports", defaults.patch_ports)),
            grace_period=_as_seconds("grace_period", data.get("grace_period", defaults.grace_period)),
            logs_dir=str(data.get("logs_dir", defaults.logs_dir)),
            tls=tls,
            env={str(k): str(v) for k, v in env_data.items()},
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "DeployConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")
        return cls.from_dict(data)

    def apply_env(self, env: Optional[dict[str, str]] = None) -> "DeployConfig":
        """Overlay environment variable overrides onto this configuration."""
        src = os.environ if env is None else env

        archive = _clean(src.get("ZIPDEPLOY_ARCHIVE"))
        if archive:
            self.archive_candidates = [archive]

        workdir = _clean(src.get("ZIPDEPLOY_WORKDIR"))
        if workdir:
            self.workdir = workdir

        for var, attr in (
            ("BACKEND_PORT", "backend_port"),
            ("FRONTEND_PORT", "frontend_port"),
            ("HTTP_PORT", "http_port"),
            ("HTTPS_PORT", "https_port"),
        ):
            raw = _clean(src.get(var))
            if raw is not None:
                setattr(self, attr, _as_port(var, raw))

        patch = _clean(src.get("ZIPDEPLOY_PATCH_PORTS"))
        if patch is not None:
            self.patch_ports = _as_bool(patch)

        grace = _clean(src.get("ZIPDEPLOY_GRACE_PERIOD"))
        if grace is not None:
            self.grace_period = _as_seconds("ZIPDEPLOY_GRACE_PERIOD", grace)

        tls_source = _clean(src.get("ZIPDEPLOY_TLS_SOURCE"))
        if tls_source:
            self.tls.source = tls_source

        return self

    def port_specs(self) -> list[PortSpec]:
        """Ports to free before launch; the backend port always comes first."""
        specs = [PortSpec(self.backend_port, PortPurpose.BACKEND)]
        if self.patch_ports:
            specs.append(PortSpec(self.http_port, PortPurpose.HTTP))
            specs.append(PortSpec(self.https_port, PortPurpose.HTTPS))
        for port in self.kill_ports:
            specs.append(PortSpec(port, PortPurpose.EXTRA))

        seen: set[int] = set()
        unique = []
        for spec in specs:
            if spec.port in seen:
                continue
            seen.add(spec.port)
            unique.append(spec)
        return unique

    def launch_env(self) -> dict[str, str]:
        """Variables exported into the launched process."""
        env = {
            "PORT": str(self.backend_port),
            "BACKEND_PORT": str(self.backend_port),
            "HTTP_PORT": str(self.http_port),
            "HTTPS_PORT": str(self.https_port),
            "FRONTEND_PORT": str(self.frontend_port),
        }
        env.update(self.env)
        return env

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "archive_candidates": list(self.archive_candidates),
            "workdir": self.workdir,
            "backend_subdir": self.backend_subdir,
            "frontend_subdir": self.frontend_subdir,
            "database_subdir": self.database_subdir,
            "backend_port": self.backend_port,
            "frontend_port": self.frontend_port,
            "http_port": self.http_port,
            "https_port": self.https_port,
            "kill_ports": list(self.kill_ports),
            "start_command": list(self.start_command),
            "required_tools": list(self.required_tools),
            "patch_ports": self.patch_ports,
            "grace_period": self.grace_period,
            "logs_dir": self.logs_dir,
            "tls": {
                "source": self.tls.source,
                "cert": self.tls.cert,
                "key": self.tls.key,
                "target_subdir": self.tls.target_subdir,
            },
            "env": dict(self.env),
        }

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def load_config(path: Optional[str | Path] = None, env: Optional[dict[str, str]] = None) -> DeployConfig:
    """Load configuration from an optional YAML file, then apply environment overrides.

    With no explicit path, ``zipdeploy.yaml`` in the current directory is used
    when present; otherwise defaults apply.
    """
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        config = DeployConfig.from_yaml(path)
    elif Path(DEFAULT_CONFIG_FILE).exists():
        config = DeployConfig.from_yaml(Path(DEFAULT_CONFIG_FILE))
    else:
        config = DeployConfig()
    return config.apply_env(env)
