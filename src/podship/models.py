"""Shared domain models for podship."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from podship.constants import BACKUP_SUFFIX


@dataclass
class ExecutionContext:
    """Per-invocation switches threaded into every service."""

    dry_run: bool = False
    verbose: bool = False
    assume_yes: bool = False
    commands: List[str] = field(default_factory=list)

    def record(self, command: str):
        self.commands.append(command)


@dataclass(frozen=True)
class Target:
    """A resolved remote environment."""

    name: str
    host: str
    user: str
    target_dir: str
    port: int = 22
    identity_file: Optional[str] = None

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}"

    def remote_path(self, relative: str) -> str:
        if relative.startswith("/"):
            return relative
        if relative.startswith("./"):
            relative = relative[2:]
        return f"{self.target_dir.rstrip('/')}/{relative}"


@dataclass(frozen=True)
class ReleaseDescriptor:
    app_name: str
    binary_name: str
    arch: str = "amd64"
    ldflags: Optional[str] = None
    source_dir: Optional[str] = None
    build_cmd: Optional[str] = None
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RateLimit:
    average: int
    burst: int = 0


@dataclass(frozen=True)
class RouteDescriptor:
    """Reverse-proxy routing for one service."""

    host: Optional[str] = None
    rule: Optional[str] = None
    internal_port: Optional[int] = None
    entrypoints: Tuple[str, ...] = ()
    cert_resolver: Optional[str] = None
    path_prefix: Optional[str] = None
    strip_prefix: bool = False
    compress: bool = False
    basic_auth_users: Tuple[str, ...] = ()
    basic_auth_file: Optional[str] = None
    ip_allowlist: Tuple[str, ...] = ()
    rate_limit: Optional[RateLimit] = None
    headers: Tuple[Tuple[str, str], ...] = ()

    @property
    def exposed(self) -> bool:
        return bool(self.rule or self.host)


@dataclass(frozen=True)
class UnitDescriptor:
    """Everything the process supervisor needs to run the container."""

    service_name: str
    image: str
    route: RouteDescriptor = field(default_factory=RouteDescriptor)
    description: Optional[str] = None
    network: Optional[str] = None
    extra_labels: Tuple[str, ...] = ()
    volumes: Tuple[str, ...] = ()
    env_vars: Tuple[str, ...] = ()
    ports: Tuple[str, ...] = ()
    podman_args: Tuple[str, ...] = ()
    exec_cmd: Optional[str] = None
    timezone: Optional[str] = None
    memory: Optional[str] = None
    cpu: Optional[str] = None
    read_only: bool = False
    health_cmd: Optional[str] = None
    health_url: Optional[str] = None
    health_check_from: str = "remote"
    dockerfile: str = "Dockerfile.vps"
    stop_on_deploy: bool = False
    container_uid: int = 0
    container_gid: int = 0
    chown_volumes: Tuple[str, ...] = ()

    @property
    def unit_name(self) -> str:
        return f"{self.service_name}.service"


@dataclass(frozen=True)
class DatabaseDescriptor:
    driver: str = "sqlite"
    source: Optional[str] = None


@dataclass(frozen=True)
class TraefikDescriptor:
    """Per-host reverse proxy settings used by ``podship traefik``."""

    version: Optional[str] = None
    email: Optional[str] = None
    cert_resolver: Optional[str] = None
    network_name: Optional[str] = None
    dashboard: bool = False
    dashboard_auth: Optional[str] = None


@dataclass(frozen=True)
class DeployEnvironment:
    """Fully resolved configuration for one run against one target."""

    target: Target
    unit: UnitDescriptor
    release: Optional[ReleaseDescriptor] = None
    database: DatabaseDescriptor = field(default_factory=DatabaseDescriptor)
    env_file: Optional[str] = None
    default_cert_resolver: Optional[str] = None
    traefik: TraefikDescriptor = field(default_factory=TraefikDescriptor)


@dataclass(frozen=True)
class CompiledUnit:
    """Rendered unit-file text and the labels embedded in it."""

    service_name: str
    text: str
    labels: Tuple[str, ...]

    @property
    def filename(self) -> str:
        return f"{self.service_name}.container"


@dataclass(frozen=True)
class BuildMetadata:
    version: str
    commit: str
    date: str
    tag: str
    short_version: str
    toolchain: str

    def template_values(self) -> Dict[str, str]:
        return {
            "Version": self.version,
            "Commit": self.commit,
            "Date": self.date,
            "Tag": self.tag,
            "MainVersion": self.short_version,
            "GoVersion": self.toolchain,
        }


@dataclass(frozen=True)
class BackupRecord:
    """Single-slot fallback copy of a resource.

    ``existed`` is False when there was nothing to back up (first release,
    first push), in which case restoring means removing the new resource.
    """

    resource: str
    location: str
    existed: bool = True

    @property
    def backup_path(self) -> str:
        return f"{self.resource}{BACKUP_SUFFIX}"


class Stage(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PREPARING = "preparing"
    BACKING_UP = "backing-up"
    MUTATING = "mutating"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    ROLLING_BACK = "rolling-back"
    TERMINAL = "terminal"


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ROLLED_BACK = "rolled-back"
    FATAL = "fatal"


@dataclass
class PipelineRun:
    """Progress of one mutation through the protocol stages."""

    run_id: str
    operation: str
    stage: Stage = Stage.IDLE
    stages: List[Dict[str, Optional[str]]] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)
    outcome: Optional[Outcome] = None
    error: Optional[str] = None
    backup: Optional[BackupRecord] = None

    def enter(self, stage: Stage):
        self.stage = stage
        self.stages.append({"stage": stage.value, "entered_at": _now()})

    def visited(self, stage: Stage) -> bool:
        return any(entry["stage"] == stage.value for entry in self.stages)

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCEEDED


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
