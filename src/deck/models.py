"""Data model shared by the resolver, port engine, engine handles and orchestrator.

Everything here is a plain value object. Nothing is cached between calls:
resources are rescanned on every resolution pass and container/engine
information is always read fresh from the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path

# Files a layer directory must contain to be launchable
REQUIRED_FILES: tuple[str, ...] = (".env", "compose.yaml", "Dockerfile")

METADATA_FILE = ".deck-metadata"


# ============================================================================
# RESOURCES
# ============================================================================


class Layer(Enum):
    """One tier of the Templates → Custom → Images hierarchy."""

    IMAGES = "images"
    CUSTOM = "custom"
    TEMPLATES = "templates"

    @property
    def label(self) -> str:
        return self.value.title()


@dataclass(frozen=True)
class Resource:
    """A named, directory-backed configuration unit within a layer."""

    name: str
    layer: Layer
    path: Path
    is_available: bool
    unavailable_reason: str = ""
    relative_age: str = ""


@dataclass
class ResolvedResources:
    """Availability-annotated option lists for the three layers."""

    images: list[Resource] = field(default_factory=list)
    custom: list[Resource] = field(default_factory=list)
    templates: list[Resource] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.images or self.custom or self.templates)

    def all(self) -> list[Resource]:
        return [*self.images, *self.custom, *self.templates]


class BuildStatus(Enum):
    BUILDING = "Building"
    BUILT = "Built"
    RUNNING = "Running"
    STOPPED = "Stopped"
    FAILED = "Failed"


@dataclass
class ImageMetadata:
    """Contents of an Images-layer ``.deck-metadata`` file."""

    image_name: str
    created_at: datetime | None = None
    created_by: str = ""
    source_config: str = ""
    build_status: BuildStatus = BuildStatus.BUILDING
    last_started: datetime | None = None
    container_name: str | None = None
    runtime_variables: dict[str, str] = field(default_factory=dict)
    build_time_variables: dict[str, str] = field(default_factory=dict)


# ============================================================================
# PORTS
# ============================================================================


class Protocol(Enum):
    TCP = "tcp"
    UDP = "udp"


@dataclass(frozen=True)
class PortMapping:
    container_port: int
    host_port: int
    protocol: Protocol = Protocol.TCP


@dataclass(frozen=True)
class ProcessInfo:
    process_id: int
    process_name: str
    is_system_process: bool = False
    can_be_stopped: bool = True


class ConflictSeverity(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


@dataclass
class PortConflictInfo:
    """Result of inspecting a single host port."""

    port: int
    protocol: Protocol = Protocol.TCP
    has_conflict: bool = False
    occupying_process: ProcessInfo | None = None
    severity: ConflictSeverity = ConflictSeverity.LOW
    service_type_guess: str | None = None
    connection_state: str | None = None


class ResolutionType(Enum):
    USE_ALTERNATIVE_PORT = "use_alternative_port"
    STOP_PROCESS = "stop_process"
    WAIT_FOR_RELEASE = "wait_for_release"
    MODIFY_CONFIGURATION = "modify_configuration"


class RiskLevel(IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


class SuggestionPriority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3


@dataclass
class ResolutionSuggestion:
    """One ranked way out of a port conflict."""

    type: ResolutionType
    description: str
    risk: RiskLevel
    priority: SuggestionPriority
    is_auto_executable: bool = False
    alternative_port: int | None = None
    command: str | None = None

    def sort_key(self) -> tuple[int, int]:
        # risk ascending, then priority descending
        return (int(self.risk), -int(self.priority))


# ============================================================================
# CONTAINERS AND ENGINES
# ============================================================================


class ContainerStatus(Enum):
    NOT_EXISTS = "not_exists"
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    EXITED = "exited"
    DEAD = "dead"
    RESTARTING = "restarting"
    REMOVING = "removing"
    UNKNOWN = "unknown"
    ERROR = "error"

    @classmethod
    def from_engine_state(cls, state: str | None) -> ContainerStatus:
        """Map the ``State`` string reported by ``ps``/``inspect`` to a status."""
        if not state:
            return cls.UNKNOWN
        normalized = state.strip().lower()
        if normalized in ("up", "running") or normalized.startswith("up "):
            return cls.RUNNING
        if normalized in ("exited", "stopped") or normalized.startswith("exited"):
            return cls.EXITED
        if normalized in ("created", "configured", "initialized"):
            return cls.CREATED
        for status in (cls.PAUSED, cls.DEAD, cls.RESTARTING, cls.REMOVING):
            if normalized == status.value:
                return status
        return cls.UNKNOWN


@dataclass
class ContainerInfo:
    id: str
    name: str
    image: str = ""
    status: ContainerStatus = ContainerStatus.UNKNOWN
    created_at: datetime | None = None
    port_mappings: list[PortMapping] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)


class EngineType(Enum):
    PODMAN = "podman"
    DOCKER = "docker"
    NONE = "none"

    @property
    def compose_binary(self) -> str | None:
        if self is EngineType.NONE:
            return None
        return f"{self.value}-compose"


@dataclass
class ContainerEngineInfo:
    type: EngineType = EngineType.NONE
    is_available: bool = False
    version: str | None = None
    install_path: str | None = None
    error_message: str | None = None


# ============================================================================
# ENVIRONMENTS
# ============================================================================


class EnvironmentType(Enum):
    """Development/Test/Production variants of one project.

    Each type carries a name suffix and a default host port offset so the three
    variants can run side by side from a single base ``.env``.
    """

    DEVELOPMENT = "Development"
    TEST = "Test"
    PRODUCTION = "Production"

    @property
    def suffix(self) -> str:
        return _ENV_SUFFIXES[self]

    @property
    def default_port_offset(self) -> int:
        return _ENV_OFFSETS[self]

    @classmethod
    def parse(cls, value: str) -> EnvironmentType:
        """Accept ``Development``/``dev``/``development`` style spellings."""
        normalized = value.strip().lower()
        for env in cls:
            if normalized in (env.value.lower(), env.suffix):
                return env
        raise ValueError(f"Unknown environment type: {value!r}")


_ENV_SUFFIXES = {
    EnvironmentType.DEVELOPMENT: "dev",
    EnvironmentType.TEST: "test",
    EnvironmentType.PRODUCTION: "prod",
}

_ENV_OFFSETS = {
    EnvironmentType.DEVELOPMENT: 0,
    EnvironmentType.TEST: 1000,
    EnvironmentType.PRODUCTION: 2000,
}


# ============================================================================
# LIFECYCLE AND LAUNCH RESULTS
# ============================================================================


class StartMode(Enum):
    ATTACHED_TO_RUNNING = "attached_to_running"
    RESUME = "resume"
    NEW = "new"


@dataclass
class StartOptions:
    """Inputs for :meth:`LifecycleController.start_container`."""

    compose_directory: Path | None = None
    port_mappings: list[PortMapping] = field(default_factory=list)
    project_name: str | None = None
    build: bool = True


@dataclass
class StartResult:
    success: bool
    mode: StartMode
    container: ContainerInfo | None = None
    allocated_ports: list[PortMapping] = field(default_factory=list)
    startup_time_ms: int = 0
    message: str = ""
    suggestions: list[ResolutionSuggestion] = field(default_factory=list)


@dataclass
class LaunchResult:
    """Process-level result of a top-level command."""

    success: bool
    message: str
    image_name: str | None = None
    container_name: str | None = None
    suggestions: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class SelectionKind(Enum):
    IMAGE = "image"
    CUSTOM = "custom"
    TEMPLATE = "template"


@dataclass(frozen=True)
class Selection:
    kind: SelectionKind
    resource: Resource


@dataclass
class SyncResult:
    success: bool
    synced_count: int = 0
    logs: list[str] = field(default_factory=list)
