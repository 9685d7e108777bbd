"""Installation run models."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from kaspa_aio.models.configuration import Configuration


class Phase(str, Enum):
    """Phases of an installation run, in forward order."""

    VALIDATING = "validating"
    GENERATING_CONFIG = "generating_config"
    ACQUIRING_IMAGES = "acquiring_images"
    STARTING_INFRASTRUCTURE = "starting_infrastructure"
    AWAITING_INFRASTRUCTURE_HEALTH = "awaiting_infrastructure_health"
    STARTING_APPLICATIONS = "starting_applications"
    AWAITING_APPLICATION_HEALTH = "awaiting_application_health"
    VERIFYING = "verifying"
    COMPLETE = "complete"
    FAILED = "failed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    NEEDS_INTERVENTION = "needs_intervention"

    @property
    def rank(self) -> int:
        """Position in declaration order. Every legal transition increases it."""
        return PHASE_ORDER.index(self)


PHASE_ORDER: list[Phase] = list(Phase)

ServiceStatus = Literal["pending", "pulling", "pulled", "starting", "healthy", "running", "failed", "stopped"]


class ServiceState(BaseModel):
    service: str
    kind: Literal["infrastructure", "application"]
    status: ServiceStatus = "pending"
    message: str | None = None
    updated_at: datetime = Field(default_factory=datetime.now)


class RunLogLine(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    phase: Phase
    service: str | None = None
    level: Literal["info", "warning", "error"] = "info"
    message: str


class FailureInfo(BaseModel):
    """Failure attributed to exactly one phase and, where applicable, one service."""

    phase: Phase
    service: str | None = None
    code: str
    message: str
    logs: list[str] = []


class InstallationRun(BaseModel):
    """An in-progress or finished installation."""

    id: str
    phase: Phase = Phase.VALIDATING
    profiles: list[str]
    template: str | None = None
    configuration: Configuration
    services: dict[str, ServiceState] = {}
    started_services: list[str] = []  # in start order, for rollback
    retired_services: list[str] = []  # previous topology stopped by this run
    logs: list[RunLogLine] = []
    failure: FailureInfo | None = None
    rollback_error: str | None = None
    checkpoint_id: str | None = None
    result_version_id: str | None = None
    restored_from: str | None = None
    dropped_keys: list[str] = []
    cancel_requested: bool = False
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def active(self) -> bool:
        return self.finished_at is None


class GeneratedArtifacts(BaseModel):
    """Deployable artifacts: the compose manifest and the environment file."""

    manifest: str
    secrets_file: str
    services: list[str] = []


class ProgressEvent(BaseModel):
    """Structured event fanned out to progress subscribers."""

    type: Literal["snapshot", "phase", "service", "log"]
    run_id: str
    seq: int
    phase: Phase
    service: str | None = None
    status: str | None = None
    message: str | None = None
    services: dict[str, ServiceState] | None = None  # snapshot only
    timestamp: datetime = Field(default_factory=datetime.now)
