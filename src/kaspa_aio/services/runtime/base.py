"""Boundary to the external container runtime."""

from abc import ABC, abstractmethod
from enum import Enum

from kaspa_aio.models.catalog import Service
from kaspa_aio.models.installation import GeneratedArtifacts


class HealthState(str, Enum):
    """Observed state of one service container."""

    STARTING = "starting"
    HEALTHY = "healthy"
    RUNNING = "running"  # up, no healthcheck declared
    UNHEALTHY = "unhealthy"
    EXITED = "exited"
    MISSING = "missing"


class ContainerRuntime(ABC):
    """Desired-state executor the orchestrator drives.

    The engine only emits artifacts and issues start/stop/health/log calls;
    container lifecycle itself belongs to the runtime.
    """

    @abstractmethod
    async def write_artifacts(self, artifacts: GeneratedArtifacts) -> None:
        """Hand the manifest and secrets file to the runtime."""

    @abstractmethod
    async def pull_image(self, service: Service) -> None:
        """Fetch the service's image.

        Raises:
            ImageAcquisitionError: ``retriable`` is True for transient failures
        """

    @abstractmethod
    async def start_services(self, service_ids: list[str]) -> None:
        """Start the given services without touching their dependencies.

        Raises:
            RuntimeCommandError: the runtime refused to start a service
        """

    @abstractmethod
    async def stop_services(self, service_ids: list[str]) -> None:
        """Stop the given services."""

    @abstractmethod
    async def health(self, service_id: str) -> HealthState:
        """Current health of one service."""

    @abstractmethod
    async def logs(self, service_id: str, lines: int) -> list[str]:
        """Last ``lines`` log lines of one service."""

    @abstractmethod
    async def running_services(self) -> list[str]:
        """Services currently running in the project."""
