"""Restore a stored configuration by re-running the full pipeline."""

from typing import TYPE_CHECKING

from kaspa_aio.exceptions import ResourceNotFoundError
from kaspa_aio.logger import get_logger
from kaspa_aio.models.installation import InstallationRun

from .store import VersionStore

if TYPE_CHECKING:
    from kaspa_aio.services.installation.orchestrator import InstallationOrchestrator

logger = get_logger(__name__)


class RollbackManager:
    """Restores versions through the orchestrator, never by patching services in place."""

    def __init__(self, store: VersionStore, orchestrator: "InstallationOrchestrator") -> None:
        self.store = store
        self.orchestrator = orchestrator

    async def restore(self, version_id: str) -> InstallationRun:
        """
        Re-install the configuration captured at ``version_id``.

        Validation, generation and health gating all run again; nothing about
        the stored state is assumed to still be valid.

        Args:
            version_id: Version to restore

        Returns:
            The new installation run

        Raises:
            ResourceNotFoundError: unknown version
            InstallationConflictError: another run is in flight
        """
        version = self.store.get(version_id)
        logger.info(f"Restoring configuration {version.id} (profiles {version.profiles})")
        return await self.orchestrator.start(
            version.configuration.model_copy(deep=True),
            profiles=list(version.profiles),
            restored_from=version.id,
        )

    async def undo_last_change(self) -> InstallationRun:
        """Restore the most recent checkpoint.

        Raises:
            ResourceNotFoundError: no checkpoint has been taken yet
        """
        checkpoints = self.store.checkpoints()
        if not checkpoints:
            raise ResourceNotFoundError("version.empty")
        return await self.restore(checkpoints[-1].id)
