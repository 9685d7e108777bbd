"""Installation orchestration and progress broadcasting."""

from functools import lru_cache

from kaspa_aio.config import get_config
from kaspa_aio.services.catalog import get_catalog
from kaspa_aio.services.runtime import ComposeRuntime
from kaspa_aio.services.versions import RollbackManager, get_version_store

from .broadcaster import ProgressBroadcaster, Subscription
from .orchestrator import InstallationOrchestrator


@lru_cache
def get_broadcaster() -> ProgressBroadcaster:
    """Get the progress broadcaster (singleton)."""
    return ProgressBroadcaster(get_config().orchestration.subscriber_buffer)


@lru_cache
def get_orchestrator() -> InstallationOrchestrator:
    """Get the installation orchestrator driving docker compose (singleton)."""
    config = get_config()
    assert config.paths.project_dir is not None
    runtime = ComposeRuntime(config.paths.project_dir, config.orchestration.compose_project)
    return InstallationOrchestrator(get_catalog(), runtime, get_version_store(), get_broadcaster(), config)


@lru_cache
def get_rollback_manager() -> RollbackManager:
    """Get the rollback manager (singleton)."""
    return RollbackManager(get_version_store(), get_orchestrator())


__all__ = [
    "InstallationOrchestrator",
    "ProgressBroadcaster",
    "Subscription",
    "get_broadcaster",
    "get_orchestrator",
    "get_rollback_manager",
]
