"""Configuration version history API endpoints."""

from fastapi import APIRouter, Query

from kaspa_aio.logger import get_logger
from kaspa_aio.models.api import RestoreRequest, SnapshotRequest
from kaspa_aio.models.installation import InstallationRun
from kaspa_aio.models.version import ConfigVersion, VersionDiff
from kaspa_aio.services.installation import get_rollback_manager
from kaspa_aio.services.versions import get_version_store

logger = get_logger(__name__)

router = APIRouter(prefix="/api/versions", tags=["versions"])


@router.get("", response_model=list[ConfigVersion])
async def list_versions() -> list[ConfigVersion]:
    """List every stored version, oldest first."""
    return get_version_store().history()


@router.get("/current", response_model=ConfigVersion | None)
async def get_current_version() -> ConfigVersion | None:
    return get_version_store().current()


@router.get("/checkpoints", response_model=list[ConfigVersion])
async def list_checkpoints() -> list[ConfigVersion]:
    return get_version_store().checkpoints()


@router.get("/diff", response_model=VersionDiff)
async def diff_versions(a: str = Query(...), b: str = Query(...)) -> VersionDiff:
    """Key-level difference between two versions. Secret values are masked."""
    return get_version_store().diff(a, b)


@router.post("/snapshot", response_model=ConfigVersion, status_code=201)
async def create_snapshot(request: SnapshotRequest) -> ConfigVersion:
    """Store a copy of the current configuration without changing what is installed.

    Raises:
        ResourceNotFoundError: nothing has been installed yet
    """
    return get_version_store().snapshot(label=request.label, checkpoint=request.checkpoint)


@router.post("/restore", response_model=InstallationRun, status_code=202)
async def restore_version(request: RestoreRequest) -> InstallationRun:
    """Re-install a stored version through the full installation pipeline.

    Raises:
        ResourceNotFoundError: unknown version
        InstallationConflictError: another installation is in flight
    """
    return await get_rollback_manager().restore(request.version_id)


@router.get("/{version_id}", response_model=ConfigVersion)
async def get_version(version_id: str) -> ConfigVersion:
    return get_version_store().get(version_id)
