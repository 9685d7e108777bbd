"""Installation API endpoints."""

from fastapi import APIRouter, Response

from kaspa_aio.logger import get_logger
from kaspa_aio.models.api import InstallStartRequest
from kaspa_aio.models.installation import InstallationRun
from kaspa_aio.services.installation import get_orchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/api/install", tags=["install"])


@router.post("/start", response_model=InstallationRun, status_code=202)
async def start_installation(request: InstallStartRequest) -> InstallationRun:
    """Start an installation in the background.

    Progress is streamed on ``/api/ws/install/{run_id}``; the run can also be
    polled with ``GET /api/install/runs/{run_id}``.

    Raises:
        InstallationConflictError: another installation is in flight (409)
    """
    run = await get_orchestrator().start(
        request.config,
        profiles=request.profiles,
        template=request.template,
        enforce_resources=request.enforce_resources,
    )
    return run


@router.get("/active", response_model=InstallationRun | None)
async def get_active_installation() -> InstallationRun | None:
    """Get the run in flight on this host, if any."""
    return get_orchestrator().active_run()


@router.get("/runs/{run_id}", response_model=InstallationRun)
async def get_installation(run_id: str) -> InstallationRun:
    return get_orchestrator().get_run(run_id)


@router.post("/runs/{run_id}/cancel", response_model=InstallationRun)
async def cancel_installation(run_id: str) -> InstallationRun:
    """Request cancellation. The run stops at its next phase boundary and rolls back."""
    return get_orchestrator().cancel(run_id)


@router.delete("/runs/{run_id}", status_code=204)
async def delete_installation(run_id: str) -> Response:
    """Forget a finished run."""
    get_orchestrator().discard(run_id)
    return Response(status_code=204)
