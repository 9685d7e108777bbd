"""Resource requirement API endpoints."""

from fastapi import APIRouter

from kaspa_aio.config import get_config
from kaspa_aio.logger import get_logger
from kaspa_aio.models.api import ResourceCheckRequest
from kaspa_aio.models.resources import HostResources, ResourceReport
from kaspa_aio.services.catalog import get_catalog
from kaspa_aio.services.resources import HostResourceDetector, ResourceCalculator

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["resources"])


@router.post("/resource-check", response_model=ResourceReport)
async def check_resources(request: ResourceCheckRequest) -> ResourceReport:
    """Combine the requirements of the selected profiles and compare them to a host.

    Shared services are counted once. Without ``host`` (and without
    ``detect_host``) only the totals are returned.
    """
    host = request.host
    if host is None and request.detect_host:
        host = HostResourceDetector().detect(get_config().paths.data_dir)
    return ResourceCalculator(get_catalog()).combine(request.profiles, host)


@router.get("/resources/host", response_model=HostResources)
async def get_host_resources() -> HostResources:
    """Measure available memory, CPU cores and disk on this machine."""
    return HostResourceDetector().detect(get_config().paths.data_dir)
