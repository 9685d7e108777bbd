"""Service catalog API endpoints."""

from fastapi import APIRouter

from kaspa_aio.exceptions import ResourceNotFoundError
from kaspa_aio.logger import get_logger
from kaspa_aio.models.api import TemplateDetail
from kaspa_aio.models.catalog import Catalog
from kaspa_aio.services.catalog import get_catalog

logger = get_logger(__name__)

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("", response_model=Catalog)
async def get_service_catalog() -> Catalog:
    """Get the full catalog: services, profiles, templates and global settings."""
    return get_catalog().catalog


@router.get("/templates/{template_id}", response_model=TemplateDetail)
async def get_template(template_id: str) -> TemplateDetail:
    """Get a template with the services its profiles resolve to.

    Raises:
        ResourceNotFoundError: unknown template
    """
    catalog = get_catalog()
    template = catalog.find_template(template_id)
    if template is None:
        raise ResourceNotFoundError("catalog.template.unknown", template=template_id)
    selection = catalog.resolve_profiles(template.profiles)
    return TemplateDetail(template=template, services=selection.service_ids)
