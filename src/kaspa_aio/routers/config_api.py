"""Configuration validation and generation API endpoints."""

from fastapi import APIRouter

from kaspa_aio.exceptions import ValidationError
from kaspa_aio.logger import get_logger
from kaspa_aio.models.api import GenerateResponse, SelectionRequest, ValidateResponse
from kaspa_aio.models.catalog import Service
from kaspa_aio.models.configuration import HostContext, ValidationReport
from kaspa_aio.services.catalog import get_catalog
from kaspa_aio.services.generation import ConfigurationGenerator
from kaspa_aio.services.validation import ConfigurationValidator, build_configuration
from kaspa_aio.services.versions import get_version_store

logger = get_logger(__name__)

router = APIRouter(prefix="/api/config", tags=["config"])


def _validate_selection(request: SelectionRequest) -> tuple[ValidationReport, list[Service]]:
    catalog = get_catalog()
    profiles = list(request.profiles)
    template_defaults = {}
    if request.template is not None:
        template = catalog.get_template(request.template)
        template_defaults = dict(template.defaults)
        profiles = profiles or list(template.profiles)

    selection = catalog.resolve_profiles(profiles)
    configuration = build_configuration(catalog, request.config, selection.services, template_defaults)
    host_context = HostContext(previous_network=get_version_store().previous_network())
    report = ConfigurationValidator(catalog).validate(configuration, selection.services, host_context)
    return report, selection.services


@router.post("/validate", response_model=ValidateResponse)
async def validate_config(request: SelectionRequest) -> ValidateResponse:
    """Validate a configuration for the selected profiles.

    Every problem is reported in one pass. Defaults and generated secrets are
    filled in before checking, so the returned ``config`` is what would be
    installed.

    Raises:
        CatalogError: unknown profile or template
        DependencyConflictError: two selected profiles conflict
    """
    report, services = _validate_selection(request)
    return ValidateResponse(
        valid=report.valid,
        errors=report.errors,
        warnings=report.warnings,
        dropped_keys=report.dropped_keys,
        services=[s.id for s in services],
        config=report.configuration.plain(),
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate_config(request: SelectionRequest) -> GenerateResponse:
    """Render the compose manifest and secrets file without touching the host.

    Raises:
        ValidationError: the configuration has errors
        GenerationError: a service's bindings do not match its interface
    """
    report, services = _validate_selection(request)
    if report.errors:
        raise ValidationError(report.errors)

    catalog = get_catalog()
    artifacts = ConfigurationGenerator(catalog_version=catalog.version).generate(report.configuration, services)
    logger.info(f"Generated manifest preview for {len(artifacts.services)} service(s)")
    return GenerateResponse(
        manifest=artifacts.manifest,
        secrets_file=artifacts.secrets_file,
        services=artifacts.services,
        dropped_keys=report.dropped_keys,
    )
