"""Service catalog."""

from functools import lru_cache

from kaspa_aio.utils import get_resources_dir

from .registry import ServiceCatalog


@lru_cache
def get_catalog() -> ServiceCatalog:
    """Get the bundled service catalog (singleton)."""
    return ServiceCatalog.load(get_resources_dir() / "service_catalog.json")


__all__ = ["ServiceCatalog", "get_catalog"]
