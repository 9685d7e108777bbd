"""Configuration version history and rollback."""

from functools import lru_cache

from kaspa_aio.config import get_config
from kaspa_aio.services.catalog import get_catalog

from .rollback import RollbackManager
from .store import VersionStore


@lru_cache
def get_version_store() -> VersionStore:
    """Get the version store for the configured data directory (singleton)."""
    catalog = get_catalog()
    secret_keys = [
        spec.key for service in catalog.catalog.services for spec in service.settings if spec.type == "password"
    ]
    versions_dir = get_config().paths.versions_dir
    assert versions_dir is not None
    return VersionStore(versions_dir, secret_keys=secret_keys)


__all__ = ["RollbackManager", "VersionStore", "get_version_store"]
