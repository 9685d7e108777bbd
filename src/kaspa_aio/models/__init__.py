"""Data models for the Kaspa All-in-One installer engine."""

from kaspa_aio.models.catalog import Catalog, Profile, ResolvedSelection, Service, SettingSpec, Template
from kaspa_aio.models.config import AppConfig
from kaspa_aio.models.configuration import Configuration, HostContext, SettingValue, ValidationReport
from kaspa_aio.models.installation import GeneratedArtifacts, InstallationRun, Phase, ProgressEvent
from kaspa_aio.models.resources import HostResources, ResourceReport
from kaspa_aio.models.version import ConfigVersion, VersionDiff

__all__ = [
    "AppConfig",
    "Catalog",
    "ConfigVersion",
    "Configuration",
    "GeneratedArtifacts",
    "HostContext",
    "HostResources",
    "InstallationRun",
    "Phase",
    "Profile",
    "ProgressEvent",
    "ResolvedSelection",
    "ResourceReport",
    "Service",
    "SettingSpec",
    "SettingValue",
    "Template",
    "ValidationReport",
    "VersionDiff",
]
