"""API request/response models for configuration and installation endpoints."""

from typing import Any

from pydantic import BaseModel

from kaspa_aio.models.catalog import Template
from kaspa_aio.models.configuration import ValidationIssue
from kaspa_aio.models.resources import HostResources


class SelectionRequest(BaseModel):
    """A configuration plus the profiles (or template) it applies to."""

    config: dict[str, Any] = {}
    profiles: list[str] = []
    template: str | None = None


class ValidateResponse(BaseModel):
    valid: bool
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]
    dropped_keys: list[str]
    services: list[str]
    config: dict[str, Any]


class GenerateResponse(BaseModel):
    manifest: str
    secrets_file: str
    services: list[str]
    dropped_keys: list[str]


class InstallStartRequest(SelectionRequest):
    enforce_resources: bool = False


class ResourceCheckRequest(BaseModel):
    profiles: list[str]
    host: HostResources | None = None
    detect_host: bool = False  # measure this machine when no host is given


class TemplateDetail(BaseModel):
    template: Template
    services: list[str]


class SnapshotRequest(BaseModel):
    label: str | None = None
    checkpoint: bool = False


class RestoreRequest(BaseModel):
    version_id: str
