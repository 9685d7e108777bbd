"""API models package."""

from kaspa_aio.models.api.install import (
    GenerateResponse,
    InstallStartRequest,
    ResourceCheckRequest,
    RestoreRequest,
    SelectionRequest,
    SnapshotRequest,
    TemplateDetail,
    ValidateResponse,
)

__all__ = [
    "GenerateResponse",
    "InstallStartRequest",
    "ResourceCheckRequest",
    "RestoreRequest",
    "SelectionRequest",
    "SnapshotRequest",
    "TemplateDetail",
    "ValidateResponse",
]
