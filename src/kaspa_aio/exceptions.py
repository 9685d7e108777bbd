"""Centralized exception hierarchy for the installer engine.

Every error carries a dotted message key (stable, machine readable), an
English message template for logs and API responses, and the parameters
used to render it.
"""

from typing import Any

MESSAGES: dict[str, str] = {
    "catalog.profile.unknown": "Unknown profile '{profile}'",
    "catalog.template.unknown": "Unknown template '{template}'",
    "catalog.service.unknown": "Unknown service '{service}'",
    "catalog.dependency.unknown": "Service '{service}' depends on unknown service '{dependency}'",
    "catalog.dependency.cycle": "Dependency cycle between services: {services}",
    "catalog.dependency.kind": "Infrastructure service '{service}' cannot depend on application service '{dependency}'",
    "catalog.load.failed": "Failed to load service catalog from {path}: {reason}",
    "profile.conflict": "Profiles '{first}' and '{second}' cannot be installed together",
    "config.invalid": "Configuration has {count} validation error(s)",
    "resources.insufficient": "Host resources are insufficient: {dimensions}",
    "generation.interface_mismatch": "Service '{service}' declares interface '{interface}' but binding '{key}' uses {form}",
    "generation.missing_value": "Service '{service}' needs '{key}' to render its command line",
    "generation.binding_empty": "Binding '{key}' of service '{service}' emits nothing",
    "images.pull_failed": "Failed to pull image '{image}' for '{service}' after {attempts} attempt(s)",
    "runtime.command_failed": "Runtime command failed for '{service}': {reason}",
    "health.timeout": "Service '{service}' did not become healthy within {timeout}s (last state: {state})",
    "health.exited": "Service '{service}' exited while waiting for health",
    "install.conflict": "Installation {run_id} is already in progress",
    "install.cancelled": "Installation cancelled by operator",
    "install.verification_failed": "Service '{service}' is not running after startup",
    "install.run_not_found": "Installation run '{run_id}' not found",
    "install.run_active": "Installation run '{run_id}' is still active",
    "install.run_finished": "Installation run '{run_id}' has already finished",
    "install.internal_error": "Unexpected error: {reason}",
    "rollback.failed": "Rollback failed; manual intervention required: {reason}",
    "version.not_found": "Configuration version '{version_id}' not found",
    "version.empty": "No configuration has been recorded yet",
}


class AppBaseError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(
        self,
        message_key: str,
        status_code: int = 500,
        retriable: bool = False,
        **params: Any,  # noqa: ANN401
    ) -> None:
        """
        Initialize the error.

        Args:
            message_key: Dotted key in MESSAGES (e.g., 'catalog.profile.unknown')
            status_code: Recommended HTTP status code
            retriable: Whether the operation can be retried
            **params: Parameters for string formatting
        """
        super().__init__(message_key)
        self.message_key = message_key
        self.status_code = status_code
        self.retriable = retriable
        self.params = params

    @property
    def message(self) -> str:
        template = MESSAGES.get(self.message_key)
        if template is None:
            return self.message_key
        try:
            return template.format(**self.params)
        except (KeyError, IndexError):
            return template

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialisable form for API responses."""
        return {
            "code": self.message_key,
            "message": self.message,
            "retriable": self.retriable,
            "params": {k: v for k, v in self.params.items() if _is_jsonable(v)},
        }


def _is_jsonable(value: object) -> bool:
    return isinstance(value, str | int | float | bool | list | dict | type(None))


class ResourceNotFoundError(AppBaseError):
    """Raised when a requested resource (run, version, template) is not found."""

    def __init__(self, message_key: str, **params: Any) -> None:  # noqa: ANN401
        super().__init__(message_key, status_code=404, **params)


class ResourceConflictError(AppBaseError):
    """Raised when an operation conflicts with the current state."""

    def __init__(self, message_key: str, **params: Any) -> None:  # noqa: ANN401
        super().__init__(message_key, status_code=409, **params)


class OperationalError(AppBaseError):
    """Raised when an operational failure occurs (runtime command, image pull, etc.)."""

    def __init__(self, message_key: str, retriable: bool = False, **params: Any) -> None:  # noqa: ANN401
        super().__init__(message_key, status_code=500, retriable=retriable, **params)


class CatalogError(AppBaseError):
    """Catalog authoring defect. Fatal, never a user error."""

    def __init__(self, message_key: str, **params: Any) -> None:  # noqa: ANN401
        super().__init__(message_key, status_code=500, **params)


class ValidationError(AppBaseError):
    """User-correctable configuration problems, reported as one batch."""

    def __init__(self, issues: list[Any], message_key: str = "config.invalid") -> None:
        super().__init__(message_key, status_code=400, count=len(issues))
        self.issues = issues

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [issue.model_dump(mode="json") if hasattr(issue, "model_dump") else issue for issue in self.issues]
        return data


class DependencyConflictError(ResourceConflictError):
    """Two selected profiles declare each other incompatible."""

    def __init__(self, first: str, second: str) -> None:
        super().__init__("profile.conflict", first=first, second=second)
        self.profiles = (first, second)


class ResourceInsufficientError(AppBaseError):
    """Host cannot satisfy the minimum requirements (only raised on request)."""

    def __init__(self, dimensions: list[str]) -> None:
        super().__init__("resources.insufficient", status_code=422, dimensions=", ".join(dimensions))
        self.dimensions = dimensions


class ResourceBelowRecommendedWarning(UserWarning):
    """Host meets the minimum but not the recommended requirements. Never blocks."""


class GenerationError(AppBaseError):
    """Interface contract mismatch between catalog and generator. Fatal."""

    def __init__(self, message_key: str, **params: Any) -> None:  # noqa: ANN401
        super().__init__(message_key, status_code=500, **params)


class ImageAcquisitionError(OperationalError):
    """Pulling an image failed. Transient failures are retried by the orchestrator."""

    def __init__(self, service: str, image: str, attempts: int = 1, reason: str = "", transient: bool = True) -> None:
        super().__init__(
            "images.pull_failed",
            retriable=transient,
            service=service,
            image=image,
            attempts=attempts,
            reason=reason,
        )
        self.service = service
        self.image = image


class RuntimeCommandError(OperationalError):
    """A call into the container runtime failed."""

    def __init__(self, service: str, reason: str) -> None:
        super().__init__("runtime.command_failed", service=service, reason=reason)
        self.service = service


class HealthTimeoutError(OperationalError):
    """A service did not report healthy within the bounded poll. Not retried."""

    def __init__(self, service: str, timeout: float, state: str, message_key: str = "health.timeout") -> None:
        super().__init__(message_key, service=service, timeout=timeout, state=state)
        self.status_code = 504
        self.service = service


class InstallationConflictError(ResourceConflictError):
    """A second installation was requested while one is in flight."""

    def __init__(self, run_id: str) -> None:
        super().__init__("install.conflict", run_id=run_id)


class RollbackFailure(AppBaseError):
    """Reverting a failed run failed as well. The system needs manual intervention."""

    def __init__(self, reason: str) -> None:
        super().__init__("rollback.failed", status_code=500, reason=reason)
