"""User configuration models."""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

Provenance = Literal["user", "default", "generated"]


class SettingValue(BaseModel):
    """A configured value and where it came from."""

    value: Any
    provenance: Provenance = "user"


class Configuration(BaseModel):
    """Mapping of setting key to typed value."""

    values: dict[str, SettingValue] = {}

    @classmethod
    def from_plain(cls, values: dict[str, Any], provenance: Provenance = "user") -> "Configuration":
        return cls(values={key: SettingValue(value=value, provenance=provenance) for key, value in values.items()})

    def plain(self) -> dict[str, Any]:
        """Return the bare key -> value mapping."""
        return {key: setting.value for key, setting in self.values.items()}

    def get(self, key: str, default: Any = None) -> Any:  # noqa: ANN401
        setting = self.values.get(key)
        return setting.value if setting is not None else default

    def __contains__(self, key: object) -> bool:
        return key in self.values


class HostContext(BaseModel):
    """Facts about the target host the validator checks against."""

    previous_network: str | None = None
    check_filesystem: bool = True
    project_dir: Path | None = None


class ValidationIssue(BaseModel):
    """One validation error or warning."""

    stage: Literal["type", "cross_field", "filesystem", "network"]
    key: str | None = None
    message: str
    services: list[str] = []
    port: int | None = None
    path: str | None = None


class ValidationReport(BaseModel):
    """Batch result of a validation pass."""

    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    dropped_keys: list[str] = []
    configuration: Configuration = Field(default_factory=Configuration)

    @property
    def valid(self) -> bool:
        return not self.errors
