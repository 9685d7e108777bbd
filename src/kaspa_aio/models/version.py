"""Configuration version history models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from kaspa_aio.models.configuration import Configuration


class ConfigVersion(BaseModel):
    """Immutable snapshot of a configuration and its active profiles."""

    id: str
    created_at: datetime = Field(default_factory=datetime.now)
    label: str | None = None
    checkpoint: bool = False
    configuration: Configuration
    profiles: list[str] = []
    restored_from: str | None = None
    run_id: str | None = None


class VersionHistory(BaseModel):
    """Root structure of history.json."""

    current: str | None = None
    versions: list[ConfigVersion] = []


class ValueChange(BaseModel):
    key: str
    change: Literal["added", "removed", "changed"]
    old: Any = None
    new: Any = None


class VersionDiff(BaseModel):
    """Structured change list between two versions."""

    from_version: str
    to_version: str
    changes: list[ValueChange] = []
    profiles_added: list[str] = []
    profiles_removed: list[str] = []

    @property
    def empty(self) -> bool:
        return not (self.changes or self.profiles_added or self.profiles_removed)
