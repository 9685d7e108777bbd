"""Configuration data models for the installer engine."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Server configuration."""

    port: int = 3000
    host: str = "127.0.0.1"


class PathsConfig(BaseModel):
    """Paths configuration."""

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".kaspa-aio")
    project_dir: Path | None = None  # Where docker-compose.yml and .env are written
    versions_dir: Path | None = None
    runs_dir: Path | None = None

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v: str | Path) -> Path:
        """Expand user path for data_dir."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("project_dir", "versions_dir", "runs_dir", mode="before")
    @classmethod
    def expand_optional_path(cls, v: str | Path | None) -> Path | None:
        """Expand user path for optional paths."""
        if v is None:
            return None
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    def model_post_init(self, __context: object) -> None:
        """Set default subdirectories if not specified."""
        if self.project_dir is None:
            self.project_dir = self.data_dir / "project"
        if self.versions_dir is None:
            self.versions_dir = self.data_dir / "versions"
        if self.runs_dir is None:
            self.runs_dir = self.data_dir / "runs"

    @property
    def lock_file(self) -> Path:
        """Host-wide installation lock."""
        return self.data_dir / "install.lock"


class OrchestrationConfig(BaseModel):
    """Knobs for the installation pipeline."""

    compose_project: str = "kaspa-aio"
    pull_attempts: int = Field(default=3, ge=1)
    pull_backoff_seconds: float = 2.0
    pull_backoff_max_seconds: float = 30.0
    health_poll_interval_seconds: float = 2.0
    health_timeout_seconds: float = 300.0
    log_tail_lines: int = 50
    subscriber_buffer: int = Field(default=256, ge=1)


class AdvancedConfig(BaseModel):
    """Advanced configuration."""

    log_level: Literal["INFO", "DEBUG", "TRACE"] = "INFO"
    log_format: Literal["json", "console"] = "json"


class AppConfig(BaseModel):
    """Complete application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)
