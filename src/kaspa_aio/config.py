"""Configuration management for the installer engine."""

import os
import sys
from pathlib import Path
from typing import Any

import yaml

from kaspa_aio.models.config import AppConfig


def default_config_path() -> Path:
    """Platform-specific location of config.yaml."""
    if sys.platform == "win32":
        # Windows: %APPDATA%\KaspaAIO
        config_dir = Path(os.getenv("APPDATA", str(Path.home()))) / "KaspaAIO"
    elif sys.platform == "darwin":
        # macOS: ~/Library/Application Support/KaspaAIO
        config_dir = Path.home() / "Library" / "Application Support" / "KaspaAIO"
    else:
        # Linux/Unix: ~/.config/kaspa-aio
        config_dir = Path.home() / ".config" / "kaspa-aio"
    return config_dir / "config.yaml"


class ConfigManager:
    """Manages application configuration with YAML file and environment variable support."""

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            config_path: Path to config file. If None, uses KASPA_AIO_CONFIG_PATH
                        environment variable or defaults to platform-specific config directory
        """
        if config_path is None:
            env_path = os.getenv("KASPA_AIO_CONFIG_PATH")
            config_path = Path(env_path).expanduser() if env_path else default_config_path()

        self.config_path = config_path
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """Load configuration from file and apply environment variable overrides.

        Returns:
            Loaded configuration
        """
        config_data: dict[str, Any] = {}

        # 1. Load from YAML file if it exists
        if self.config_path.exists():
            with open(self.config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}

        # 2. Create config object (applies defaults)
        config = AppConfig(**config_data)

        # 3. Apply environment variable overrides
        return self._apply_env_overrides(config)

    def save(self, config: AppConfig) -> None:
        """Save configuration to YAML file.

        Args:
            config: Configuration to save
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        # mode="json" turns Path objects into strings
        config_dict = config.model_dump(mode="json", exclude_none=True)

        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump(config_dict, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def _apply_env_overrides(self, config: AppConfig) -> AppConfig:
        """Apply environment variable overrides.

        Environment variables use the format: KASPA_AIO_<SECTION>_<KEY>
        Examples:
            - KASPA_AIO_SERVER_PORT=9000
            - KASPA_AIO_DATA_DIR=~/custom/path

        Args:
            config: Base configuration

        Returns:
            Configuration with environment overrides applied
        """
        # Server overrides
        if port := os.getenv("KASPA_AIO_SERVER_PORT"):
            config.server.port = int(port)
        if host := os.getenv("KASPA_AIO_SERVER_HOST"):
            config.server.host = host

        # Path overrides
        if data_dir := os.getenv("KASPA_AIO_DATA_DIR"):
            config.paths.data_dir = Path(data_dir).expanduser()
            # Recalculate dependent paths that were derived from the old data_dir
            config.paths.project_dir = None
            config.paths.versions_dir = None
            config.paths.runs_dir = None
            config.paths.model_post_init(None)
        if project_dir := os.getenv("KASPA_AIO_PROJECT_DIR"):
            config.paths.project_dir = Path(project_dir).expanduser()

        # Logging overrides
        if level := os.getenv("KASPA_AIO_LOG_LEVEL"):
            if level.upper() in ("INFO", "DEBUG", "TRACE"):
                config.advanced.log_level = level.upper()  # type: ignore

        return config

    def get_config(self) -> AppConfig:
        """Get configuration (singleton pattern).

        Returns:
            Current configuration
        """
        if self._config is None:
            self._config = self.load()
        return self._config

    def reload(self) -> AppConfig:
        """Reload configuration from file.

        Returns:
            Reloaded configuration
        """
        self._config = self.load()
        return self._config


# Global configuration manager instance
_config_manager = ConfigManager()


def get_config() -> AppConfig:
    """Get global application configuration.

    Returns:
        Application configuration
    """
    return _config_manager.get_config()


def reload_config() -> AppConfig:
    """Reload configuration from file.

    Returns:
        Reloaded configuration
    """
    return _config_manager.reload()


def save_config(config: AppConfig) -> None:
    """Save configuration to file.

    Args:
        config: Configuration to save
    """
    _config_manager.save(config)
