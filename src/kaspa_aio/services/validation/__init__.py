"""Configuration validation and completion."""

from .builder import build_configuration, generate_password
from .validator import ConfigurationValidator

__all__ = ["ConfigurationValidator", "build_configuration", "generate_password"]
