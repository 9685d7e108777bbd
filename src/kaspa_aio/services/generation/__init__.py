"""Deployable artifact generation."""

from .generator import MANIFEST_FILENAME, SECRETS_FILENAME, ConfigurationGenerator

__all__ = ["MANIFEST_FILENAME", "SECRETS_FILENAME", "ConfigurationGenerator"]
