"""Configuration module for the LLMChat gateway."""

from .observability import (
    ExporterSettings,
    ObservabilitySettings,
    resolve_exporters_from_env,
)
from .settings import Settings, get_settings, reset_settings


__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "ExporterSettings",
    "ObservabilitySettings",
    "resolve_exporters_from_env",
]
