"""Configuration management using pydantic-settings."""

from .settings import (
    LoggingSettings,
    RetrySettings,
    TracekitSettings,
    TracingSettings,
    TrackingSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "LoggingSettings",
    "RetrySettings",
    "TracekitSettings",
    "TracingSettings",
    "TrackingSettings",
    "clear_settings_cache",
    "get_settings",
]
