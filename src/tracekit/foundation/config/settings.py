"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from tracekit.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.tracing.sample_rate
    1.0
    >>> settings.logging.level
    'INFO'

    # Or with environment variables:
    # TRACEKIT_TRACING_SAMPLE_RATE=0.25
    # TRACEKIT_TRACKING_URI=http://localhost:5000
    # TRACEKIT_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

from pydantic import (
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class TracingSettings(BaseSettings):
    """Span/trace collection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TRACEKIT_TRACING_",
        extra="ignore",
    )

    enabled: bool = True
    sample_rate: Annotated[float, Field(ge=0.0, le=1.0)] = 1.0
    buffer_size: PositiveInt = Field(default=100, description="Completed traces kept in memory")
    preview_max_len: PositiveInt = Field(default=1000, description="Max chars of request/response previews")
    exporter: Literal["memory", "console", "json", "tracking", "none"] = "memory"
    async_export: bool = False
    queue_size: PositiveInt = Field(default=1000, description="Async export queue capacity")
    batch_size: PositiveInt = 100
    experiment_id: str = "0"


class TrackingSettings(BaseSettings):
    """Remote tracking server connection."""

    model_config = SettingsConfigDict(
        env_prefix="TRACEKIT_TRACKING_",
        extra="ignore",
    )

    uri: str | None = Field(default=None, description="Tracking server base URL")
    token: SecretStr | None = None
    username: str | None = None
    password: SecretStr | None = None
    timeout: PositiveFloat = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = True
    credentials_path: Path = Field(
        default_factory=lambda: Path.home() / ".tracekit" / "credentials.json",
        validation_alias="TRACEKIT_CREDENTIALS_PATH",
    )

    @field_validator("uri", mode="before")
    @classmethod
    def _strip_slash(cls, v: str | None) -> str | None:
        return v.rstrip("/") if isinstance(v, str) and v else v


class RetrySettings(BaseSettings):
    """Retry behaviour for tracking-server requests."""

    model_config = SettingsConfigDict(
        env_prefix="TRACEKIT_RETRY_",
        extra="ignore",
    )

    max_retries: Annotated[int, Field(ge=0, le=10)] = 3
    base_delay: PositiveFloat = Field(default=0.5, description="Base delay in seconds")
    max_delay: PositiveFloat = Field(default=10.0, description="Maximum delay in seconds")
    jitter: bool = True


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TRACEKIT_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class TracekitSettings(BaseSettings):
    """Root settings for tracekit.

    Loads configuration from environment variables with TRACEKIT_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        TRACEKIT_TRACING_ENABLED=false
        TRACEKIT_TRACING_EXPORTER=tracking
        TRACEKIT_TRACKING_URI=https://tracking.example.com
        TRACEKIT_TRACKING_TOKEN=...
        TRACEKIT_RETRY_MAX_RETRIES=5
    """

    model_config = SettingsConfigDict(
        env_prefix="TRACEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")

    tracing: TracingSettings = Field(default_factory=TracingSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @computed_field
    @property
    def has_tracking_server(self) -> bool:
        """Whether a remote tracking server is configured."""
        return bool(self.tracking.uri)


@lru_cache(maxsize=1)
def get_settings() -> TracekitSettings:
    """Get the global settings instance (cached)."""
    return TracekitSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
