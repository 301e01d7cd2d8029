"""Environment-based configuration using pydantic-settings.

Example:
    >>> from batchloader.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.loader.resolver_suffix
    'Resolver'

    # Or with environment variables:
    # BATCHLOADER_LOADER_MAX_CONCURRENCY=16
    # BATCHLOADER_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoaderSettings(BaseSettings):
    """Batch window and strategy defaults."""

    model_config = SettingsConfigDict(
        env_prefix="BATCHLOADER_LOADER_",
        extra="ignore",
    )

    max_concurrency: Annotated[int, Field(ge=1, le=1000)] | None = Field(
        default=None,
        description="Max in-flight per-key fetches for single-key resolvers (None = unbounded)",
    )
    resolver_suffix: Annotated[str, Field(min_length=1)] = "Resolver"
    cache_enabled: bool = Field(default=True, description="Memoise outcomes for the rest of the request")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BATCHLOADER_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class UsageSettings(BaseSettings):
    """Usage instrumentation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BATCHLOADER_USAGE_",
        extra="ignore",
    )

    enabled: bool = True
    introspection_operation: str = "IntrospectionQuery"
    anonymous_user: str = "anonymous"
    skip_prefix: str = "__schema"
    report_user: str = Field(default="graphql", description="Only caller allowed to read the usage report")


class BatchloaderSettings(BaseSettings):
    """Root settings, loaded from BATCHLOADER_* variables and an optional .env file.

    Example environment variables:
        BATCHLOADER_DEBUG=true
        BATCHLOADER_LOADER_MAX_CONCURRENCY=8
        BATCHLOADER_LOG_FORMAT=json
        BATCHLOADER_USAGE_ENABLED=false
    """

    model_config = SettingsConfigDict(
        env_prefix="BATCHLOADER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    loader: LoaderSettings = Field(default_factory=LoaderSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    usage: UsageSettings = Field(default_factory=UsageSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> BatchloaderSettings:
    """Get the process-wide settings instance (cached)."""
    return BatchloaderSettings()


def clear_settings_cache() -> None:
    """Drop the cached settings so the next get_settings() rereads the environment."""
    get_settings.cache_clear()
