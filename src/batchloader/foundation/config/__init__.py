"""Configuration management using pydantic-settings."""

from .settings import (
    BatchloaderSettings,
    LoaderSettings,
    LoggingSettings,
    UsageSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "BatchloaderSettings",
    "LoaderSettings",
    "LoggingSettings",
    "UsageSettings",
    "clear_settings_cache",
    "get_settings",
]
