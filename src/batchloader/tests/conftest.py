"""Shared fixtures: captured structured logs and a clean settings cache."""

from __future__ import annotations

import pytest

from batchloader.foundation.config import LoaderSettings, clear_settings_cache
from batchloader.runtime.observability import MemoryRenderer, configure_logging


@pytest.fixture(autouse=True)
def log_entries() -> object:
    """Capture every log entry emitted during a test."""
    renderer = MemoryRenderer()
    configure_logging(level="DEBUG", renderer=renderer)
    yield renderer
    configure_logging(format="none")


@pytest.fixture(autouse=True)
def clean_settings() -> object:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def loader_settings() -> LoaderSettings:
    return LoaderSettings(max_concurrency=None, resolver_suffix="Resolver", cache_enabled=True)
