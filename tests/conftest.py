"""
Pytest configuration and fixtures for cache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest

from cb.cache.image_cache import close_image_cache
from cb.cache.kv_store import KVStore, close_store
from cb.config import Settings, clear_settings_cache, get_settings
from cb.observability.cache_stats import get_cache_stats


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide environment variables pointing the cache at temp_dir."""
    env_vars = {
        "CACHE_ENABLED": "true",
        "CACHE_DIR": str(temp_dir / "cache"),
        "CACHE_DB_NAME": "testCache",
        "HTTP_TIMEOUT_SECONDS": "5",
        "IMAGE_FETCH_ATTEMPTS": "1",
        "HTTP_USER_AGENT": "codbbit-cache-tests",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Settings:
    """Provide the Settings built from mock_env_vars."""
    return get_settings()


@pytest.fixture
async def shared_cache(mock_settings: Settings) -> AsyncGenerator[Settings, None]:
    """Reset the shared store, image cache and statistics around a test."""
    get_cache_stats().reset()
    yield mock_settings
    await close_image_cache()
    await close_store()
    get_cache_stats().reset()


@pytest.fixture
async def kv_store(temp_dir: Path) -> AsyncGenerator[KVStore, None]:
    """Create an opened standalone KVStore for testing."""
    store = KVStore(temp_dir / "kv" / "store.db")
    await store.open()
    yield store
    await store.close()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
