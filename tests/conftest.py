"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures import CacheTestFactory, FakeClock, RecordingSleep  # noqa: E402


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """
    Rebuild global settings for every test from a clean environment.

    Keeps a developer's local .env or exported variables out of the tests.
    """
    from sprint_reporter.core.config import settings as settings_module

    for name in list(os.environ):
        if name.startswith(("CACHE_", "REDIS_", "CB_", "RETRY_", "RECOVERY_", "OPTIMIZER_", "LOG_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setitem(settings_module.Settings.model_config, "env_file", None)
    settings_module.reload_settings()
    yield
    settings_module._settings = None


@pytest.fixture
def mock_settings():
    """
    Mock application settings for testing.

    Returns a MagicMock with the section attributes components read.
    """
    from sprint_reporter.core.config.settings import Settings

    settings = MagicMock(spec=Settings)

    settings.cache.CACHE_ENABLED = True
    settings.cache.CACHE_DEFAULT_TTL = 600
    settings.cache.CACHE_MEMORY_MAX_SIZE = 1000

    settings.redis.REDIS_ENABLED = False

    # Must be real numbers, breakers compare against them
    settings.circuit_breaker.CB_FAILURE_THRESHOLD = 5
    settings.circuit_breaker.CB_RECOVERY_TIMEOUT = 60
    settings.circuit_breaker.CB_HALF_OPEN_MAX_CALLS = 1

    settings.retry.RETRY_MAX_ATTEMPTS = 3
    settings.retry.RETRY_BASE_DELAY = 1.0
    settings.retry.RETRY_MAX_DELAY = 30.0
    settings.retry.RETRY_BACKOFF_MULTIPLIER = 2.0
    settings.retry.RETRY_JITTER = 0.0

    settings.recovery.RECOVERY_FALLBACK_ENABLED = True
    settings.recovery.RECOVERY_GRACEFUL_DEGRADATION = True
    settings.recovery.RECOVERY_ERROR_HISTORY_SIZE = 100

    return settings


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def fake_clock():
    """Manually advanced monotonic clock starting at 1000.0."""
    return FakeClock()


@pytest.fixture
def recorded_sleep():
    """Async sleep that returns immediately and records requested delays."""
    return RecordingSleep()


# ============================================================================
# Cache Fixtures
# ============================================================================


@pytest.fixture
def memory_store(fake_clock):
    from sprint_reporter.infrastructure.cache.memory_store import MemoryCacheStore

    return MemoryCacheStore(max_size=100, clock=fake_clock)


@pytest.fixture
def cache_manager(memory_store, fake_clock):
    """CacheManager with only the fast tier."""
    from sprint_reporter.infrastructure.cache.cache_manager import CacheManager

    return CacheManager(memory_store, default_ttl=600, enabled=True, clock=fake_clock)


@pytest.fixture
def secondary_store(fake_clock):
    """Dict-backed stand-in for the Redis tier."""
    return CacheTestFactory.dict_store(clock=fake_clock)


@pytest.fixture
def two_tier_cache(memory_store, secondary_store, fake_clock):
    from sprint_reporter.infrastructure.cache.cache_manager import CacheManager

    return CacheManager(memory_store, secondary_store, default_ttl=600, enabled=True, clock=fake_clock)


@pytest.fixture
def mock_redis_client():
    """AsyncMock redis.asyncio.Redis client."""
    return CacheTestFactory.mock_redis_client()


# ============================================================================
# Resilience Fixtures
# ============================================================================


@pytest.fixture
def recovery_manager(recorded_sleep, fake_clock):
    """ErrorRecoveryManager with default policies and no real waiting."""
    from sprint_reporter.core.resilience.error_recovery import ErrorRecoveryManager

    return ErrorRecoveryManager(sleep=recorded_sleep, clock=fake_clock)


@pytest.fixture
def failing_operation():
    """Async operation that always raises ServiceUnavailableError."""
    from sprint_reporter.core.exceptions import ServiceUnavailableError

    return AsyncMock(side_effect=ServiceUnavailableError("upstream returned 503"))
