"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.core.config.settings import Settings  # noqa: E402
from tests.test_fixtures import FakeClock, FakeTransport, RecordingSleep  # noqa: E402


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


# ============================================================================
# Transport Fixtures
# ============================================================================


@pytest.fixture
def fake_transport():
    return FakeTransport()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Settings tuned for fast tests: no real waiting, small limits.
    """
    return Settings(
        ENVIRONMENT="test",
        CB_FAILURE_THRESHOLD=3,
        CB_TIMEOUT=5.0,
        CB_RECOVERY_TIMEOUT=30.0,
        RETRY_MAX_ATTEMPTS=3,
        RETRY_BASE_DELAY=0.5,
        RETRY_MAX_DELAY=10.0,
        RETRY_BACKOFF_FACTOR=2.0,
        RATE_LIMIT_DEFAULT="5/minute",
        CACHE_RESPONSE_TTL=5.0,
        POOL_MAX_CONNECTIONS=10,
        POOL_POLL_INTERVAL=0.01,
        POOL_ACQUIRE_TIMEOUT=0.1,
    )
