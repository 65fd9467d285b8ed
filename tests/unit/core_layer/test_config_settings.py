"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, nested views and default values.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Defaults match the documented behavior of each component."""

    def test_circuit_breaker_defaults(self):
        settings = Settings()
        assert settings.circuit_breaker.CB_FAILURE_THRESHOLD == 5
        assert settings.circuit_breaker.CB_TIMEOUT == 60.0
        assert settings.circuit_breaker.CB_RECOVERY_TIMEOUT == 30.0
        assert settings.circuit_breaker.CB_MAX_BREAKERS == 1000

    def test_retry_defaults(self):
        retry = Settings().retry
        assert retry.RETRY_MAX_ATTEMPTS == 3
        assert retry.RETRY_BASE_DELAY == 1.0
        assert retry.RETRY_MAX_DELAY == 30.0
        assert retry.RETRY_BACKOFF_FACTOR == 2.0

    def test_rate_limit_and_cache_defaults(self):
        settings = Settings()
        assert settings.rate_limit.RATE_LIMIT_DEFAULT == "100/minute"
        assert settings.cache.CACHE_RESPONSE_TTL == 5.0
        assert settings.ENABLE_CACHING is True

    def test_metrics_window_default(self):
        assert Settings().metrics.METRICS_LATENCY_WINDOW == 100

    def test_nested_views_mirror_flat_fields(self):
        settings = Settings(POOL_MAX_CONNECTIONS=7, LOG_FORMAT="console")
        assert settings.pool.POOL_MAX_CONNECTIONS == 7
        assert settings.logging.LOG_FORMAT == "console"


@pytest.mark.unit
class TestSettingsValidation:
    def test_log_level_normalized(self):
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="LOUD")

    @pytest.mark.parametrize(
        "field",
        ["CB_FAILURE_THRESHOLD", "RETRY_MAX_ATTEMPTS", "POOL_MAX_CONNECTIONS", "CACHE_MAX_SIZE"],
    )
    def test_non_positive_limits_rejected(self, field):
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    def test_invalid_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ENVIRONMENT="moon")


@pytest.mark.unit
class TestSettingsSources:
    def test_environment_variable_override(self):
        with patch.dict(os.environ, {"CB_FAILURE_THRESHOLD": "9", "RATE_LIMIT_DEFAULT": "10/second"}):
            settings = Settings()
        assert settings.CB_FAILURE_THRESHOLD == 9
        assert settings.RATE_LIMIT_DEFAULT == "10/second"

    def test_get_settings_is_singleton(self):
        assert get_settings() is get_settings()

    def test_reload_settings_replaces_singleton(self):
        before = get_settings()
        with patch.dict(os.environ, {"POOL_MAX_CONNECTIONS": "3"}):
            reloaded = reload_settings()
        try:
            assert reloaded is not before
            assert get_settings().POOL_MAX_CONNECTIONS == 3
        finally:
            reload_settings()
