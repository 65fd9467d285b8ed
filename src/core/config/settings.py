#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
resilient client layer. Every component reads its defaults from here so that
a single environment (or ``.env`` file) tunes the whole pipeline.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- IDE autocomplete for all settings
- Easy testing with override mechanisms
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.config import constants


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker configuration for fault tolerance.

    STAGE-CB: Circuit breaker thresholds
    """

    CB_FAILURE_THRESHOLD: int = Field(default=constants.CB_DEFAULT_FAILURE_THRESHOLD, gt=0)
    CB_TIMEOUT: float = Field(default=constants.CB_DEFAULT_TIMEOUT, gt=0, description="Per-call timeout in seconds")
    CB_RECOVERY_TIMEOUT: float = Field(
        default=constants.CB_DEFAULT_RESET_TIMEOUT, ge=0, description="Seconds before a trial call is admitted"
    )
    CB_MAX_BREAKERS: int = Field(
        default=constants.CB_MAX_BREAKERS, gt=0, description="Upper bound on tracked operation classes"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RetrySettings(BaseSettings):
    """
    Retry configuration.

    STAGE-R: Exponential backoff parameters
    """

    RETRY_MAX_ATTEMPTS: int = Field(default=constants.MAX_RETRIES, gt=0)
    RETRY_BASE_DELAY: float = Field(default=constants.RETRY_BASE_DELAY, ge=0)
    RETRY_MAX_DELAY: float = Field(default=constants.RETRY_MAX_DELAY, ge=0)
    RETRY_BACKOFF_FACTOR: float = Field(default=constants.RETRY_BACKOFF_FACTOR, ge=1)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Rate limiting configuration.

    STAGE-3: Rate limiting thresholds

    Architectural Decision: limit strings ("100/minute") parsed by `limits`
    - Same notation as slowapi decorators
    - Sliding-window log enforced in-process
    """

    RATE_LIMIT_DEFAULT: str = Field(default=constants.RATE_LIMIT_DEFAULT, description="Default rate limit")
    RATE_LIMIT_MAX_KEYS: int = Field(default=constants.RATE_LIMIT_MAX_KEYS, gt=0)
    RATE_LIMIT_SWEEP_INTERVAL: float = Field(default=constants.RATE_LIMIT_SWEEP_INTERVAL, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Response cache configuration.

    STAGE-2: Cache TTL configuration
    """

    ENABLE_CACHING: bool = Field(default=True, description="Register the cache middleware")
    CACHE_RESPONSE_TTL: float = Field(default=constants.CACHE_DEFAULT_TTL, gt=0, description="Response TTL in seconds")
    CACHE_MAX_SIZE: int = Field(default=constants.CACHE_MAX_SIZE, gt=0, description="Maximum cached entries")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class PoolSettings(BaseSettings):
    """
    Connection pool configuration.

    STAGE-CP: Lease limits and idle eviction
    """

    POOL_MAX_CONNECTIONS: int = Field(default=constants.POOL_MAX_CONNECTIONS, gt=0)
    POOL_IDLE_TIMEOUT: float = Field(default=constants.POOL_IDLE_TIMEOUT, gt=0)
    POOL_POLL_INTERVAL: float = Field(default=constants.POOL_POLL_INTERVAL, gt=0)
    POOL_ACQUIRE_TIMEOUT: float = Field(default=constants.POOL_ACQUIRE_TIMEOUT, gt=0)
    POOL_SWEEP_INTERVAL: float = Field(default=constants.POOL_SWEEP_INTERVAL, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class MetricsSettings(BaseSettings):
    """Metrics configuration."""

    METRICS_LATENCY_WINDOW: int = Field(default=constants.METRICS_LATENCY_WINDOW, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(default="development")
    APP_NAME: str = Field(default="Resilient Remote Client", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from src.core.config.settings import get_settings

        settings = get_settings()
        threshold = settings.circuit_breaker.CB_FAILURE_THRESHOLD
        ttl = settings.cache.CACHE_RESPONSE_TTL
    """

    # Circuit Breaker settings
    CB_FAILURE_THRESHOLD: int = Field(default=constants.CB_DEFAULT_FAILURE_THRESHOLD, gt=0)
    CB_TIMEOUT: float = Field(default=constants.CB_DEFAULT_TIMEOUT, gt=0)
    CB_RECOVERY_TIMEOUT: float = Field(default=constants.CB_DEFAULT_RESET_TIMEOUT, ge=0)
    CB_MAX_BREAKERS: int = Field(default=constants.CB_MAX_BREAKERS, gt=0)

    # Retry settings
    RETRY_MAX_ATTEMPTS: int = Field(default=constants.MAX_RETRIES, gt=0)
    RETRY_BASE_DELAY: float = Field(default=constants.RETRY_BASE_DELAY, ge=0)
    RETRY_MAX_DELAY: float = Field(default=constants.RETRY_MAX_DELAY, ge=0)
    RETRY_BACKOFF_FACTOR: float = Field(default=constants.RETRY_BACKOFF_FACTOR, ge=1)

    # Rate Limiting settings
    RATE_LIMIT_DEFAULT: str = Field(default=constants.RATE_LIMIT_DEFAULT)
    RATE_LIMIT_MAX_KEYS: int = Field(default=constants.RATE_LIMIT_MAX_KEYS, gt=0)
    RATE_LIMIT_SWEEP_INTERVAL: float = Field(default=constants.RATE_LIMIT_SWEEP_INTERVAL, gt=0)

    # Cache settings
    ENABLE_CACHING: bool = Field(default=True)
    CACHE_RESPONSE_TTL: float = Field(default=constants.CACHE_DEFAULT_TTL, gt=0)
    CACHE_MAX_SIZE: int = Field(default=constants.CACHE_MAX_SIZE, gt=0)

    # Connection pool settings
    POOL_MAX_CONNECTIONS: int = Field(default=constants.POOL_MAX_CONNECTIONS, gt=0)
    POOL_IDLE_TIMEOUT: float = Field(default=constants.POOL_IDLE_TIMEOUT, gt=0)
    POOL_POLL_INTERVAL: float = Field(default=constants.POOL_POLL_INTERVAL, gt=0)
    POOL_ACQUIRE_TIMEOUT: float = Field(default=constants.POOL_ACQUIRE_TIMEOUT, gt=0)
    POOL_SWEEP_INTERVAL: float = Field(default=constants.POOL_SWEEP_INTERVAL, gt=0)

    # Metrics settings
    METRICS_LATENCY_WINDOW: int = Field(default=constants.METRICS_LATENCY_WINDOW, gt=0)

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(default="development")
    APP_NAME: str = Field(default="Resilient Remote Client")
    APP_VERSION: str = Field(default="1.0.0")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration views
    @property
    def circuit_breaker(self) -> CircuitBreakerSettings:
        """Get circuit breaker settings."""
        return CircuitBreakerSettings(
            CB_FAILURE_THRESHOLD=self.CB_FAILURE_THRESHOLD,
            CB_TIMEOUT=self.CB_TIMEOUT,
            CB_RECOVERY_TIMEOUT=self.CB_RECOVERY_TIMEOUT,
            CB_MAX_BREAKERS=self.CB_MAX_BREAKERS,
        )

    @property
    def retry(self) -> RetrySettings:
        """Get retry settings."""
        return RetrySettings(
            RETRY_MAX_ATTEMPTS=self.RETRY_MAX_ATTEMPTS,
            RETRY_BASE_DELAY=self.RETRY_BASE_DELAY,
            RETRY_MAX_DELAY=self.RETRY_MAX_DELAY,
            RETRY_BACKOFF_FACTOR=self.RETRY_BACKOFF_FACTOR,
        )

    @property
    def rate_limit(self) -> RateLimitSettings:
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_DEFAULT=self.RATE_LIMIT_DEFAULT,
            RATE_LIMIT_MAX_KEYS=self.RATE_LIMIT_MAX_KEYS,
            RATE_LIMIT_SWEEP_INTERVAL=self.RATE_LIMIT_SWEEP_INTERVAL,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            ENABLE_CACHING=self.ENABLE_CACHING,
            CACHE_RESPONSE_TTL=self.CACHE_RESPONSE_TTL,
            CACHE_MAX_SIZE=self.CACHE_MAX_SIZE,
        )

    @property
    def pool(self) -> PoolSettings:
        """Get connection pool settings."""
        return PoolSettings(
            POOL_MAX_CONNECTIONS=self.POOL_MAX_CONNECTIONS,
            POOL_IDLE_TIMEOUT=self.POOL_IDLE_TIMEOUT,
            POOL_POLL_INTERVAL=self.POOL_POLL_INTERVAL,
            POOL_ACQUIRE_TIMEOUT=self.POOL_ACQUIRE_TIMEOUT,
            POOL_SWEEP_INTERVAL=self.POOL_SWEEP_INTERVAL,
        )

    @property
    def metrics(self) -> MetricsSettings:
        """Get metrics settings."""
        return MetricsSettings(METRICS_LATENCY_WINDOW=self.METRICS_LATENCY_WINDOW)

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
