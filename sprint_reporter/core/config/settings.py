#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
resilience and caching core. The surrounding service owns process
bootstrapping; this module only describes the knobs the core understands.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Flat environment names, grouped into section objects for consumers

Author: System Architect
Date: 2026-10-12
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sprint_reporter.core.config import constants


class CacheSettings(BaseSettings):
    """
    Cache configuration for the two-tier cache.

    STAGE-C.0: Cache TTL and capacity configuration
    """

    CACHE_ENABLED: bool = Field(default=True, description="Enable caching")
    CACHE_DEFAULT_TTL: int = Field(
        default=constants.CACHE_DEFAULT_TTL, description="Default TTL in seconds (10 minutes)"
    )
    CACHE_MEMORY_MAX_SIZE: int = Field(
        default=constants.CACHE_MEMORY_MAX_SIZE, description="Fast tier max entries"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RedisSettings(BaseSettings):
    """
    Redis configuration for the optional secondary cache tier.

    The secondary tier is consulted only when REDIS_ENABLED is true.
    """

    REDIS_ENABLED: bool = Field(default=False, description="Use Redis as secondary tier")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_SCAN_COUNT: int = Field(default=100, description="SCAN batch size for key enumeration")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker configuration for fault tolerance.

    STAGE-CB: Circuit breaker thresholds
    """

    CB_FAILURE_THRESHOLD: int = Field(
        default=constants.CB_FAILURE_THRESHOLD, description="Consecutive failures before opening"
    )
    CB_RECOVERY_TIMEOUT: float = Field(
        default=constants.CB_RECOVERY_TIMEOUT, description="Seconds before a half-open trial"
    )
    CB_HALF_OPEN_MAX_CALLS: int = Field(
        default=constants.CB_HALF_OPEN_MAX_CALLS, description="Trial calls allowed while half-open"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RetrySettings(BaseSettings):
    """
    Retry configuration (exponential backoff).

    STAGE-R: Retry thresholds
    """

    RETRY_MAX_ATTEMPTS: int = Field(default=constants.MAX_RETRIES, description="Total attempts")
    RETRY_BASE_DELAY: float = Field(default=constants.RETRY_BASE_DELAY, description="First retry delay (s)")
    RETRY_MAX_DELAY: float = Field(default=constants.RETRY_MAX_DELAY, description="Delay ceiling (s)")
    RETRY_BACKOFF_MULTIPLIER: float = Field(
        default=constants.RETRY_BACKOFF_MULTIPLIER, description="Backoff growth factor"
    )
    RETRY_JITTER: float = Field(default=0.0, description="Random jitter ratio added to each delay")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RecoverySettings(BaseSettings):
    """Fallback / degradation switches and error history size."""

    RECOVERY_FALLBACK_ENABLED: bool = Field(default=True, description="Allow fallback execution")
    RECOVERY_GRACEFUL_DEGRADATION: bool = Field(default=True, description="Allow degraded results")
    RECOVERY_ERROR_HISTORY_SIZE: int = Field(
        default=constants.MAX_RECENT_ERRORS, description="Recent error ring buffer size"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class OptimizerSettings(BaseSettings):
    """
    Cache optimizer thresholds.

    STAGE-O: Optimizer policy
    """

    OPTIMIZER_COLD_KEY_IDLE_SECONDS: float = Field(default=constants.OPTIMIZER_COLD_KEY_IDLE_SECONDS)
    OPTIMIZER_LARGE_ENTRY_BYTES: int = Field(default=constants.OPTIMIZER_LARGE_ENTRY_BYTES)
    OPTIMIZER_LOW_HIT_RATE: float = Field(default=constants.OPTIMIZER_LOW_HIT_RATE)
    OPTIMIZER_MIN_SAMPLES: int = Field(default=constants.OPTIMIZER_MIN_SAMPLES)
    OPTIMIZER_HOT_KEY_HITS: int = Field(default=constants.OPTIMIZER_HOT_KEY_HITS)
    OPTIMIZER_HOT_HIT_RATE: float = Field(default=constants.OPTIMIZER_HOT_HIT_RATE)
    OPTIMIZER_MIN_TTL: int = Field(default=constants.OPTIMIZER_MIN_TTL)
    OPTIMIZER_MAX_TTL: int = Field(default=constants.OPTIMIZER_MAX_TTL)
    OPTIMIZER_WARMING_CONCURRENCY: int = Field(default=constants.OPTIMIZER_WARMING_CONCURRENCY)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


_SECTIONS = (
    CacheSettings,
    RedisSettings,
    CircuitBreakerSettings,
    RetrySettings,
    RecoverySettings,
    OptimizerSettings,
    LoggingSettings,
)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from sprint_reporter.core.config import get_settings

        settings = get_settings()
        threshold = settings.circuit_breaker.CB_FAILURE_THRESHOLD
        redis_host = settings.redis.REDIS_HOST

    Environment variables stay flat (CB_FAILURE_THRESHOLD=5); the section
    properties hand each component only the fields it cares about.
    """

    # Cache
    CACHE_ENABLED: bool = Field(default=True)
    CACHE_DEFAULT_TTL: int = Field(default=constants.CACHE_DEFAULT_TTL)
    CACHE_MEMORY_MAX_SIZE: int = Field(default=constants.CACHE_MEMORY_MAX_SIZE)

    # Redis secondary tier
    REDIS_ENABLED: bool = Field(default=False)
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB: int = Field(default=0)
    REDIS_PASSWORD: str | None = Field(default=None)
    REDIS_MAX_CONNECTIONS: int = Field(default=50)
    REDIS_SOCKET_TIMEOUT: int = Field(default=5)
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5)
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30)
    REDIS_SCAN_COUNT: int = Field(default=100)

    # Circuit breaker
    CB_FAILURE_THRESHOLD: int = Field(default=constants.CB_FAILURE_THRESHOLD)
    CB_RECOVERY_TIMEOUT: float = Field(default=constants.CB_RECOVERY_TIMEOUT)
    CB_HALF_OPEN_MAX_CALLS: int = Field(default=constants.CB_HALF_OPEN_MAX_CALLS)

    # Retry
    RETRY_MAX_ATTEMPTS: int = Field(default=constants.MAX_RETRIES)
    RETRY_BASE_DELAY: float = Field(default=constants.RETRY_BASE_DELAY)
    RETRY_MAX_DELAY: float = Field(default=constants.RETRY_MAX_DELAY)
    RETRY_BACKOFF_MULTIPLIER: float = Field(default=constants.RETRY_BACKOFF_MULTIPLIER)
    RETRY_JITTER: float = Field(default=0.0)

    # Recovery
    RECOVERY_FALLBACK_ENABLED: bool = Field(default=True)
    RECOVERY_GRACEFUL_DEGRADATION: bool = Field(default=True)
    RECOVERY_ERROR_HISTORY_SIZE: int = Field(default=constants.MAX_RECENT_ERRORS)

    # Optimizer
    OPTIMIZER_COLD_KEY_IDLE_SECONDS: float = Field(default=constants.OPTIMIZER_COLD_KEY_IDLE_SECONDS)
    OPTIMIZER_LARGE_ENTRY_BYTES: int = Field(default=constants.OPTIMIZER_LARGE_ENTRY_BYTES)
    OPTIMIZER_LOW_HIT_RATE: float = Field(default=constants.OPTIMIZER_LOW_HIT_RATE)
    OPTIMIZER_MIN_SAMPLES: int = Field(default=constants.OPTIMIZER_MIN_SAMPLES)
    OPTIMIZER_HOT_KEY_HITS: int = Field(default=constants.OPTIMIZER_HOT_KEY_HITS)
    OPTIMIZER_HOT_HIT_RATE: float = Field(default=constants.OPTIMIZER_HOT_HIT_RATE)
    OPTIMIZER_MIN_TTL: int = Field(default=constants.OPTIMIZER_MIN_TTL)
    OPTIMIZER_MAX_TTL: int = Field(default=constants.OPTIMIZER_MAX_TTL)
    OPTIMIZER_WARMING_CONCURRENCY: int = Field(default=constants.OPTIMIZER_WARMING_CONCURRENCY)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator(
        "CACHE_DEFAULT_TTL",
        "CACHE_MEMORY_MAX_SIZE",
        "CB_FAILURE_THRESHOLD",
        "CB_HALF_OPEN_MAX_CALLS",
        "RETRY_MAX_ATTEMPTS",
        "RECOVERY_ERROR_HISTORY_SIZE",
        "OPTIMIZER_WARMING_CONCURRENCY",
    )
    @classmethod
    def validate_positive(cls, v, info):
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_retry_policy(self):
        """Backoff must never shrink and the ceiling must cover the base delay."""
        if self.RETRY_BACKOFF_MULTIPLIER < 1:
            raise ValueError("RETRY_BACKOFF_MULTIPLIER must be >= 1")
        if self.RETRY_MAX_DELAY < self.RETRY_BASE_DELAY:
            raise ValueError("RETRY_MAX_DELAY must be >= RETRY_BASE_DELAY")
        return self

    def _section(self, section_cls):
        return section_cls(**self.model_dump(include=set(section_cls.model_fields)))

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return self._section(CacheSettings)

    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return self._section(RedisSettings)

    @property
    def circuit_breaker(self) -> CircuitBreakerSettings:
        """Get circuit breaker settings."""
        return self._section(CircuitBreakerSettings)

    @property
    def retry(self) -> RetrySettings:
        """Get retry settings."""
        return self._section(RetrySettings)

    @property
    def recovery(self) -> RecoverySettings:
        """Get recovery settings."""
        return self._section(RecoverySettings)

    @property
    def optimizer(self) -> OptimizerSettings:
        """Get optimizer settings."""
        return self._section(OptimizerSettings)

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return self._section(LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance (lazily built)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance.

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
