"""
Configuration management for the CRM backend.

Settings are read from the environment (and an optional ``.env`` file) with
pydantic-settings. Each component has its own prefix; the environment-specific
subclasses only change defaults.
"""

import os
from enum import Enum
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crm_backend.observability.logging.config import LogFormat, LogLevel
from crm_backend.resilience.circuit_breaker.config import CircuitBreakerSettings


class Environment(str, Enum):
    """Deployment environments."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class ObservabilitySettings(BaseSettings):
    """Logging and metrics knobs (``OBSERVABILITY_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="OBSERVABILITY_", env_file=".env", extra="ignore"
    )

    log_level: LogLevel = LogLevel.INFO
    log_format: LogFormat = LogFormat.JSON
    log_file: str | None = None
    metrics_enabled: bool = True

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        # Accept "debug" as well as "DEBUG"
        return v.upper() if isinstance(v, str) else v


class DevelopmentObservabilitySettings(ObservabilitySettings):
    log_level: LogLevel = LogLevel.DEBUG
    log_format: LogFormat = LogFormat.CONSOLE


class TestingObservabilitySettings(ObservabilitySettings):
    log_level: LogLevel = LogLevel.WARNING
    log_format: LogFormat = LogFormat.STRUCTURED
    metrics_enabled: bool = False


class ApplicationSettings(BaseSettings):
    """Top-level settings of the CRM backend process."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    app_name: str = "CRM Backend"
    app_version: str = "1.0.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings
    )
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment is Environment.DEVELOPMENT


class DevelopmentSettings(ApplicationSettings):
    """Verbose console logging and debug mode."""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    observability: ObservabilitySettings = Field(
        default_factory=DevelopmentObservabilitySettings
    )


class TestingSettings(ApplicationSettings):
    """No Prometheus registration and quiet logs, so tests stay isolated."""

    environment: Environment = Environment.TESTING
    debug: bool = True
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=lambda: CircuitBreakerSettings(enable_metrics=False)
    )
    observability: ObservabilitySettings = Field(
        default_factory=TestingObservabilitySettings
    )


class StagingSettings(ApplicationSettings):
    environment: Environment = Environment.STAGING


class ProductionSettings(ApplicationSettings):
    environment: Environment = Environment.PRODUCTION


_SETTINGS_BY_ENVIRONMENT: dict[str, type[ApplicationSettings]] = {
    Environment.DEVELOPMENT.value: DevelopmentSettings,
    Environment.TESTING.value: TestingSettings,
    Environment.STAGING.value: StagingSettings,
    Environment.PRODUCTION.value: ProductionSettings,
}


def get_settings() -> ApplicationSettings:
    """Build settings for the environment named by ``ENVIRONMENT``.

    Unknown names fall back to the base settings.
    """
    environment = os.getenv("ENVIRONMENT", Environment.DEVELOPMENT.value).lower()
    settings_class = _SETTINGS_BY_ENVIRONMENT.get(environment, ApplicationSettings)
    return settings_class()
