"""Circuit breaker configuration models, presets and settings.

All durations are expressed in milliseconds.
"""

from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_VOLUME_THRESHOLD = 5


class CircuitBreakerConfig(BaseModel):
    """Immutable configuration attached to one circuit breaker."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        min_length=1, description="Identifier of the protected dependency"
    )
    timeout: int | None = Field(
        default=10000,
        ge=1,
        description="Maximum run time of one call in ms; None disables the timeout",
    )
    error_threshold_percentage: float = Field(
        default=50.0,
        gt=0,
        le=100,
        description="Failure percentage in the rolling window that opens the circuit",
    )
    reset_timeout: int = Field(
        default=30000,
        ge=1,
        description="Time in ms the circuit stays open before a probe is allowed",
    )
    fallback: Callable[..., Any] | None = Field(
        default=None,
        exclude=True,
        description="Called with the original arguments on failure or rejection",
    )
    enable_metrics: bool = Field(
        default=False, description="Record Prometheus metrics for this breaker"
    )
    volume_threshold: int = Field(
        default=DEFAULT_VOLUME_THRESHOLD,
        ge=0,
        description="Minimum samples in the window before the circuit may open",
    )
    rolling_count_timeout: int = Field(
        default=10000, ge=1, description="Length of the rolling statistics window in ms"
    )
    rolling_count_buckets: int = Field(
        default=10, ge=1, description="Number of buckets in the rolling window"
    )
    ignored_exceptions: tuple[str, ...] = Field(
        default=(),
        description="Exception type names that do not count as dependency failures",
    )

    @model_validator(mode="after")
    def validate_window(self) -> "CircuitBreakerConfig":
        if self.rolling_count_timeout % self.rolling_count_buckets != 0:
            raise ValueError("rolling_count_buckets must divide rolling_count_timeout")
        return self

    def with_overrides(self, **fields: Any) -> "CircuitBreakerConfig":
        """Return a validated copy with some fields replaced."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(fields)
        return type(self)(**data)


CIRCUIT_BREAKER_CONFIGS: Mapping[str, CircuitBreakerConfig] = MappingProxyType(
    {
        "external_api": CircuitBreakerConfig(
            name="external-api",
            timeout=5000,
            error_threshold_percentage=50,
            reset_timeout=30000,
            enable_metrics=True,
        ),
        "database": CircuitBreakerConfig(
            name="database",
            timeout=3000,
            error_threshold_percentage=60,
            reset_timeout=10000,
            enable_metrics=True,
        ),
        "cache": CircuitBreakerConfig(
            name="cache",
            timeout=1000,
            error_threshold_percentage=70,
            reset_timeout=5000,
            enable_metrics=True,
        ),
        "notification": CircuitBreakerConfig(
            name="notification",
            timeout=10000,
            error_threshold_percentage=40,
            reset_timeout=60000,
            enable_metrics=True,
        ),
    }
)


class CircuitBreakerSettings(BaseSettings):
    """Runtime knobs applied on top of the circuit breaker presets."""

    model_config = SettingsConfigDict(
        env_prefix="CIRCUIT_BREAKER_", env_file=".env", extra="ignore"
    )

    volume_threshold: int = Field(default=DEFAULT_VOLUME_THRESHOLD, ge=0)
    rolling_count_timeout: int = Field(default=10000, ge=1)
    rolling_count_buckets: int = Field(default=10, ge=1)
    enable_metrics: bool = True

    @field_validator("rolling_count_buckets")
    @classmethod
    def validate_buckets(cls, v: int, info: ValidationInfo) -> int:
        window = info.data.get("rolling_count_timeout")
        if window is not None and window % v != 0:
            raise ValueError("rolling_count_buckets must divide rolling_count_timeout")
        return v

    def apply(self, config: CircuitBreakerConfig) -> CircuitBreakerConfig:
        """Apply these settings to a breaker configuration."""
        return config.with_overrides(
            volume_threshold=self.volume_threshold,
            rolling_count_timeout=self.rolling_count_timeout,
            rolling_count_buckets=self.rolling_count_buckets,
            enable_metrics=config.enable_metrics and self.enable_metrics,
        )

    def get_config(self, preset: str) -> CircuitBreakerConfig:
        """Get a preset configuration with these settings applied.

        Raises:
            KeyError: If no preset has that name
        """
        return self.apply(CIRCUIT_BREAKER_CONFIGS[preset])

    def get_default_config(self, name: str) -> CircuitBreakerConfig:
        """Get a configuration for a dependency without a preset."""
        return self.apply(CircuitBreakerConfig(name=name))
