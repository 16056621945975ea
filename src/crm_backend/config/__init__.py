"""Application configuration."""

from .settings import (
    ApplicationSettings,
    CircuitBreakerSettings,
    Environment,
    ObservabilitySettings,
    get_settings,
)

__all__ = [
    "ApplicationSettings",
    "CircuitBreakerSettings",
    "Environment",
    "ObservabilitySettings",
    "get_settings",
]
