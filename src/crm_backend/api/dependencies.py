"""Shared API dependencies."""

from fastapi import Request

from crm_backend.config.settings import ApplicationSettings
from crm_backend.resilience.circuit_breaker import CircuitBreakerRegistry


def get_circuit_breaker_registry(request: Request) -> CircuitBreakerRegistry:
    """Get the circuit breaker registry owned by the running application."""
    registry: CircuitBreakerRegistry = request.app.state.circuit_breakers
    return registry


def get_settings_dependency(request: Request) -> ApplicationSettings:
    """Get the settings the application was created with."""
    settings: ApplicationSettings = request.app.state.settings
    return settings
