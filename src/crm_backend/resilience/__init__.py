"""Resilience patterns for database and external service calls."""

from .circuit_breaker import (
    CIRCUIT_BREAKER_CONFIGS,
    BreakerStatus,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerSettings,
    CircuitState,
    circuit_protected,
    create_circuit_breaker,
    create_database_circuit_breaker,
    create_http_circuit_breaker,
    database_circuit_protected,
    get_circuit_breaker_stats,
    http_circuit_protected,
)
from .exceptions import (
    CircuitBreakerOpenException,
    CircuitBreakerTimeoutException,
    DatabaseUnavailableException,
    ExternalServiceUnavailableException,
    ResilienceException,
    ServiceUnavailableException,
)

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "BreakerStatus",
    "CircuitBreakerConfig",
    "CircuitBreakerSettings",
    "CircuitBreakerRegistry",
    "CIRCUIT_BREAKER_CONFIGS",
    "create_circuit_breaker",
    "create_http_circuit_breaker",
    "create_database_circuit_breaker",
    "get_circuit_breaker_stats",
    "circuit_protected",
    "http_circuit_protected",
    "database_circuit_protected",
    "ResilienceException",
    "CircuitBreakerOpenException",
    "CircuitBreakerTimeoutException",
    "ServiceUnavailableException",
    "ExternalServiceUnavailableException",
    "DatabaseUnavailableException",
]
