"""Circuit breaker protecting database and external service calls.

A breaker tracks the outcomes of a wrapped action over a rolling window,
opens when the failure percentage crosses its threshold and probes the
dependency again once the reset timeout has passed.
"""

from .breaker import BreakerStatus, CircuitBreaker, CircuitBreakerListener, CircuitState
from .config import (
    CIRCUIT_BREAKER_CONFIGS,
    CircuitBreakerConfig,
    CircuitBreakerSettings,
)
from .decorators import (
    circuit_protected,
    database_circuit_protected,
    http_circuit_protected,
)
from .factories import (
    create_circuit_breaker,
    create_database_circuit_breaker,
    create_http_circuit_breaker,
    get_circuit_breaker_stats,
)
from .registry import CircuitBreakerRegistry
from .stats import CallOutcome, CircuitBreakerStats, RollingWindow

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerListener",
    "CircuitState",
    "BreakerStatus",
    "CallOutcome",
    "CircuitBreakerStats",
    "RollingWindow",
    "CircuitBreakerConfig",
    "CircuitBreakerSettings",
    "CIRCUIT_BREAKER_CONFIGS",
    "CircuitBreakerRegistry",
    "create_circuit_breaker",
    "create_http_circuit_breaker",
    "create_database_circuit_breaker",
    "get_circuit_breaker_stats",
    "circuit_protected",
    "http_circuit_protected",
    "database_circuit_protected",
]
