"""Factory helpers for building preconfigured circuit breakers."""

from collections.abc import Callable, Iterable
from typing import Any

from crm_backend.observability.metrics import get_circuit_breaker_metrics

from ..exceptions import (
    DatabaseUnavailableException,
    ExternalServiceUnavailableException,
)
from .breaker import CircuitBreaker, CircuitBreakerListener
from .config import CIRCUIT_BREAKER_CONFIGS, CircuitBreakerConfig

# ORM errors that mean the database answered: constraint violations and
# lookups that found nothing (or too much).
DATABASE_IGNORED_EXCEPTIONS = (
    "IntegrityError",
    "NoResultFound",
    "MultipleResultsFound",
)


def create_circuit_breaker(
    action: Callable[..., Any],
    config: CircuitBreakerConfig,
    *,
    listeners: Iterable[CircuitBreakerListener] = (),
    clock: Callable[[], float] | None = None,
) -> CircuitBreaker:
    """Create a circuit breaker protecting ``action``.

    Args:
        action: Sync or async callable to protect
        config: Breaker configuration
        listeners: Extra event listeners
        clock: Optional monotonic clock in seconds, mainly for tests

    Returns:
        Circuit breaker; call ``await breaker.fire(*args)`` to use it
    """
    all_listeners = list(listeners)
    if config.enable_metrics:
        metrics = get_circuit_breaker_metrics()
        metrics.record_state(config.name, "closed")
        all_listeners.append(metrics)

    if clock is None:
        return CircuitBreaker(action, config, all_listeners)
    return CircuitBreaker(action, config, all_listeners, clock=clock)


def create_http_circuit_breaker(
    http_call: Callable[..., Any],
    dependency_name: str,
    config: CircuitBreakerConfig | None = None,
) -> CircuitBreaker:
    """Create a breaker for calls to an external HTTP service.

    Failures surface as ``ExternalServiceUnavailableException`` instead of the
    raw transport error.

    Args:
        http_call: Callable performing the HTTP request
        dependency_name: Name of the external service
        config: Base configuration, defaults to the ``external_api`` preset
    """

    def fallback(*args: Any, **kwargs: Any) -> Any:
        raise ExternalServiceUnavailableException(dependency_name)

    base = config or CIRCUIT_BREAKER_CONFIGS["external_api"]
    return create_circuit_breaker(
        http_call,
        base.with_overrides(name=f"http-{dependency_name}", fallback=fallback),
    )


def create_database_circuit_breaker(
    db_operation: Callable[..., Any],
    operation_name: str,
    config: CircuitBreakerConfig | None = None,
) -> CircuitBreaker:
    """Create a breaker for a database operation.

    Constraint violations and not-found errors pass through untouched and do
    not count against the database.

    Args:
        db_operation: Callable running the query
        operation_name: Name of the repository operation
        config: Base configuration, defaults to the ``database`` preset
    """

    def fallback(*args: Any, **kwargs: Any) -> Any:
        raise DatabaseUnavailableException(operation_name)

    base = config or CIRCUIT_BREAKER_CONFIGS["database"]
    return create_circuit_breaker(
        db_operation,
        base.with_overrides(
            name=f"db-{operation_name}",
            fallback=fallback,
            ignored_exceptions=(
                *base.ignored_exceptions,
                *DATABASE_IGNORED_EXCEPTIONS,
            ),
        ),
    )


def get_circuit_breaker_stats(breaker: CircuitBreaker) -> dict[str, Any]:
    """Project a breaker into a serializable shape for health endpoints."""
    return {
        "name": breaker.name,
        "state": breaker.state.value,
        "stats": breaker.stats.to_dict(),
        "status": breaker.status.value,
    }
