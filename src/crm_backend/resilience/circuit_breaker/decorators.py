"""Circuit breaker decorators for repository and client methods."""

import functools
from collections.abc import Callable
from typing import Any

from .config import CircuitBreakerConfig
from .factories import create_database_circuit_breaker, create_http_circuit_breaker
from .registry import CircuitBreakerRegistry


def _protect(
    breaker_factory: Callable[[Callable[..., Any]], Any],
) -> Callable[..., Any]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        breaker = breaker_factory(func)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await breaker.call(func, *args, **kwargs)

        wrapper.circuit_breaker = breaker  # type: ignore[attr-defined]
        return wrapper

    return decorator


def circuit_protected(
    name: str,
    *,
    registry: CircuitBreakerRegistry,
    config: CircuitBreakerConfig | None = None,
) -> Callable[..., Any]:
    """Decorator to protect a function with a registered circuit breaker.

    The breaker is created when the function is decorated. A name already in
    the registry reuses that breaker, so several functions can share one
    breaker while each still runs its own body.

    Args:
        name: Breaker name
        registry: Registry owning the breaker
        config: Optional configuration for a new breaker

    Returns:
        Decorator function
    """
    return _protect(lambda func: registry.get_or_create(name, func, config))


def http_circuit_protected(
    dependency_name: str, *, registry: CircuitBreakerRegistry
) -> Callable[..., Any]:
    """Decorator for calls to an external HTTP service."""

    def factory(func: Callable[..., Any]) -> Any:
        existing = registry.get(f"http-{dependency_name}")
        if existing is not None:
            return existing
        return registry.register(
            create_http_circuit_breaker(
                func,
                dependency_name,
                registry.settings.get_config("external_api"),
            )
        )

    return _protect(factory)


def database_circuit_protected(
    operation_name: str, *, registry: CircuitBreakerRegistry
) -> Callable[..., Any]:
    """Decorator for database repository operations."""

    def factory(func: Callable[..., Any]) -> Any:
        existing = registry.get(f"db-{operation_name}")
        if existing is not None:
            return existing
        return registry.register(
            create_database_circuit_breaker(
                func,
                operation_name,
                registry.settings.get_config("database"),
            )
        )

    return _protect(factory)
