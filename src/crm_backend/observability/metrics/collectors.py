"""Metrics collectors for the resilience layer."""

from typing import TYPE_CHECKING

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge

from ..logging import get_logger

if TYPE_CHECKING:
    from crm_backend.resilience.circuit_breaker.breaker import (
        CircuitBreaker,
        CircuitState,
    )
    from crm_backend.resilience.circuit_breaker.stats import CallOutcome

logger = get_logger(__name__)

STATE_VALUES = {"closed": 0, "half-open": 1, "open": 2}


class CircuitBreakerMetrics:
    """Records circuit breaker calls and state changes in Prometheus.

    Instances are attached to breakers as listeners.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else REGISTRY

        self.calls_total = Counter(
            "crm_backend_circuit_breaker_calls_total",
            "Circuit breaker calls",
            labelnames=["name", "result"],
            registry=self.registry,
        )
        self.state = Gauge(
            "crm_backend_circuit_breaker_state",
            "State of circuit breaker (0=closed, 1=half-open, 2=open)",
            labelnames=["name"],
            registry=self.registry,
        )

    def record_call(self, name: str, result: str) -> None:
        self.calls_total.labels(name=name, result=result).inc()

    def record_state(self, name: str, state: str) -> None:
        self.state.labels(name=name).set(STATE_VALUES[state])

    def on_call(self, breaker: "CircuitBreaker", outcome: "CallOutcome") -> None:
        self.record_call(breaker.name, outcome.value)

    def on_state_change(
        self,
        breaker: "CircuitBreaker",
        old_state: "CircuitState",
        new_state: "CircuitState",
    ) -> None:
        self.record_state(breaker.name, new_state.value)


_circuit_breaker_metrics: CircuitBreakerMetrics | None = None


def get_circuit_breaker_metrics() -> CircuitBreakerMetrics:
    """Get the process-wide metrics recorder bound to the default registry."""
    global _circuit_breaker_metrics
    if _circuit_breaker_metrics is None:
        _circuit_breaker_metrics = CircuitBreakerMetrics()
        logger.debug("Registered circuit breaker metrics")
    return _circuit_breaker_metrics
