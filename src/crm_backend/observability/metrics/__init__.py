"""Prometheus metrics collection."""

from .collectors import CircuitBreakerMetrics, get_circuit_breaker_metrics

__all__ = ["CircuitBreakerMetrics", "get_circuit_breaker_metrics"]
