"""Health check endpoints, including circuit breaker status."""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from crm_backend import __version__
from crm_backend.resilience.circuit_breaker import (
    BreakerStatus,
    CircuitBreakerRegistry,
    get_circuit_breaker_stats,
)

from .dependencies import get_circuit_breaker_registry

router = APIRouter(prefix="/health", tags=["health"])

Registry = Annotated[CircuitBreakerRegistry, Depends(get_circuit_breaker_registry)]


def _overall_status(statuses: list[str]) -> str:
    if BreakerStatus.DOWN.value in statuses:
        return BreakerStatus.DOWN.value
    if BreakerStatus.DEGRADED.value in statuses:
        return BreakerStatus.DEGRADED.value
    return BreakerStatus.HEALTHY.value


@router.get("", response_model=dict[str, str])
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": __version__,
    }


@router.get("/circuit-breakers", response_model=dict[str, Any])
async def circuit_breakers_health(registry: Registry) -> dict[str, Any]:
    """Stats for every registered circuit breaker."""
    breakers = registry.get_stats()
    return {
        "status": _overall_status([b["status"] for b in breakers.values()]),
        "timestamp": datetime.now(UTC).isoformat(),
        "summary": registry.get_global_stats(),
        "circuit_breakers": breakers,
    }


@router.get("/circuit-breakers/{name}", response_model=dict[str, Any])
async def circuit_breaker_health(name: str, registry: Registry) -> dict[str, Any]:
    """Stats for one circuit breaker."""
    breaker = registry.get(name)
    if breaker is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Circuit breaker '{name}' not found",
        )
    return get_circuit_breaker_stats(breaker)


@router.post("/circuit-breakers/{name}/reset", response_model=dict[str, Any])
async def reset_circuit_breaker(name: str, registry: Registry) -> dict[str, Any]:
    """Manually close a circuit breaker."""
    breaker = registry.get(name)
    if breaker is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Circuit breaker '{name}' not found",
        )
    registry.reset(name)
    return get_circuit_breaker_stats(breaker)
