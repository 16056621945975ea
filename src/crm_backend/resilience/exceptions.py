"""Resilience-specific exceptions."""

from typing import Any

from crm_backend.domain.exceptions import CRMException
from crm_backend.domain.models import ErrorCode
from crm_backend.observability.logging.correlation import get_correlation_id


class ResilienceException(CRMException):
    """Base exception for resilience patterns."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(
            message, error_code, details, correlation_id or get_correlation_id()
        )


class CircuitBreakerOpenException(ResilienceException):
    """The circuit is open and the call was rejected without being attempted."""

    def __init__(self, breaker_name: str, correlation_id: str | None = None):
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open: "
            "service temporarily unavailable",
            ErrorCode.CIRCUIT_BREAKER_OPEN,
            {"breaker_name": breaker_name},
            correlation_id,
        )
        self.breaker_name = breaker_name


class CircuitBreakerTimeoutException(ResilienceException):
    """The protected call did not settle within the breaker timeout."""

    def __init__(
        self, breaker_name: str, timeout_ms: int, correlation_id: str | None = None
    ):
        super().__init__(
            f"Circuit breaker '{breaker_name}' timed out after {timeout_ms}ms",
            ErrorCode.TIMEOUT_ERROR,
            {"breaker_name": breaker_name, "timeout_ms": timeout_ms},
            correlation_id,
        )
        self.breaker_name = breaker_name
        self.timeout_ms = timeout_ms


class ServiceUnavailableException(ResilienceException):
    """A dependency is temporarily unavailable."""

    def __init__(
        self,
        message: str,
        service_name: str,
        service_type: str = "unknown",
        correlation_id: str | None = None,
    ):
        super().__init__(
            message,
            ErrorCode.SERVICE_UNAVAILABLE,
            {"service_name": service_name, "service_type": service_type},
            correlation_id,
        )
        self.service_name = service_name
        self.service_type = service_type


class ExternalServiceUnavailableException(ServiceUnavailableException):
    """An external HTTP dependency is temporarily unavailable."""

    def __init__(self, service_name: str, correlation_id: str | None = None):
        super().__init__(
            f"Service {service_name} is temporarily unavailable",
            service_name,
            "http",
            correlation_id,
        )


class DatabaseUnavailableException(ServiceUnavailableException):
    """A database operation is temporarily unavailable."""

    def __init__(self, operation_name: str, correlation_id: str | None = None):
        super().__init__(
            f"Database operation {operation_name} is temporarily unavailable",
            operation_name,
            "database",
            correlation_id,
        )
        self.operation_name = operation_name
