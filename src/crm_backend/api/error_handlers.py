"""Error handling and response standardization for the API."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from crm_backend.domain.exceptions import CRMException
from crm_backend.domain.models import ErrorDetail
from crm_backend.resilience.exceptions import (
    CircuitBreakerOpenException,
    CircuitBreakerTimeoutException,
    ServiceUnavailableException,
)

logger = structlog.get_logger()

ExceptionHandler = Callable[[Request, Exception], Awaitable[JSONResponse]]

# Most specific first; Starlette resolves handlers along the exception's MRO.
STATUS_CODES: dict[type[CRMException], int] = {
    CircuitBreakerOpenException: status.HTTP_503_SERVICE_UNAVAILABLE,
    ServiceUnavailableException: status.HTTP_503_SERVICE_UNAVAILABLE,
    CircuitBreakerTimeoutException: status.HTTP_504_GATEWAY_TIMEOUT,
    CRMException: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ErrorResponse(ErrorDetail):
    """Standardized error response format."""

    error: bool = True
    timestamp: str
    path: str


def get_correlation_id(request: Request) -> str:
    """Extract correlation ID from request."""
    return getattr(request.state, "correlation_id", "unknown")


def create_error_response(
    request: Request, detail: ErrorDetail, status_code: int
) -> JSONResponse:
    """Create standardized error response.

    An ID stamped on the error wins over the one of the current request.
    """
    body = ErrorResponse(
        **detail.model_dump(exclude={"correlation_id"}),
        correlation_id=detail.correlation_id or get_correlation_id(request),
        timestamp=datetime.now(UTC).isoformat(),
        path=str(request.url.path),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def crm_exception_handler(status_code: int) -> ExceptionHandler:
    """Build a handler rendering a ``CRMException`` with a fixed status."""

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if not isinstance(exc, CRMException):
            raise exc

        log = logger.error if status_code == 500 else logger.warning
        log(
            "Request failed",
            error_code=exc.error_code.value,
            error_message=exc.message,
            status_code=status_code,
            path=str(request.url.path),
        )
        return create_error_response(request, exc.to_detail(), status_code)

    return handler


def register_exception_handlers(app: FastAPI) -> None:
    """Map resilience and domain errors to HTTP responses."""
    for exc_class, status_code in STATUS_CODES.items():
        app.add_exception_handler(exc_class, crm_exception_handler(status_code))
