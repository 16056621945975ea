"""Exception hierarchy for the CRM backend."""

from typing import Any

from .models import ErrorCode, ErrorDetail


class CRMException(Exception):
    """Base exception for the CRM backend."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.correlation_id = correlation_id

    def to_detail(self) -> ErrorDetail:
        """Convert to a serializable error detail."""
        return ErrorDetail(
            code=self.error_code,
            message=self.message,
            details=self.details,
            correlation_id=self.correlation_id,
        )
