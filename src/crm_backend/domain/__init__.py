"""Domain models and exceptions."""

from .exceptions import CRMException
from .models import ErrorCode, ErrorDetail

__all__ = ["CRMException", "ErrorCode", "ErrorDetail"]
