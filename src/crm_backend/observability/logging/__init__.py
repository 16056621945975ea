"""Structured logging configuration and utilities."""

from .config import (
    LogFormat,
    LoggingConfig,
    LogLevel,
    get_logger,
    setup_development_logging,
    setup_logging,
    setup_production_logging,
    setup_testing_logging,
)
from .correlation import (
    CorrelationContext,
    CorrelationIDMiddleware,
    get_correlation_id,
    set_correlation_id,
)
from .formatters import ConsoleFormatter, JSONFormatter, StructuredFormatter

__all__ = [
    "setup_logging",
    "setup_development_logging",
    "setup_production_logging",
    "setup_testing_logging",
    "LoggingConfig",
    "LogLevel",
    "LogFormat",
    "get_logger",
    "JSONFormatter",
    "ConsoleFormatter",
    "StructuredFormatter",
    "CorrelationContext",
    "CorrelationIDMiddleware",
    "get_correlation_id",
    "set_correlation_id",
]
