"""Logging configuration and setup.

Everything is logged through structlog on top of the standard library, so
uvicorn and FastAPI records end up in the same stream as application events.
"""

import logging
import sys
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

from .correlation import CorrelationIDProcessor
from .formatters import ConsoleFormatter, JSONFormatter, StructuredFormatter

SERVICE_NAME = "crm-backend"

# Third-party loggers that drown out breaker events at INFO.
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Logging formats."""

    JSON = "json"
    CONSOLE = "console"
    STRUCTURED = "structured"


def add_service_name(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Tag every event with the service name for log aggregation."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration for one process."""

    level: LogLevel = LogLevel.INFO
    format_type: LogFormat = LogFormat.JSON
    log_file: str | None = None
    enable_correlation: bool = True
    enable_colors: bool = True
    include_timestamps: bool = True
    tag_service: bool = True

    def build_processors(self) -> list[Any]:
        """Build the structlog processor chain ending in the renderer."""
        processors: list[Any] = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
        if self.tag_service:
            processors.append(add_service_name)
        if self.enable_correlation:
            processors.append(CorrelationIDProcessor())
        if self.include_timestamps:
            processors.append(structlog.processors.TimeStamper(fmt="ISO"))

        processors.append(self.build_renderer())
        return processors

    def build_renderer(self) -> Any:
        if self.format_type == LogFormat.CONSOLE:
            return ConsoleFormatter(colors=self.enable_colors)
        if self.format_type == LogFormat.STRUCTURED:
            return StructuredFormatter()
        return JSONFormatter()

    def setup(self) -> None:
        """Apply this configuration to stdlib logging and structlog."""
        handler: logging.Handler = (
            logging.FileHandler(self.log_file)
            if self.log_file
            else logging.StreamHandler(sys.stdout)
        )
        logging.basicConfig(
            level=getattr(logging, self.level.value),
            format="%(message)s",
            handlers=[handler],
            force=True,
        )
        if self.level != LogLevel.DEBUG:
            for name in NOISY_LOGGERS:
                logging.getLogger(name).setLevel(logging.WARNING)

        structlog.configure(
            processors=self.build_processors(),
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=LoggerFactory(),
            cache_logger_on_first_use=True,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["level"] = self.level.value
        data["format_type"] = self.format_type.value
        return data

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "LoggingConfig":
        """Create configuration from a dictionary, e.g. parsed from YAML."""
        values = dict(config)
        values["level"] = LogLevel(values.get("level", LogLevel.INFO.value))
        values["format_type"] = LogFormat(
            values.get("format_type", LogFormat.JSON.value)
        )
        return cls(**values)


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: LogFormat = LogFormat.JSON,
    log_file: str | None = None,
    enable_correlation: bool = True,
    enable_colors: bool = True,
    include_timestamps: bool = True,
) -> None:
    """Setup structured logging configuration."""
    LoggingConfig(
        level=level,
        format_type=format_type,
        log_file=log_file,
        enable_correlation=enable_correlation,
        enable_colors=enable_colors,
        include_timestamps=include_timestamps,
    ).setup()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def setup_development_logging() -> None:
    """Readable, coloured DEBUG output on the console."""
    LoggingConfig(level=LogLevel.DEBUG, format_type=LogFormat.CONSOLE).setup()


def setup_production_logging(log_file: str | None = None) -> None:
    """JSON lines at INFO, optionally to a file."""
    LoggingConfig(log_file=log_file).setup()


def setup_testing_logging() -> None:
    """Quiet, deterministic output for the test suite."""
    LoggingConfig(
        level=LogLevel.WARNING,
        format_type=LogFormat.STRUCTURED,
        enable_correlation=False,
        include_timestamps=False,
        tag_service=False,
    ).setup()
