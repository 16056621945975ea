"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from . import __description__, __version__
from .api.error_handlers import register_exception_handlers
from .api.health import router as health_router
from .config.settings import ApplicationSettings, get_settings
from .observability.logging import CorrelationIDMiddleware, setup_logging
from .resilience.circuit_breaker import CircuitBreakerRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start and stop application-owned resources."""
    settings: ApplicationSettings = app.state.settings
    logger.info(
        "Starting CRM backend",
        environment=settings.environment.value,
        version=__version__,
    )
    yield
    app.state.circuit_breakers.clear()
    logger.info("CRM backend stopped")


def create_app(settings: ApplicationSettings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Application settings; read from the environment if omitted

    Returns:
        Configured application with its circuit breaker registry in
        ``app.state.circuit_breakers``
    """
    settings = settings or get_settings()

    setup_logging(
        level=settings.observability.log_level,
        format_type=settings.observability.log_format,
        log_file=settings.observability.log_file,
        enable_colors=settings.is_development,
    )

    app = FastAPI(
        title=settings.app_name,
        description=__description__,
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.circuit_breakers = CircuitBreakerRegistry(settings.circuit_breaker)

    app.middleware("http")(CorrelationIDMiddleware())

    register_exception_handlers(app)

    app.include_router(health_router)

    if settings.observability.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app


load_dotenv()
app = create_app()
