#!/usr/bin/env python3
"""Server startup script for the CRM backend."""

import uvicorn
from dotenv import load_dotenv

from crm_backend.config.settings import get_settings


def main() -> None:
    """Start the FastAPI server."""
    load_dotenv()
    settings = get_settings()

    print(f"Starting {settings.app_name} {settings.app_version}")
    print(f"Environment: {settings.environment.value}")
    print(f"Listening on {settings.host}:{settings.port}")

    uvicorn.run(
        "crm_backend.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.observability.log_level.value.lower(),
        reload=settings.is_development,
        access_log=True,
    )


if __name__ == "__main__":
    main()
