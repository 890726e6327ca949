"""OpsDesk API service entry point.

This module provides the application instance for ASGI servers (uvicorn)
and a run() function for direct execution.

The app is created using the factory pattern from opsdesk.api.create_app().
"""

import logging

from opsdesk.api import create_app
from opsdesk.api.middleware import RequestIDLogFilter
from opsdesk.core.settings import get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr tagged with the current request ID."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestIDLogFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


settings = get_settings()
configure_logging(settings.log_level)

# Create the application instance for ASGI servers
# This is what uvicorn references: opsdesk.api.main:app
app = create_app(settings)


def run() -> None:
    """Run the API server using uvicorn.

    This function is called by the opsdesk-api console script
    defined in pyproject.toml.
    """
    import uvicorn

    logger.info("Starting OpsDesk API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        "opsdesk.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    run()
