"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from arena import __version__
from arena.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> bool:
    """
    Initialize Logfire and bridge stdlib logging into it.

    Must be called ONCE at application startup, before any service runs.

    Instruments:
    - HTTPX clients (Polymarket Gamma API)
    - PydanticAI agents (reasoning step)
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing Logfire token

    Returns:
        True if Logfire is active. Failures are logged, never raised.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="arena",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_httpx()
        logfire.instrument_pydantic_ai()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False


def instrument_app(app, enabled: bool) -> None:
    """Attach FastAPI request tracing when Logfire is active."""
    if not enabled:
        return
    try:
        logfire.instrument_fastapi(app)
    except Exception as e:
        logger.warning(f"FastAPI instrumentation skipped: {e}")
