"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for tracing of the agent
engine and the workflow orchestrator:
- Model calls made through pydantic-ai
- Database operations (SQLAlchemy)
- Outbound HTTP calls (httpx: webhooks, e-mail relay, web_fetch)
- API endpoints (FastAPI)

Monitoring is opt-in: nothing is configured unless ``LOGFIRE_ENABLED`` is set
and a ``LOGFIRE_TOKEN`` is available.
"""

import logging
import os
from typing import Any, Optional

import logfire

logger = logging.getLogger(__name__)

LOGFIRE_ENABLED = os.getenv("LOGFIRE_ENABLED", "false").lower() in ("true", "1", "yes")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "ai-office")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.1.0")


def _instrument(name: str, fn, **kwargs) -> None:
    try:
        fn(**kwargs)
        logger.info(f"Logfire: {name} instrumentation enabled")
    except Exception as e:
        logger.warning(f"Failed to instrument {name}: {e}")


def initialize_logfire(app: Optional[Any] = None) -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    Args:
        app: FastAPI application instance (optional). When provided, its
             endpoints are traced as well.

    Returns:
        True when Logfire was configured, False when monitoring stays disabled.
    """
    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not LOGFIRE_TOKEN:
        logger.warning("Logfire is enabled but LOGFIRE_TOKEN is not set. Monitoring will not work.")
        return False

    logfire.configure(
        token=LOGFIRE_TOKEN,
        service_name=LOGFIRE_SERVICE_NAME,
        service_version=LOGFIRE_SERVICE_VERSION,
        environment=LOGFIRE_ENVIRONMENT,
    )
    _instrument("Pydantic AI", logfire.instrument_pydantic_ai)
    _instrument("SQLAlchemy", logfire.instrument_sqlalchemy)
    _instrument("HTTPX", logfire.instrument_httpx)
    if app is not None:
        _instrument("FastAPI", logfire.instrument_fastapi, app=app)

    logger.info(f"Logfire monitoring initialized: environment={LOGFIRE_ENVIRONMENT}, service={LOGFIRE_SERVICE_NAME}")
    return True
