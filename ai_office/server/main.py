"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware (CORS),
and includes all API routers. Unless ``AI_OFFICE_RUN_EMBEDDED_WORKER`` is
disabled, the job worker runs as a background task of the server process.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ai_office.core.config import settings
from ai_office.core.logging_config import get_logger, setup_logging
from ai_office.core.monitoring import initialize_logfire

from .api.v1 import approvals, health, workflow_runs
from .core import constant
from .core.database import init_db
from .services.deps import close_container, get_container

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Startup creates missing tables, builds the service container and starts
    the embedded worker; shutdown stops the worker and closes shared clients.
    """
    logger.info("Starting up AI Office Server...")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    container = get_container()
    stop = asyncio.Event()
    worker_task = None
    if settings.run_embedded_worker:
        worker_task = asyncio.create_task(container.worker.run_forever(stop))

    yield

    logger.info("Shutting down AI Office Server...")
    stop.set()
    if worker_task is not None:
        await worker_task
    await close_container()


app = FastAPI(
    title=constant.PROJECT_NAME,
    description="""
    AI Office Server API

    This API starts and inspects workflow runs and collects the human decisions
    that paused workflow runs and agent sessions wait for.
    """,
    version="0.1.0",
    openapi_url=f"{constant.API_V1_STR}/openapi.json",
    docs_url=f"{constant.API_V1_STR}/docs",
    redoc_url=f"{constant.API_V1_STR}/redoc",
    lifespan=lifespan,
)

initialize_logfire(app)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(health.router, tags=["health"])
app.include_router(workflow_runs.router, prefix=constant.API_V1_STR, tags=["workflow-runs"])
app.include_router(approvals.router, prefix=constant.API_V1_STR, tags=["tool-approvals"])
