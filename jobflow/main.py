"""
Main FastAPI application.

This is the entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jobflow.core.config import settings
from jobflow.errors import AppError, app_error_handler
from jobflow.routers import health, jobs, questions, stages, transitions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for the FastAPI app.

    Configures logging on startup.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting %s...", settings.APP_NAME)

    yield  # The server runs while we're "yielded" here

    logger.info("Shutting down %s...", settings.APP_NAME)


# Create the FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Job stage progression engine: configurable stages, question-driven transitions, audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(AppError, app_error_handler)

# Include routers (API endpoints)
app.include_router(health.router, tags=["Health"])
app.include_router(stages.router)
app.include_router(questions.router)
app.include_router(transitions.router)
app.include_router(jobs.router)
