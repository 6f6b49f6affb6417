"""
FastAPI application entry point.

The API is a producer and monitoring surface: it enqueues jobs and reports
stats, but never runs the scheduler loop itself.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobqueue import __version__
from jobqueue.api.routes import health_router, jobs_router
from jobqueue.config import get_settings
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import setup_metrics
from jobqueue.observability.tracing import instrument_fastapi, setup_tracing
from jobqueue.store.connection import create_store
from jobqueue.worker.main import JobQueue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds a producer-only job queue unless one was injected.
    """
    settings = get_settings()
    setup_logging(settings)
    setup_metrics()
    setup_tracing(settings)

    owns_queue = getattr(app.state, "queue", None) is None
    if owns_queue:
        app.state.queue = JobQueue(create_store(settings), settings=settings)

    logger.info("Application started")

    yield

    if owns_queue:
        await app.state.queue.close()
    logger.info("Application shutdown")


def create_app(queue: JobQueue | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        queue: Optional queue to serve. Built from settings at startup otherwise.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Rental Job Queue API",
        description="Admin and monitoring API for the rental marketplace job queue",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.queue = queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
