"""
Health check routes.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import Response

from jobqueue import __version__
from jobqueue.api.deps import Queue
from jobqueue.observability.metrics import get_metrics
from jobqueue.types.api import HealthResponse
from jobqueue.types.job import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and the job store.",
)
async def health_check(queue: Queue) -> HealthResponse:
    """
    Perform a health check.

    The job queue is healthy when its stats can be read from the store.
    """
    queue_status = "healthy"
    try:
        await queue.get_stats()
    except Exception as e:
        logger.error("Job queue health check failed", extra={"error": str(e)})
        queue_status = "unhealthy"

    return HealthResponse(
        status="healthy" if queue_status == "healthy" else "degraded",
        version=__version__,
        job_queue=queue_status,
        timestamp=utc_now(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(queue: Queue) -> dict:
    """Kubernetes readiness probe endpoint."""
    try:
        return {"ready": await queue.store.ping()}
    except Exception:
        return {"ready": False}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
