"""
Job management routes.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from jobqueue.api.auth import AdminUser
from jobqueue.api.deps import Queue
from jobqueue.constants import API_V1_PREFIX
from jobqueue.exceptions import StoreUnavailableError
from jobqueue.types.api import ScheduleJobRequest, ScheduleJobResponse, StatsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])


@router.post(
    "",
    response_model=ScheduleJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a job",
    description="Manually schedule a job. Admin only.",
)
async def schedule_job(
    request: ScheduleJobRequest,
    admin: AdminUser,
    queue: Queue,
) -> ScheduleJobResponse:
    """
    Enqueue a job on behalf of an admin.

    Raises:
        HTTPException: 503 if the job store is unreachable.
    """
    try:
        job_id = await queue.add_job(
            request.type,
            request.data,
            delay_ms=request.delay or 0,
            max_attempts=request.max_attempts,
        )
    except StoreUnavailableError as e:
        logger.error("Error scheduling job", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to schedule job",
        )

    logger.info(
        f"Job scheduled by admin {admin.user_id}",
        extra={"job_id": job_id, "job_type": request.type.value, "delay": request.delay},
    )
    return ScheduleJobResponse(job_id=job_id)


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Queue statistics",
    description="Pending, active, completed and failed job counts. Admin only.",
)
async def get_job_stats(admin: AdminUser, queue: Queue) -> StatsResponse:
    """Return current queue statistics."""
    try:
        stats = await queue.get_stats()
    except StoreUnavailableError as e:
        logger.error("Error getting job stats", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to get job statistics",
        )

    return StatsResponse(stats=stats)
