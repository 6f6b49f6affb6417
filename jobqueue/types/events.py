"""
Event type definitions for the real-time push channel.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from jobqueue.constants import (
    EVENT_JOB_COMPLETED,
    EVENT_JOB_CREATED,
    EVENT_JOB_FAILED,
    EVENT_JOB_RETRYING,
    JobStatus,
    JobType,
)
from jobqueue.types.job import JobRecord, utc_now


class JobEvent(BaseModel):
    """
    Event emitted when a job changes durable state.
    Fanned out through the push channel collaborator.
    """

    event_type: str
    job_id: str
    job_type: JobType
    status: JobStatus
    timestamp: datetime
    data: dict[str, Any] | None = None

    @classmethod
    def _for(cls, event_type: str, job: JobRecord, data: dict[str, Any] | None) -> "JobEvent":
        return cls(
            event_type=event_type,
            job_id=job.id,
            job_type=job.type,
            status=job.status,
            timestamp=utc_now(),
            data=data,
        )

    @classmethod
    def job_created(cls, job: JobRecord) -> "JobEvent":
        """Create a job created event."""
        return cls._for(EVENT_JOB_CREATED, job, {"scheduled_at": job.scheduled_at.isoformat()})

    @classmethod
    def job_completed(cls, job: JobRecord, output: dict[str, Any] | None = None) -> "JobEvent":
        """Create a job completed event."""
        return cls._for(EVENT_JOB_COMPLETED, job, {"attempts": job.attempts, "result": output})

    @classmethod
    def job_retrying(cls, job: JobRecord, delay_ms: int) -> "JobEvent":
        """Create a job retry-scheduled event."""
        return cls._for(
            EVENT_JOB_RETRYING,
            job,
            {"error": job.error, "attempt": job.attempts, "delay_ms": delay_ms},
        )

    @classmethod
    def job_failed(cls, job: JobRecord) -> "JobEvent":
        """Create a job permanently failed event."""
        return cls._for(EVENT_JOB_FAILED, job, {"error": job.error, "total_attempts": job.attempts})
