"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from jobqueue.constants import JobType
from jobqueue.types.job import QueueStats


class ScheduleJobRequest(BaseModel):
    """Request body for scheduling a job manually."""

    model_config = ConfigDict(populate_by_name=True)

    type: JobType = Field(..., description="Job type to schedule")
    data: dict[str, Any] = Field(default_factory=dict, description="Job payload data")
    delay: int | None = Field(default=None, ge=0, description="Delay in milliseconds")
    max_attempts: int | None = Field(
        default=None, ge=1, le=10, alias="maxAttempts", description="Maximum attempts"
    )


class ScheduleJobResponse(BaseModel):
    """Response body after scheduling a job."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: str = Field(serialization_alias="jobId")
    message: str = "Job scheduled successfully"


class StatsResponse(BaseModel):
    """Queue statistics response."""

    success: bool = True
    stats: QueueStats


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    job_queue: str
    timestamp: datetime
