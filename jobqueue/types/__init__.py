"""
Type definitions for the job queue.
Contains input/output type definitions for all functions, grouped by module.
"""

from jobqueue.types.api import (
    HealthResponse,
    ScheduleJobRequest,
    ScheduleJobResponse,
    StatsResponse,
)
from jobqueue.types.events import JobEvent
from jobqueue.types.job import (
    CleanupPayload,
    JobContext,
    JobRecord,
    JobResult,
    PaymentPayload,
    QueueStats,
    RecurringJobDefinition,
    RentalReminderPayload,
    ReportPayload,
    ReviewRequestPayload,
    SendEmailPayload,
    StatsPayload,
)

__all__ = [
    # API types
    "ScheduleJobRequest",
    "ScheduleJobResponse",
    "StatsResponse",
    "HealthResponse",
    # Job types
    "JobRecord",
    "JobResult",
    "JobContext",
    "QueueStats",
    "RecurringJobDefinition",
    # Payloads
    "SendEmailPayload",
    "RentalReminderPayload",
    "ReviewRequestPayload",
    "PaymentPayload",
    "CleanupPayload",
    "StatsPayload",
    "ReportPayload",
    # Event types
    "JobEvent",
]
