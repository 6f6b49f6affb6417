"""
Job-related type definitions.

`JobRecord` is the unit persisted in the durable store. Its JSON shape uses
camelCase keys so records written by other producers stay readable.
"""

import secrets
import string
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from jobqueue.constants import (
    DEFAULT_MAX_ATTEMPTS,
    JOB_ID_SUFFIX_LENGTH,
    EmailTemplate,
    JobStatus,
    JobType,
)

if TYPE_CHECKING:
    from jobqueue.collaborators import JobDependencies
    from jobqueue.config import Settings
    from jobqueue.store.base import JobStore

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    """Convert a datetime to a sorted-set score (epoch milliseconds)."""
    return int(moment.timestamp() * 1000)


def generate_job_id(job_type: JobType, created_at: datetime) -> str:
    """Build an id from the job type, creation time and a random suffix."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(JOB_ID_SUFFIX_LENGTH))
    return f"{job_type.value}_{to_epoch_ms(created_at)}_{suffix}"


class CamelModel(BaseModel):
    """Base model serializing to camelCase while accepting snake_case input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class JobRecord(CamelModel):
    """
    A persisted unit of deferred work.

    Lives in exactly one of the pending/completed/failed collections at rest.
    """

    id: str
    type: JobType
    payload: dict[str, Any] = Field(default_factory=dict, alias="data")
    scheduled_at: datetime
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    status: JobStatus = JobStatus.PENDING
    created_at: datetime
    processed_at: datetime | None = None
    error: str | None = None

    @classmethod
    def new(
        cls,
        job_type: JobType,
        payload: dict[str, Any] | None = None,
        delay_ms: int = 0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        now: datetime | None = None,
    ) -> "JobRecord":
        """Create a fresh pending record due `delay_ms` from now."""
        created_at = now or utc_now()
        return cls(
            id=generate_job_id(job_type, created_at),
            type=job_type,
            payload=payload or {},
            scheduled_at=created_at + timedelta(milliseconds=max(delay_ms, 0)),
            attempts=0,
            max_attempts=max_attempts,
            status=JobStatus.PENDING,
            created_at=created_at,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "JobRecord":
        return cls.model_validate_json(raw)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @property
    def score(self) -> int:
        """Sort key in the pending collection."""
        return to_epoch_ms(self.scheduled_at)

    @property
    def is_last_attempt(self) -> bool:
        return self.attempts >= self.max_attempts


# ============================================================================
# Typed payloads
# ============================================================================


class SendEmailPayload(CamelModel):
    """Payload for `send_email` jobs."""

    template: EmailTemplate
    params: dict[str, Any] = Field(default_factory=dict)


class RentalReminderPayload(CamelModel):
    """
    Payload for `rental_reminder` jobs.

    Without a rental id the job sweeps every rental starting tomorrow.
    """

    rental_id: str | None = None


class ReviewRequestPayload(CamelModel):
    rental_id: str


class PaymentPayload(CamelModel):
    rental_id: str
    amount: Decimal = Field(gt=0)
    payment_method_id: str | None = None


class CleanupPayload(CamelModel):
    retention_days: int | None = Field(default=None, ge=1)


class StatsPayload(CamelModel):
    """Daily stats; `day` defaults to yesterday."""

    day: date | None = None


class ReportPayload(CamelModel):
    """Weekly report; `week_ending` (exclusive) defaults to today."""

    week_ending: date | None = None


# ============================================================================
# Execution types
# ============================================================================


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float | None = None

    @classmethod
    def ok(cls, **output: Any) -> "JobResult":
        return cls(success=True, output=output or None)

    @classmethod
    def failure(cls, error: str) -> "JobResult":
        return cls(success=False, error=error)


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains the job record and the collaborators handlers may use.
    """

    job: JobRecord
    dependencies: "JobDependencies"
    store: "JobStore"
    settings: "Settings"
    started_at: datetime = field(default_factory=utc_now)

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def attempt(self) -> int:
        return self.job.attempts


class QueueStats(BaseModel):
    """Snapshot of queue sizes for monitoring."""

    pending: int
    active: int
    completed: int
    failed: int


class RecurringJobDefinition(BaseModel):
    """A named cron-triggered producer of job records."""

    name: str = Field(min_length=1)
    cron_expression: str
    job_type: JobType
    payload: dict[str, Any] = Field(default_factory=dict)
