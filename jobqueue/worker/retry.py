"""
Retry and backoff decisions.

The controller turns an execution result into a state transition; it does
not touch the store, the caller applies the returned transition.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from jobqueue.constants import JobStatus, QueueName
from jobqueue.types.job import JobRecord, JobResult, to_epoch_ms, utc_now


@dataclass(frozen=True)
class Transition:
    """Where a job record goes after an execution attempt."""

    job: JobRecord
    collection: QueueName
    score: int
    delay_ms: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.collection != QueueName.PENDING


class RetryController:
    """
    Decides what happens to a job after each attempt.

    processing -> completed                 (success)
    processing -> retrying, back to pending (failure, attempts < max_attempts)
    processing -> failed                    (failure, attempts >= max_attempts)
    """

    def __init__(self, base_delay_ms: int):
        if base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")
        self.base_delay_ms = base_delay_ms

    def backoff_delay_ms(self, attempts: int) -> int:
        """Delay before the next attempt, keyed off the attempt just made."""
        return self.base_delay_ms * 2 ** (max(attempts, 1) - 1)

    def on_success(self, job: JobRecord, now: datetime | None = None) -> Transition:
        now = now or utc_now()
        job.status = JobStatus.COMPLETED
        job.processed_at = now
        return Transition(job=job, collection=QueueName.COMPLETED, score=to_epoch_ms(now))

    def on_failure(self, job: JobRecord, error: str, now: datetime | None = None) -> Transition:
        now = now or utc_now()
        job.error = error

        if not job.is_last_attempt:
            delay_ms = self.backoff_delay_ms(job.attempts)
            job.status = JobStatus.RETRYING
            job.scheduled_at = now + timedelta(milliseconds=delay_ms)
            return Transition(
                job=job,
                collection=QueueName.PENDING,
                score=job.score,
                delay_ms=delay_ms,
            )

        job.status = JobStatus.FAILED
        job.processed_at = now
        return Transition(job=job, collection=QueueName.FAILED, score=to_epoch_ms(now))

    def apply(self, job: JobRecord, result: JobResult, now: datetime | None = None) -> Transition:
        """Transition for an execution result."""
        if result.success:
            return self.on_success(job, now)
        return self.on_failure(job, result.error or "Unknown error", now)
