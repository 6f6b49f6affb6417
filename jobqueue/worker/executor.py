"""
Job executor.

Runs a single job record's handler under a wall-clock timeout.
"""

import asyncio
import logging
import time

from jobqueue.collaborators import JobDependencies
from jobqueue.config import Settings
from jobqueue.constants import SPAN_EXECUTE_JOB, TIMEOUT_ERROR, JobStatus
from jobqueue.observability.logging import bind_job_context
from jobqueue.observability.tracing import get_tracer
from jobqueue.store.base import JobStore
from jobqueue.types.job import JobContext, JobRecord, JobResult
from jobqueue.worker.handlers import execute_job

logger = logging.getLogger(__name__)


class JobExecutor:
    """
    Executes job records.

    A handler that exceeds the timeout is not cancelled: it keeps running in
    the background and its eventual outcome is ignored. The attempt counts
    as failed with error "timeout".
    """

    def __init__(self, dependencies: JobDependencies, store: JobStore, settings: Settings):
        self._dependencies = dependencies
        self._store = store
        self._settings = settings
        self.timeout_seconds = settings.job_timeout_ms / 1000
        self._abandoned: set[asyncio.Task] = set()

    @property
    def abandoned_count(self) -> int:
        """Timed-out handlers still running."""
        return len(self._abandoned)

    async def execute(self, job: JobRecord) -> JobResult:
        """
        Run one attempt of a job.

        Increments `attempts` and marks the record processing before the
        handler starts.

        Args:
            job: The record, already removed from the pending collection.

        Returns:
            JobResult: Never raises for handler-level problems.
        """
        job.attempts += 1
        job.status = JobStatus.PROCESSING
        bind_job_context(job.id, job.type.value, job.attempts)

        context = JobContext(
            job=job,
            dependencies=self._dependencies,
            store=self._store,
            settings=self._settings,
        )

        logger.info(
            f"Processing job {job.id}",
            extra={"job_type": job.type.value, "attempt": job.attempts}
        )

        start_time = time.monotonic()
        with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("job_type", job.type.value)
            span.set_attribute("attempt", job.attempts)

            task = asyncio.create_task(execute_job(context), name=f"job-{job.id}")
            done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)

            if not done:
                self._abandoned.add(task)
                task.add_done_callback(self._abandoned.discard)
                logger.error(
                    f"Job {job.id} timed out",
                    extra={"timeout_seconds": self.timeout_seconds}
                )
                result = JobResult.failure(TIMEOUT_ERROR)
            else:
                result = task.result()

            span.set_attribute("success", result.success)

        result.duration_ms = (time.monotonic() - start_time) * 1000
        return result
