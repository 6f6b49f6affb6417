"""
Job queue and worker process.

`JobQueue` owns all queue state for a process: the store handle, the set of
in-flight jobs and the recurring registrar. The scheduler loop claims due
jobs from the pending collection and executes them concurrently up to the
configured ceiling.
"""

import asyncio
import importlib
import logging
import signal
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from jobqueue.collaborators import JobDependencies
from jobqueue.config import Settings, get_settings
from jobqueue.constants import (
    DEFAULT_RECURRING_JOBS,
    SPAN_ENQUEUE_JOB,
    EmailTemplate,
    JobType,
    QueueName,
)
from jobqueue.exceptions import StoreUnavailableError
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.observability.tracing import get_tracer, setup_tracing
from jobqueue.reporter.main import StatsReporter
from jobqueue.store.base import JobStore
from jobqueue.store.connection import create_store
from jobqueue.types.events import JobEvent
from jobqueue.types.job import (
    JobRecord,
    JobResult,
    QueueStats,
    RecurringJobDefinition,
    RentalReminderPayload,
    ReviewRequestPayload,
    SendEmailPayload,
    to_epoch_ms,
    utc_now,
)
from jobqueue.worker.executor import JobExecutor
from jobqueue.worker.recurring import RecurringJobRegistrar
from jobqueue.worker.retry import RetryController, Transition

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Durable, retrying, concurrency-bounded job queue.

    Features:
    - Due-time ordered dispatch from the pending collection
    - Claim by removal before execution, so a job is dispatched once per claim
    - Exponential backoff retries and a terminal failed collection
    - Cron-driven recurring producers
    - Graceful shutdown that lets in-flight jobs finish

    A queue without dependencies can still enqueue and report stats, which is
    how producers such as the admin API use it.
    """

    def __init__(
        self,
        store: JobStore,
        dependencies: JobDependencies | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue.

        Args:
            store: Durable store holding the job collections.
            dependencies: Collaborators for handlers. Required to process jobs.
            settings: Optional settings. Uses the cached settings if not provided.
            metrics: Optional metrics collector.
        """
        self.settings = settings or get_settings()
        self.store = store
        self.dependencies = dependencies

        self.concurrency = self.settings.job_concurrency
        self.poll_interval = self.settings.scheduler_poll_interval_seconds
        self.error_backoff = self.settings.scheduler_error_backoff_seconds

        self._metrics = metrics or get_metrics()
        self._retry = RetryController(self.settings.job_retry_delay_ms)
        self._executor = (
            JobExecutor(dependencies, store, self.settings) if dependencies is not None else None
        )
        self.registrar = RecurringJobRegistrar(
            self.add_job,
            timezone=self.settings.timezone,
            metrics=self._metrics,
        )

        self._running = False
        self._loop_task: asyncio.Task | None = None
        self._active_jobs: dict[str, asyncio.Task] = {}
        self._wakeup = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        """Jobs dispatched and not yet resolved."""
        return len(self._active_jobs)

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    async def add_job(
        self,
        job_type: JobType,
        payload: BaseModel | dict[str, Any] | None = None,
        delay_ms: int = 0,
        max_attempts: int | None = None,
    ) -> str:
        """
        Add a job to the pending collection.

        Args:
            job_type: Handler selector.
            payload: Handler payload, as a typed payload model or a plain dict.
            delay_ms: Milliseconds before the job becomes due.
            max_attempts: Attempt ceiling. Defaults to `job_max_retries`.

        Returns:
            The new job id.
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)

        job = JobRecord.new(
            job_type,
            payload,
            delay_ms=delay_ms,
            max_attempts=max_attempts or self.settings.job_max_retries,
        )

        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("job_type", job.type.value)
            await self.store.enqueue(QueueName.PENDING, job.to_json(), job.score)

        self._metrics.record_job_enqueued(job.type.value)
        self._wakeup.set()

        logger.info(
            f"Job {job.id} added to queue",
            extra={
                "job_type": job.type.value,
                "scheduled_at": job.scheduled_at.isoformat(),
                "delay_ms": delay_ms,
            }
        )
        await self._publish(JobEvent.job_created(job))
        return job.id

    async def schedule_rental_reminder(self, rental_id: str, remind_at: datetime) -> str:
        return await self.add_job(
            JobType.RENTAL_REMINDER,
            RentalReminderPayload(rental_id=rental_id),
            delay_ms=self._delay_until(remind_at),
        )

    async def schedule_review_request(self, rental_id: str, request_at: datetime) -> str:
        return await self.add_job(
            JobType.REVIEW_REQUEST,
            ReviewRequestPayload(rental_id=rental_id),
            delay_ms=self._delay_until(request_at),
        )

    async def schedule_email(
        self,
        template: EmailTemplate,
        params: dict[str, Any],
        delay_ms: int = 0,
    ) -> str:
        return await self.add_job(
            JobType.SEND_EMAIL,
            SendEmailPayload(template=template, params=params),
            delay_ms=delay_ms,
        )

    def add_scheduled_job(
        self,
        name: str,
        cron_expression: str,
        job_type: JobType,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Register (or replace) a recurring job."""
        self.registrar.register(
            RecurringJobDefinition(
                name=name,
                cron_expression=cron_expression,
                job_type=job_type,
                payload=payload or {},
            )
        )

    @staticmethod
    def _delay_until(moment: datetime) -> int:
        return max(0, to_epoch_ms(moment) - to_epoch_ms(utc_now()))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the scheduler loop and the recurring registrar."""
        if self._running:
            return
        if self._executor is None:
            raise RuntimeError("JobQueue needs dependencies to process jobs")

        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop(), name="jobqueue-scheduler")

        if self.settings.recurring_jobs_enabled:
            self._setup_scheduled_jobs()
        self.registrar.start()

        logger.info(
            "Job queue processor started",
            extra={"concurrency": self.concurrency, "poll_interval": self.poll_interval}
        )

    async def stop(self) -> None:
        """
        Stop the queue gracefully.

        No new jobs are started; in-flight jobs are allowed to finish.
        """
        self.registrar.stop()

        if not self._running:
            return

        logger.info("Job queue processor stopping", extra={"active": self.active_count})
        self._running = False
        self._wakeup.set()

        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        if self._active_jobs:
            logger.info(f"Waiting for {len(self._active_jobs)} jobs to complete")
            await asyncio.gather(*self._active_jobs.values(), return_exceptions=True)

        logger.info("Job queue processor stopped")

    async def close(self) -> None:
        """Stop processing and release the store."""
        await self.stop()
        await self.store.close()

    def _setup_scheduled_jobs(self) -> None:
        for name, cron_expression, job_type in DEFAULT_RECURRING_JOBS:
            self.add_scheduled_job(name, cron_expression, job_type)
        logger.info("Scheduled jobs setup completed")

    # ------------------------------------------------------------------
    # Scheduler loop
    # ------------------------------------------------------------------

    async def _wait_for_wakeup(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
        except TimeoutError:
            pass

    async def _run_loop(self) -> None:
        while self._running:
            self._wakeup.clear()
            try:
                # Backpressure: never start a job past the ceiling
                if len(self._active_jobs) >= self.concurrency:
                    await self._wait_for_wakeup(self.poll_interval)
                    continue

                due = await self.store.pop_due(
                    QueueName.PENDING, to_epoch_ms(utc_now()), limit=1
                )
                if not due:
                    await self._wait_for_wakeup(self.poll_interval)
                    continue

                raw = due[0]
                # Claim before dispatch; losing the race means another consumer has it
                if not await self.store.remove(QueueName.PENDING, raw):
                    continue

                self._dispatch(raw)

            except StoreUnavailableError as e:
                self._metrics.record_store_error()
                logger.warning(
                    "Job store unavailable, backing off",
                    extra={"error": str(e), "backoff_seconds": self.error_backoff}
                )
                await asyncio.sleep(self.error_backoff)
            except Exception as e:
                logger.exception(f"Error in job processing loop: {e}")
                await asyncio.sleep(self.error_backoff)

    def _dispatch(self, raw: str) -> None:
        try:
            job = JobRecord.from_json(raw)
        except ValidationError as e:
            logger.error("Malformed job record moved to failed", extra={"error": str(e)})
            task = asyncio.create_task(self._quarantine(raw))
            self._track(f"malformed-{id(task)}", task)
            return

        task = asyncio.create_task(self._process_job(job), name=f"process-{job.id}")
        self._track(job.id, task)

    def _track(self, key: str, task: asyncio.Task) -> None:
        self._active_jobs[key] = task
        self._metrics.set_active_jobs(len(self._active_jobs))

        def _done(_: asyncio.Task) -> None:
            self._active_jobs.pop(key, None)
            self._metrics.set_active_jobs(len(self._active_jobs))
            self._wakeup.set()

        task.add_done_callback(_done)

    async def _quarantine(self, raw: str) -> None:
        await self._persist(QueueName.FAILED, raw, to_epoch_ms(utc_now()))

    async def _persist(self, collection: QueueName, member: str, score: int) -> bool:
        """
        Write a record that is no longer in pending.

        Retries through store outages until the write lands, also while
        stopping, since the record is in no other collection. Returns False
        only for errors a retry cannot fix.
        """
        while True:
            try:
                await self.store.enqueue(collection, member, score)
                return True
            except StoreUnavailableError as e:
                self._metrics.record_store_error()
                logger.warning(
                    "Job store unavailable, retrying outcome write",
                    extra={
                        "target": collection.value,
                        "error": str(e),
                        "backoff_seconds": self.error_backoff,
                    }
                )
            except Exception as e:
                logger.exception(
                    f"Failed to persist job record to {collection.value}: {e}",
                    extra={"target": collection.value, "record": member}
                )
                return False
            await asyncio.sleep(self.error_backoff)

    async def _process_job(self, job: JobRecord) -> None:
        """Run one attempt and persist the resulting transition."""
        try:
            result = await self._executor.execute(job)
        except Exception as e:
            logger.exception(f"Executor error for job {job.id}", extra={"job_id": job.id})
            result = JobResult.failure(f"Executor error: {e}")

        transition = self._retry.apply(job, result)
        persisted = await self._persist(
            transition.collection, transition.job.to_json(), transition.score
        )
        if not persisted:
            return

        self._metrics.record_job_finished(
            job.type.value, job.status.value, (result.duration_ms or 0) / 1000
        )
        self._log_transition(transition)
        await self._publish(self._event_for(transition, result.output))

    def _log_transition(self, transition: Transition) -> None:
        job = transition.job
        extra = {"job_id": job.id, "job_type": job.type.value, "attempts": job.attempts}

        if transition.collection == QueueName.COMPLETED:
            logger.info(f"Job {job.id} completed successfully", extra=extra)
        elif transition.collection == QueueName.PENDING:
            logger.warning(
                f"Job {job.id} failed, retrying in {transition.delay_ms}ms",
                extra={**extra, "error": job.error},
            )
        else:
            logger.error(
                f"Job {job.id} failed permanently",
                extra={**extra, "error": job.error},
            )

    @staticmethod
    def _event_for(transition: Transition, output: dict[str, Any] | None) -> JobEvent:
        if transition.collection == QueueName.COMPLETED:
            return JobEvent.job_completed(transition.job, output)
        if transition.collection == QueueName.PENDING:
            return JobEvent.job_retrying(transition.job, transition.delay_ms or 0)
        return JobEvent.job_failed(transition.job)

    async def _publish(self, event: JobEvent) -> None:
        if self.dependencies is None or self.dependencies.events is None:
            return
        try:
            await self.dependencies.events.publish(event)
        except Exception as e:
            logger.warning(
                "Failed to publish job event",
                extra={"event_type": event.event_type, "job_id": event.job_id, "error": str(e)}
            )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def get_stats(self) -> QueueStats:
        """Collection sizes plus the in-process active count."""
        pending, completed, failed = await asyncio.gather(
            self.store.count(QueueName.PENDING),
            self.store.count(QueueName.COMPLETED),
            self.store.count(QueueName.FAILED),
        )
        return QueueStats(
            pending=pending,
            active=self.active_count,
            completed=completed,
            failed=failed,
        )


def load_dependencies(factory_path: str) -> JobDependencies:
    """
    Resolve a "module:callable" path and call it to build the dependencies.
    """
    module_name, _, attr = factory_path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"dependencies_factory must look like 'module:callable', got {factory_path!r}")

    factory: Callable[[], JobDependencies] = getattr(importlib.import_module(module_name), attr)
    return factory()


async def run_async(dependencies: JobDependencies | None = None) -> None:
    """Run the worker asynchronously until SIGTERM/SIGINT."""
    settings = get_settings()
    setup_logging(settings)
    setup_tracing(settings)

    if dependencies is None:
        if not settings.dependencies_factory:
            raise RuntimeError("Set DEPENDENCIES_FACTORY to run the worker")
        dependencies = load_dependencies(settings.dependencies_factory)

    queue = JobQueue(create_store(settings), dependencies, settings)
    reporter = StatsReporter(queue, dependencies.monitoring)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    await queue.start()
    reporter_task = asyncio.create_task(reporter.start())
    try:
        await stop_event.wait()
    finally:
        await reporter.stop()
        await reporter_task
        await queue.close()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
