"""
Integration tests for the job queue and its scheduler loop.
"""

import asyncio
from datetime import timedelta

import pytest

from jobqueue.constants import (
    DEFAULT_RECURRING_JOBS,
    EVENT_JOB_COMPLETED,
    EVENT_JOB_CREATED,
    EVENT_JOB_FAILED,
    EVENT_JOB_RETRYING,
    EmailTemplate,
    JobStatus,
    JobType,
    QueueName,
)
from jobqueue.exceptions import StoreUnavailableError
from jobqueue.store.memory import MemoryJobStore
from jobqueue.types.job import utc_now
from jobqueue.worker.main import JobQueue

from tests.helpers import read_collection, wait_until


class FlakyStore(MemoryJobStore):
    """Memory store whose first few polls fail as if the server were down."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def pop_due(self, collection, max_score, limit=1):
        if self.failures > 0:
            self.failures -= 1
            raise StoreUnavailableError("connection refused")
        return await super().pop_due(collection, max_score, limit)


class OutcomeWriteOutageStore(MemoryJobStore):
    """Memory store that drops out for the first few writes to one collection."""

    def __init__(self, collection: QueueName, failures: int) -> None:
        super().__init__()
        self.collection = collection
        self.failures = failures

    async def enqueue(self, collection, member, score):
        if collection == self.collection and self.failures > 0:
            self.failures -= 1
            raise StoreUnavailableError("connection reset")
        await super().enqueue(collection, member, score)


class GlitchyStore(MemoryJobStore):
    """Memory store whose first poll hits a bug unrelated to connectivity."""

    def __init__(self) -> None:
        super().__init__()
        self.glitched = False

    async def pop_due(self, collection, max_score, limit=1):
        if not self.glitched:
            self.glitched = True
            raise RuntimeError("unexpected reply")
        return await super().pop_due(collection, max_score, limit)


def collection_size(store, collection: QueueName, expected: int):
    async def _check() -> bool:
        return await store.count(collection) == expected
    return _check


class TestJobQueueProducers:
    """Tests for enqueueing."""

    @pytest.mark.asyncio
    async def test_add_job_persists_pending_record(self, queue: JobQueue, memory_store, events):
        job_id = await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"}, delay_ms=60_000)

        [job] = await read_collection(memory_store, QueueName.PENDING)
        assert job.id == job_id
        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert job.max_attempts == 3
        assert job.scheduled_at > utc_now() + timedelta(seconds=50)
        assert [e.event_type for e in events.events] == [EVENT_JOB_CREATED]

    @pytest.mark.asyncio
    async def test_schedule_helpers(self, queue: JobQueue, memory_store):
        await queue.schedule_email(EmailTemplate.WELCOME, {"user_id": "u1"})
        await queue.schedule_rental_reminder("r1", utc_now() + timedelta(days=1))
        await queue.schedule_review_request("r2", utc_now() - timedelta(hours=1))

        jobs = {job.type: job for job in await read_collection(memory_store, QueueName.PENDING)}

        assert jobs[JobType.SEND_EMAIL].payload == {"template": "welcome", "params": {"user_id": "u1"}}
        assert jobs[JobType.RENTAL_REMINDER].payload == {"rentalId": "r1"}
        # A moment in the past is due immediately
        assert jobs[JobType.REVIEW_REQUEST].scheduled_at <= utc_now()

    @pytest.mark.asyncio
    async def test_producer_only_queue_cannot_start(self, memory_store, test_settings, metrics):
        producer = JobQueue(memory_store, settings=test_settings, metrics=metrics)

        await producer.add_job(JobType.DAILY_STATS)

        with pytest.raises(RuntimeError):
            await producer.start()
        assert await memory_store.count(QueueName.PENDING) == 1


class TestJobQueueProcessing:
    """End-to-end processing through the scheduler loop."""

    @pytest.mark.asyncio
    async def test_successful_job_completes(self, queue: JobQueue, memory_store, notifier, events):
        job_id = await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})

        await queue.start()
        await wait_until(collection_size(memory_store, QueueName.COMPLETED, 1))

        [job] = await read_collection(memory_store, QueueName.COMPLETED)
        assert job.id == job_id
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1
        assert job.processed_at is not None
        assert await memory_store.count(QueueName.PENDING) == 0
        assert notifier.sent == [(EmailTemplate.WELCOME, {})]
        assert len(events.of_type(EVENT_JOB_COMPLETED)) == 1

    @pytest.mark.asyncio
    async def test_single_attempt_failure_is_terminal(self, queue: JobQueue, memory_store, notifier, events):
        """A throwing handler with one attempt lands in failed straight away."""
        notifier.failures_remaining = 1
        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"}, max_attempts=1)

        await queue.start()
        await wait_until(collection_size(memory_store, QueueName.FAILED, 1))

        [job] = await read_collection(memory_store, QueueName.FAILED)
        assert job.status == JobStatus.FAILED
        assert job.attempts == 1
        assert job.error == "Handler exception: SMTP connection refused"
        assert await memory_store.count(QueueName.PENDING) == 0
        assert await memory_store.count(QueueName.COMPLETED) == 0
        assert len(events.of_type(EVENT_JOB_FAILED)) == 1

    @pytest.mark.asyncio
    async def test_reminder_for_rental_starting_today_completes_silently(
        self, queue: JobQueue, memory_store, rentals, notifier
    ):
        rentals.add_rental("r1", utc_now())
        await queue.add_job(JobType.RENTAL_REMINDER, {"rentalId": "r1"})

        await queue.start()
        await wait_until(collection_size(memory_store, QueueName.COMPLETED, 1))

        [job] = await read_collection(memory_store, QueueName.COMPLETED)
        assert job.error is None
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_retries_with_backoff_then_completes(self, queue: JobQueue, memory_store, notifier, events, test_settings):
        """Fails twice, succeeds on the third attempt, with growing delays."""
        notifier.failures_remaining = 2
        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"}, max_attempts=3)

        await queue.start()
        await wait_until(collection_size(memory_store, QueueName.COMPLETED, 1))

        [job] = await read_collection(memory_store, QueueName.COMPLETED)
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 3

        retries = events.of_type(EVENT_JOB_RETRYING)
        delays = [event.data["delay_ms"] for event in retries]
        base = test_settings.job_retry_delay_ms
        assert delays == [base, base * 2]
        assert [event.data["attempt"] for event in retries] == [1, 2]
        assert all(event.status == JobStatus.RETRYING for event in retries)

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail(self, queue: JobQueue, memory_store, notifier):
        notifier.failures_remaining = 10
        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"}, max_attempts=2)

        await queue.start()
        await wait_until(collection_size(memory_store, QueueName.FAILED, 1))

        [job] = await read_collection(memory_store, QueueName.FAILED)
        assert job.attempts == 2
        assert await memory_store.count(QueueName.PENDING) == 0

    @pytest.mark.asyncio
    async def test_future_jobs_wait(self, queue: JobQueue, memory_store, notifier):
        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"}, delay_ms=60_000)

        await queue.start()
        await asyncio.sleep(0.1)

        assert notifier.sent == []
        assert await memory_store.count(QueueName.PENDING) == 1

    @pytest.mark.asyncio
    async def test_due_jobs_run_in_scheduled_order(self, queue: JobQueue, memory_store, notifier, test_settings):
        queue.concurrency = 1
        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome", "params": {"n": 2}}, delay_ms=20)
        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome", "params": {"n": 1}})

        await asyncio.sleep(0.05)
        await queue.start()
        await wait_until(collection_size(memory_store, QueueName.COMPLETED, 2))

        assert [params["n"] for _, params in notifier.sent] == [1, 2]

    @pytest.mark.asyncio
    async def test_concurrency_ceiling(self, memory_store, dependencies, notifier, test_settings, metrics):
        """Never more than `job_concurrency` jobs in flight."""
        settings = test_settings.model_copy(update={"job_concurrency": 3})
        job_queue = JobQueue(memory_store, dependencies, settings, metrics)
        notifier.delay = 0.05
        for _ in range(10):
            await job_queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})

        await job_queue.start()
        samples = []
        try:
            while await memory_store.count(QueueName.COMPLETED) < 10:
                samples.append(job_queue.active_count)
                await asyncio.sleep(0.005)
        finally:
            await job_queue.stop()

        assert max(samples) <= 3
        assert notifier.max_in_flight <= 3
        assert len(notifier.sent) == 10

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_jobs_finish(self, queue: JobQueue, memory_store, notifier):
        notifier.delay = 0.2
        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})
        await queue.start()

        async def in_flight() -> bool:
            return queue.active_count == 1

        await wait_until(in_flight)
        await queue.stop()

        assert not queue.is_running
        assert queue.active_count == 0
        assert await memory_store.count(QueueName.COMPLETED) == 1

    @pytest.mark.asyncio
    async def test_no_new_jobs_after_stop(self, queue: JobQueue, memory_store, notifier):
        await queue.start()
        await queue.stop()

        await queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})
        await asyncio.sleep(0.05)

        assert notifier.sent == []
        assert await memory_store.count(QueueName.PENDING) == 1

    @pytest.mark.asyncio
    async def test_survives_transient_store_errors(self, dependencies, test_settings, metrics, notifier):
        store = FlakyStore(failures=3)
        job_queue = JobQueue(store, dependencies, test_settings, metrics)
        await job_queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})

        await job_queue.start()
        try:
            await wait_until(collection_size(store, QueueName.COMPLETED, 1))
        finally:
            await job_queue.stop()

        assert store.failures == 0
        assert b"job_store_errors_total 3.0" in metrics.get_metrics()

    @pytest.mark.asyncio
    async def test_outcome_write_retried_through_outage(self, dependencies, test_settings, metrics, notifier, events):
        """A job whose completed write hits an outage still lands in completed."""
        store = OutcomeWriteOutageStore(QueueName.COMPLETED, failures=2)
        job_queue = JobQueue(store, dependencies, test_settings, metrics)
        await job_queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})

        await job_queue.start()
        try:
            await wait_until(collection_size(store, QueueName.COMPLETED, 1))
        finally:
            await job_queue.stop()

        assert store.failures == 0
        assert await store.count(QueueName.PENDING) == 0
        assert await store.count(QueueName.FAILED) == 0
        assert len(notifier.sent) == 1
        assert len(events.of_type(EVENT_JOB_COMPLETED)) == 1
        assert b"job_store_errors_total 2.0" in metrics.get_metrics()

    @pytest.mark.asyncio
    async def test_stop_waits_for_outcome_write(self, dependencies, test_settings, metrics, notifier):
        store = OutcomeWriteOutageStore(QueueName.COMPLETED, failures=5)
        job_queue = JobQueue(store, dependencies, test_settings, metrics)
        await job_queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})

        await job_queue.start()

        async def write_failing() -> bool:
            return store.failures < 5

        await wait_until(write_failing)
        await job_queue.stop()

        assert job_queue.active_count == 0
        assert await store.count(QueueName.COMPLETED) == 1
        assert await store.count(QueueName.PENDING) == 0

    @pytest.mark.asyncio
    async def test_loop_bug_is_not_a_store_error(self, dependencies, test_settings, metrics, notifier):
        store = GlitchyStore()
        job_queue = JobQueue(store, dependencies, test_settings, metrics)
        await job_queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})

        await job_queue.start()
        try:
            await wait_until(collection_size(store, QueueName.COMPLETED, 1))
        finally:
            await job_queue.stop()

        assert store.glitched
        assert b"job_store_errors_total 0.0" in metrics.get_metrics()

    @pytest.mark.asyncio
    async def test_malformed_record_is_quarantined(self, queue: JobQueue, memory_store):
        await memory_store.enqueue(QueueName.PENDING, "{not json", 0)

        await queue.start()
        await wait_until(collection_size(memory_store, QueueName.FAILED, 1))

        assert await memory_store.pop_due(QueueName.FAILED, 2**53) == ["{not json"]
        assert await memory_store.count(QueueName.PENDING) == 0

    @pytest.mark.asyncio
    async def test_two_consumers_share_one_store(self, memory_store, dependencies, test_settings, metrics, notifier):
        """Each job is dispatched once even with two queues polling the same store."""
        first = JobQueue(memory_store, dependencies, test_settings, metrics)
        second = JobQueue(memory_store, dependencies, test_settings, metrics)
        for n in range(20):
            await first.add_job(JobType.SEND_EMAIL, {"template": "welcome", "params": {"n": n}})

        await first.start()
        await second.start()
        try:
            await wait_until(collection_size(memory_store, QueueName.COMPLETED, 20))
        finally:
            await first.stop()
            await second.stop()

        assert sorted(params["n"] for _, params in notifier.sent) == list(range(20))


class TestJobQueueRedis:
    """Processing against the Redis store."""

    @pytest.mark.asyncio
    async def test_job_lifecycle(self, redis_store, dependencies, test_settings, metrics, notifier):
        notifier.failures_remaining = 1
        job_queue = JobQueue(redis_store, dependencies, test_settings, metrics)
        await job_queue.add_job(JobType.SEND_EMAIL, {"template": "welcome"})

        await job_queue.start()
        try:
            await wait_until(collection_size(redis_store, QueueName.COMPLETED, 1))
        finally:
            await job_queue.stop()

        [job] = await read_collection(redis_store, QueueName.COMPLETED)
        assert job.attempts == 2
        assert job.error == "Handler exception: SMTP connection refused"


class TestJobQueueStats:
    """Tests for stats and recurring setup."""

    @pytest.mark.asyncio
    async def test_get_stats(self, queue: JobQueue, memory_store):
        await queue.add_job(JobType.DAILY_STATS, delay_ms=60_000)
        await queue.add_job(JobType.DAILY_STATS, delay_ms=60_000)
        await memory_store.enqueue(QueueName.COMPLETED, "done", 1)
        await memory_store.enqueue(QueueName.FAILED, "broken", 1)

        stats = await queue.get_stats()

        assert stats.model_dump() == {"pending": 2, "active": 0, "completed": 1, "failed": 1}

    @pytest.mark.asyncio
    async def test_default_recurring_jobs(self, memory_store, dependencies, test_settings, metrics):
        settings = test_settings.model_copy(update={"recurring_jobs_enabled": True})
        job_queue = JobQueue(memory_store, dependencies, settings, metrics)

        await job_queue.start()
        try:
            assert set(job_queue.registrar.definitions) == {name for name, _, _ in DEFAULT_RECURRING_JOBS}
            assert job_queue.registrar.running
        finally:
            await job_queue.stop()

        assert not job_queue.registrar.running

    @pytest.mark.asyncio
    async def test_recurring_firing_enqueues_job(self, queue: JobQueue, memory_store):
        queue.add_scheduled_job("nightly_stats", "0 6 * * *", JobType.DAILY_STATS, {"day": "2026-10-18"})

        job_id = await queue.registrar.fire("nightly_stats")

        [job] = await read_collection(memory_store, QueueName.PENDING)
        assert job.id == job_id
        assert job.payload == {"day": "2026-10-18"}
