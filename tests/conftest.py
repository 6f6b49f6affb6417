"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from jobqueue.collaborators import JobDependencies
from jobqueue.config import Settings
from jobqueue.observability.metrics import MetricsCollector
from jobqueue.store.base import JobStore
from jobqueue.store.memory import MemoryJobStore
from jobqueue.store.redis import RedisJobStore
from jobqueue.worker.main import JobQueue

from tests.helpers import (
    FakeEventPublisher,
    FakeMonitoringSink,
    FakeNotifier,
    FakePaymentGateway,
    FakeRentalRepository,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        store_backend="memory",
        log_level="DEBUG",
        log_format="console",
        job_retry_delay_ms=20,
        job_timeout_ms=1000,
        job_concurrency=5,
        scheduler_poll_interval_seconds=0.01,
        scheduler_error_backoff_seconds=0.01,
        recurring_jobs_enabled=False,
        stats_report_interval_seconds=0.05,
        timezone="UTC",
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def memory_store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest_asyncio.fixture
async def redis_store() -> AsyncGenerator[RedisJobStore]:
    """Redis store backed by fakeredis."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    store = RedisJobStore(client, key_prefix="test-jobs")
    yield store
    await store.close()


@pytest.fixture(params=["memory", "redis"])
def store(request, memory_store: MemoryJobStore, redis_store: RedisJobStore) -> JobStore:
    """Each store backend in turn."""
    return memory_store if request.param == "memory" else redis_store


@pytest.fixture
def rentals() -> FakeRentalRepository:
    return FakeRentalRepository()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def payments() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def monitoring() -> FakeMonitoringSink:
    return FakeMonitoringSink()


@pytest.fixture
def events() -> FakeEventPublisher:
    return FakeEventPublisher()


@pytest.fixture
def dependencies(
    rentals: FakeRentalRepository,
    notifier: FakeNotifier,
    payments: FakePaymentGateway,
    monitoring: FakeMonitoringSink,
    events: FakeEventPublisher,
) -> JobDependencies:
    return JobDependencies(
        rentals=rentals,
        notifier=notifier,
        payments=payments,
        monitoring=monitoring,
        events=events,
    )


@pytest_asyncio.fixture
async def queue(
    memory_store: MemoryJobStore,
    dependencies: JobDependencies,
    test_settings: Settings,
    metrics: MetricsCollector,
) -> AsyncGenerator[JobQueue]:
    """A job queue over the in-memory store, stopped after the test."""
    job_queue = JobQueue(memory_store, dependencies, test_settings, metrics)
    yield job_queue
    await job_queue.stop()
