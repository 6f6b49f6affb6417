"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from jobqueue.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOBS_ACTIVE,
    METRIC_JOBS_ENQUEUED,
    METRIC_JOBS_FINISHED,
    METRIC_QUEUE_DEPTH,
    METRIC_RECURRING_FIRED,
    METRIC_STORE_ERRORS,
)
from jobqueue.types.job import QueueStats

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Collection sizes and in-flight jobs
    - Enqueued jobs and execution outcomes
    - Job execution duration
    - Store errors and recurring firings
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of job records per durable collection",
            ["collection"],
            registry=self._registry,
        )

        self.jobs_active = Gauge(
            METRIC_JOBS_ACTIVE,
            "Number of jobs dispatched and not yet resolved",
            registry=self._registry,
        )

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            ["job_type"],
            registry=self._registry,
        )

        # status is completed, retrying or failed
        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of job attempts by outcome",
            ["job_type", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["job_type", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.store_errors = Counter(
            METRIC_STORE_ERRORS,
            "Total number of store errors seen by the scheduler loop",
            registry=self._registry,
        )

        self.recurring_fired = Counter(
            METRIC_RECURRING_FIRED,
            "Total number of recurring job firings",
            ["name"],
            registry=self._registry,
        )

    def record_job_enqueued(self, job_type: str) -> None:
        self.jobs_enqueued.labels(job_type=job_type).inc()

    def record_job_finished(self, job_type: str, status: str, duration_seconds: float) -> None:
        """Record the outcome of one execution attempt."""
        self.jobs_finished.labels(job_type=job_type, status=status).inc()
        self.job_duration.labels(job_type=job_type, status=status).observe(duration_seconds)

    def set_active_jobs(self, count: int) -> None:
        self.jobs_active.set(count)

    def record_store_error(self) -> None:
        self.store_errors.inc()

    def record_recurring_fired(self, name: str) -> None:
        self.recurring_fired.labels(name=name).inc()

    def update_queue_stats(self, stats: QueueStats) -> None:
        """Update gauges from a stats snapshot."""
        self.queue_depth.labels(collection="pending").set(stats.pending)
        self.queue_depth.labels(collection="completed").set(stats.completed)
        self.queue_depth.labels(collection="failed").set(stats.failed)
        self.jobs_active.set(stats.active)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the process-wide metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    if _metrics is None:
        return setup_metrics()
    return _metrics
