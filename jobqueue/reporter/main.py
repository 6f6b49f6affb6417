"""
Stats reporter.

Periodically snapshots queue stats, publishes them as Prometheus gauges and
hands them to the monitoring collaborator. Alert thresholds are evaluated by
the monitoring system, not here.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from jobqueue.collaborators import MonitoringSink
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.types.job import QueueStats

if TYPE_CHECKING:
    from jobqueue.worker.main import JobQueue

logger = logging.getLogger(__name__)


class StatsReporter:
    """
    Periodic stats reporter.

    Runs until stopped; a failed snapshot is logged and retried on the next
    interval.
    """

    def __init__(
        self,
        queue: "JobQueue",
        sink: MonitoringSink | None = None,
        interval_seconds: float | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the reporter.

        Args:
            queue: Queue whose stats are reported.
            sink: Optional monitoring collaborator receiving each snapshot.
            interval_seconds: Seconds between snapshots.
            metrics: Optional metrics collector.
        """
        self.queue = queue
        self.sink = sink
        self.interval = interval_seconds or queue.settings.stats_report_interval_seconds
        self._metrics = metrics or get_metrics()
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        """Start the reporting loop."""
        logger.info(f"Stats reporter starting with interval {self.interval}s")
        self._stopped.clear()

        while not self._stopped.is_set():
            await self.report_once()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except TimeoutError:
                pass

        logger.info("Stats reporter stopped")

    async def stop(self) -> None:
        """Stop the reporter."""
        logger.info("Stats reporter stopping")
        self._stopped.set()

    async def report_once(self) -> QueueStats | None:
        """
        Take and publish one snapshot.

        Returns:
            The snapshot, or None if it could not be collected.
        """
        try:
            stats = await self.queue.get_stats()
        except Exception as e:
            logger.exception(f"Failed to collect job queue stats: {e}")
            return None

        self._metrics.update_queue_stats(stats)

        if self.sink is not None:
            try:
                await self.sink.record_stats(stats)
            except Exception as e:
                logger.exception(f"Failed to deliver stats snapshot: {e}")

        logger.debug("Job queue stats", extra=stats.model_dump())
        return stats
