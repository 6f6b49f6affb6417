"""
Recurring job registrar.

Turns named cron definitions into periodic enqueue calls. A firing only
produces a new job record; the scheduler loop runs it like any other job.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from jobqueue.constants import JobType
from jobqueue.exceptions import InvalidCronExpressionError
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.types.job import RecurringJobDefinition, utc_now

logger = logging.getLogger(__name__)

# Producer callback: (job_type, payload) -> job id
Enqueue = Callable[[JobType, dict[str, Any]], Awaitable[str]]


# Cron numbering: 0 and 7 are Sunday
_CRON_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _weekday_bounds(value: str) -> tuple[int, int] | None:
    """Numeric bounds of a day-of-week item, or None if it uses names."""
    if value == "*":
        return 0, 6
    first, _, last = value.partition("-")
    if not first.isdigit() or (last and not last.isdigit()):
        return None
    return int(first), int(last or first)


def cron_day_of_week(field: str) -> str:
    """
    Translate a cron day-of-week field into APScheduler weekday names.

    APScheduler numbers Monday as 0, so numeric values are converted to
    names. Named items and a bare `*` pass through unchanged.

    Raises:
        ValueError: If a numeric weekday is outside 0-7.
    """
    names: list[str] = []
    for item in field.split(","):
        value, _, step = item.partition("/")
        bounds = _weekday_bounds(value)
        if bounds is None or (value == "*" and not step):
            names.append(item)
            continue

        first, last = bounds
        if last > 7 or first > last:
            raise ValueError(f"day of week {item!r} is not within 0-7")
        for day in range(first, last + 1, int(step or 1)):
            names.append(_CRON_WEEKDAYS[day])

    return ",".join(dict.fromkeys(names))


def parse_cron(expression: str, timezone: str = "UTC") -> CronTrigger:
    """
    Build a trigger from a five-field (minute-first) or six-field
    (second-first) cron expression.

    Day-of-week follows cron numbering, 0 or 7 for Sunday.

    Raises:
        InvalidCronExpressionError: If the expression cannot be parsed.
    """
    fields = expression.split()
    if len(fields) == 5:
        fields = ["0", *fields]
    elif len(fields) != 6:
        raise InvalidCronExpressionError(
            f"Invalid cron expression {expression!r}: expected 5 or 6 fields, got {len(fields)}"
        )

    second, minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=cron_day_of_week(day_of_week),
            timezone=timezone,
        )
    except ValueError as e:
        raise InvalidCronExpressionError(f"Invalid cron expression {expression!r}: {e}") from e


class RecurringJobRegistrar:
    """
    Maintains named cron-triggered job producers.

    Registering an existing name replaces its schedule. Stopping cancels
    future firings without touching job records already enqueued.
    """

    def __init__(
        self,
        enqueue: Enqueue,
        timezone: str = "UTC",
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the registrar.

        Args:
            enqueue: Producer called once per firing.
            timezone: Timezone cron expressions are evaluated in.
            metrics: Optional metrics collector.
        """
        self._enqueue = enqueue
        self._timezone = timezone
        self._metrics = metrics or get_metrics()
        self._definitions: dict[str, RecurringJobDefinition] = {}
        self._triggers: dict[str, CronTrigger] = {}
        self.scheduler = AsyncIOScheduler(timezone=timezone)

    @property
    def definitions(self) -> dict[str, RecurringJobDefinition]:
        return dict(self._definitions)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def register(self, definition: RecurringJobDefinition) -> None:
        """Install a definition, replacing any schedule with the same name."""
        trigger = parse_cron(definition.cron_expression, self._timezone)

        if definition.name in self._definitions:
            self.unregister(definition.name)

        self.scheduler.add_job(
            self.fire,
            trigger,
            args=[definition.name],
            id=definition.name,
            name=definition.name,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._definitions[definition.name] = definition
        self._triggers[definition.name] = trigger

        logger.info(
            f"Scheduled job {definition.name} registered",
            extra={
                "cron_expression": definition.cron_expression,
                "job_type": definition.job_type.value,
            }
        )

    def unregister(self, name: str) -> bool:
        """Stop a schedule. Returns False if the name was not registered."""
        if self._definitions.pop(name, None) is None:
            return False

        self._triggers.pop(name, None)
        try:
            self.scheduler.remove_job(name)
        except JobLookupError:
            logger.debug(f"Scheduled job {name} already gone from the scheduler")
        logger.info(f"Scheduled job {name} stopped")
        return True

    async def fire(self, name: str) -> str | None:
        """
        Enqueue one job record for a definition.

        Errors are logged, not raised, so one failed firing never disables
        the schedule.
        """
        definition = self._definitions.get(name)
        if definition is None:
            return None

        try:
            job_id = await self._enqueue(definition.job_type, dict(definition.payload))
        except Exception as e:
            logger.exception(
                f"Scheduled job {name} failed to enqueue",
                extra={"error": str(e)}
            )
            return None

        self._metrics.record_recurring_fired(name)
        logger.info(
            f"Scheduled job {name} executed",
            extra={"job_type": definition.job_type.value, "enqueued_job_id": job_id}
        )
        return job_id

    def next_fire_time(self, name: str, now: datetime | None = None) -> datetime | None:
        """Next instant the named definition fires after `now`."""
        trigger = self._triggers.get(name)
        if trigger is None:
            return None
        now = now or utc_now()
        return trigger.get_next_fire_time(None, now)

    def start(self) -> None:
        """Start firing. Must be called from within the running event loop."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Recurring job registrar started", extra={"count": len(self._definitions)})

    def stop(self) -> None:
        """Cancel all future firings."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        for name in list(self._definitions):
            self.unregister(name)
        logger.info("Recurring job registrar stopped")
