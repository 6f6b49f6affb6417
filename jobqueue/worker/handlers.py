"""
Job handlers registry and implementations.

Job handlers must be idempotent - they may be executed more than once for the
same job (retries, timeouts that kept running, crashes between claim and ack).
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ValidationError

from jobqueue.collaborators import Rental
from jobqueue.constants import EmailTemplate, JobType, QueueName, RentalStatus
from jobqueue.exceptions import DeliveryFailedError, NotFoundError
from jobqueue.types.job import (
    CleanupPayload,
    JobContext,
    JobResult,
    PaymentPayload,
    RentalReminderPayload,
    ReportPayload,
    ReviewRequestPayload,
    SendEmailPayload,
    StatsPayload,
    to_epoch_ms,
)

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext, Any], Awaitable[JobResult]]


@dataclass(frozen=True)
class HandlerSpec:
    """A handler together with the payload model it accepts."""

    payload_model: type[BaseModel]
    handler: JobHandler


# Dispatch table, one entry per JobType
_handlers: dict[JobType, HandlerSpec] = {}


def register_handler(
    job_type: JobType,
    payload_model: type[BaseModel],
) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register the handler for a job type.

    Args:
        job_type: The job type this handler processes.
        payload_model: Model the raw payload is validated into.

    Returns:
        Decorator function.

    Example:
        @register_handler(JobType.SEND_EMAIL, SendEmailPayload)
        async def handle_send_email(context: JobContext, payload: SendEmailPayload) -> JobResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = HandlerSpec(payload_model=payload_model, handler=handler)
        logger.debug(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> HandlerSpec | None:
    """Get the handler spec for a job type, or None if unknown."""
    try:
        return _handlers.get(JobType(job_type))
    except ValueError:
        return None


def list_handlers() -> list[JobType]:
    """List all registered job types."""
    return list(_handlers.keys())


def _local_today(context: JobContext) -> date:
    return context.started_at.astimezone(ZoneInfo(context.settings.timezone)).date()


def _day_bounds(context: JobContext, start: date, end: date) -> tuple[datetime, datetime]:
    """Midnight-to-midnight window in the configured timezone."""
    tz = ZoneInfo(context.settings.timezone)
    return datetime.combine(start, time.min, tz), datetime.combine(end, time.min, tz)


# ============================================================================
# Handlers
# ============================================================================


async def _send_email(context: JobContext, template: EmailTemplate, params: dict[str, Any]) -> None:
    """
    Send through the notifier.

    Raises:
        DeliveryFailedError: If the notifier reports the email undelivered.
    """
    if not await context.dependencies.notifier.send_email(template, params):
        raise DeliveryFailedError(template.value)


@register_handler(JobType.SEND_EMAIL, SendEmailPayload)
async def handle_send_email(context: JobContext, payload: SendEmailPayload) -> JobResult:
    """Send one templated email through the notification channel."""
    await _send_email(context, payload.template, payload.params)
    return JobResult.ok(template=payload.template.value)


async def _remind(context: JobContext, rental: Rental, tomorrow: date) -> bool:
    start = rental.start_date.astimezone(ZoneInfo(context.settings.timezone)).date()

    # Re-checked on every attempt; a rental that moved is skipped
    if start != tomorrow:
        logger.info(
            "Rental does not start tomorrow, skipping reminder",
            extra={"job_id": context.job_id, "rental_id": rental.id, "start_date": str(start)},
        )
        return False

    await _send_email(
        context,
        EmailTemplate.RENTAL_REMINDER,
        {"rental_id": rental.id, "renter_id": rental.renter_id, "item_title": rental.item_title},
    )
    return True


@register_handler(JobType.RENTAL_REMINDER, RentalReminderPayload)
async def handle_rental_reminder(context: JobContext, payload: RentalReminderPayload) -> JobResult:
    """
    Remind a renter that their rental starts tomorrow.

    Without a rental id, every rental starting tomorrow is reminded. A sweep
    keeps going past undelivered reminders and fails once all were tried.
    """
    tomorrow = _local_today(context) + timedelta(days=1)

    if payload.rental_id is not None:
        rental = await context.dependencies.rentals.get_rental(payload.rental_id)
        sent = await _remind(context, rental, tomorrow)
        return JobResult.ok(sent=sent)

    rentals = await context.dependencies.rentals.list_rentals_starting_on(tomorrow)
    reminded = 0
    undelivered: list[str] = []
    for rental in rentals:
        try:
            if await _remind(context, rental, tomorrow):
                reminded += 1
        except DeliveryFailedError:
            undelivered.append(rental.id)

    logger.info(
        "Rental reminder sweep finished",
        extra={
            "job_id": context.job_id,
            "day": str(tomorrow),
            "reminded": reminded,
            "undelivered": len(undelivered),
        },
    )
    if undelivered:
        return JobResult.failure(
            f"Reminder delivery failed for {len(undelivered)} of {len(rentals)} rentals"
        )
    return JobResult.ok(reminded=reminded)


@register_handler(JobType.REVIEW_REQUEST, ReviewRequestPayload)
async def handle_review_request(context: JobContext, payload: ReviewRequestPayload) -> JobResult:
    """Ask the renter for a review once a rental is completed."""
    rentals = context.dependencies.rentals
    try:
        rental = await rentals.get_rental(payload.rental_id)
    except NotFoundError:
        return JobResult.ok(sent=False, reason="rental_not_found")

    if rental.status != RentalStatus.COMPLETED:
        return JobResult.ok(sent=False, reason="rental_not_completed")

    if await rentals.find_review(rental.id, rental.renter_id) is not None:
        return JobResult.ok(sent=False, reason="already_reviewed")

    await _send_email(
        context,
        EmailTemplate.REVIEW_REQUEST,
        {"rental_id": rental.id, "renter_id": rental.renter_id, "item_title": rental.item_title},
    )
    return JobResult.ok(sent=True)


@register_handler(JobType.PAYMENT_PROCESSING, PaymentPayload)
async def handle_payment(context: JobContext, payload: PaymentPayload) -> JobResult:
    """Charge the renter and confirm the rental."""
    logger.info(
        "Processing payment",
        extra={"job_id": context.job_id, "rental_id": payload.rental_id, "amount": str(payload.amount)},
    )

    transaction_id = await context.dependencies.payments.charge(
        payload.rental_id, payload.amount, payload.payment_method_id
    )
    await context.dependencies.rentals.update_rental_status(payload.rental_id, RentalStatus.CONFIRMED)

    return JobResult.ok(transaction_id=transaction_id)


@register_handler(JobType.CLEANUP_EXPIRED_TOKENS, CleanupPayload)
async def handle_cleanup(context: JobContext, payload: CleanupPayload) -> JobResult:
    """Delete expired reset tokens and prune old job history."""
    now = context.started_at
    deleted_tokens = await context.dependencies.rentals.delete_expired_tokens(now)

    retention_days = payload.retention_days or context.settings.job_retention_days
    cutoff = to_epoch_ms(now - timedelta(days=retention_days))
    pruned_completed = await context.store.remove_older_than(QueueName.COMPLETED, cutoff)
    pruned_failed = await context.store.remove_older_than(QueueName.FAILED, cutoff)

    logger.info(
        f"Cleaned up {deleted_tokens} expired password reset tokens",
        extra={
            "job_id": context.job_id,
            "pruned_completed": pruned_completed,
            "pruned_failed": pruned_failed,
        },
    )
    return JobResult.ok(
        deleted_tokens=deleted_tokens,
        pruned_completed=pruned_completed,
        pruned_failed=pruned_failed,
    )


async def _window_stats(context: JobContext, start: datetime, end: datetime) -> dict[str, Any]:
    rentals = context.dependencies.rentals
    return {
        "new_users": await rentals.count_created("user", start, end),
        "new_items": await rentals.count_created("item", start, end),
        "new_rentals": await rentals.count_created("rental", start, end),
        "total_revenue": str(await rentals.sum_completed_revenue(start, end)),
    }


@register_handler(JobType.DAILY_STATS, StatsPayload)
async def handle_daily_stats(context: JobContext, payload: StatsPayload) -> JobResult:
    """Aggregate yesterday's activity and notify the admins."""
    day = payload.day or _local_today(context) - timedelta(days=1)
    start, end = _day_bounds(context, day, day + timedelta(days=1))
    stats = await _window_stats(context, start, end)

    await _send_email(
        context,
        EmailTemplate.ADMIN_NOTIFICATION,
        {"kind": "daily_stats", "date": day.isoformat(), **stats},
    )

    logger.info("Daily stats processed", extra={"job_id": context.job_id, **stats})
    return JobResult.ok(date=day.isoformat(), **stats)


@register_handler(JobType.WEEKLY_REPORTS, ReportPayload)
async def handle_weekly_reports(context: JobContext, payload: ReportPayload) -> JobResult:
    """Aggregate the past seven days and notify the admins."""
    week_ending = payload.week_ending or _local_today(context)
    week_start = week_ending - timedelta(days=7)
    start, end = _day_bounds(context, week_start, week_ending)
    stats = await _window_stats(context, start, end)

    await _send_email(
        context,
        EmailTemplate.ADMIN_NOTIFICATION,
        {
            "kind": "weekly_report",
            "week_start": week_start.isoformat(),
            "week_ending": week_ending.isoformat(),
            **stats,
        },
    )

    logger.info("Weekly report processed", extra={"job_id": context.job_id, **stats})
    return JobResult.ok(week_start=week_start.isoformat(), **stats)


async def execute_job(context: JobContext) -> JobResult:
    """
    Execute a job using the appropriate handler.

    Never raises: unknown types, invalid payloads and handler exceptions are
    all converted into failed results.

    Args:
        context: The job context.

    Returns:
        JobResult from the handler.
    """
    job = context.job
    spec = get_handler(job.type)

    if spec is None:
        logger.error(
            f"No handler for job type: {job.type}",
            extra={"job_id": job.id}
        )
        return JobResult.failure(f"No handler registered for job type: {job.type}")

    try:
        payload = spec.payload_model.model_validate(job.payload)
    except ValidationError as e:
        logger.error(
            "Invalid job payload",
            extra={"job_id": job.id, "job_type": str(job.type), "error": str(e)}
        )
        return JobResult.failure(f"Invalid payload for {job.type}: {e.error_count()} validation error(s)")

    try:
        return await spec.handler(context, payload)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"job_id": job.id, "attempt": context.attempt, "error": str(e)}
        )
        return JobResult.failure(f"Handler exception: {e}")
