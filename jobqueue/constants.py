"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> PROCESSING (picked up by the scheduler loop)
    - PROCESSING -> COMPLETED (success)
    - PROCESSING -> RETRYING (failure, attempts left; stored back in pending)
    - PROCESSING -> FAILED (failure, attempts exhausted)

    PROCESSING only ever exists in memory.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class JobType(StrEnum):
    """Job types, each mapped to exactly one handler."""

    SEND_EMAIL = "send_email"
    RENTAL_REMINDER = "rental_reminder"
    REVIEW_REQUEST = "review_request"
    PAYMENT_PROCESSING = "payment_processing"
    CLEANUP_EXPIRED_TOKENS = "cleanup_expired_tokens"
    DAILY_STATS = "daily_stats"
    WEEKLY_REPORTS = "weekly_reports"


class QueueName(StrEnum):
    """Durable collections a job record can live in."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class EmailTemplate(StrEnum):
    """Emails the notification channel knows how to send."""

    WELCOME = "welcome"
    RENTAL_CONFIRMATION = "rental_confirmation"
    NEW_RENTAL_REQUEST = "new_rental_request"
    PAYMENT_RECEIPT = "payment_receipt"
    RENTAL_REMINDER = "rental_reminder"
    REVIEW_REQUEST = "review_request"
    PASSWORD_RESET = "password_reset"
    ADMIN_NOTIFICATION = "admin_notification"


class RentalStatus(StrEnum):
    """Rental states the job handlers care about."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Default values
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETENTION_DAYS = 30
JOB_ID_SUFFIX_LENGTH = 9
TIMEOUT_ERROR = "timeout"

# Recurring registrations installed at startup: (name, cron, job type)
# Day-of-week uses names; APScheduler numbers weekdays from Monday=0.
DEFAULT_RECURRING_JOBS: tuple[tuple[str, str, JobType], ...] = (
    ("daily_cleanup", "0 2 * * *", JobType.CLEANUP_EXPIRED_TOKENS),
    ("daily_stats", "0 6 * * *", JobType.DAILY_STATS),
    ("weekly_reports", "0 8 * * 1", JobType.WEEKLY_REPORTS),
    ("check_rental_reminders", "0 9 * * *", JobType.RENTAL_REMINDER),
)

# API constants
API_V1_PREFIX = "/v1"
ADMIN_ROLE = "admin"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_ACTIVE = "jobs_active"
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_FINISHED = "jobs_finished_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_STORE_ERRORS = "job_store_errors_total"
METRIC_RECURRING_FIRED = "recurring_jobs_fired_total"

# Trace span names
SPAN_EXECUTE_JOB = "execute_job"
SPAN_ENQUEUE_JOB = "enqueue_job"

# Push channel event types
EVENT_JOB_CREATED = "job.created"
EVENT_JOB_COMPLETED = "job.completed"
EVENT_JOB_RETRYING = "job.retrying"
EVENT_JOB_FAILED = "job.failed"
