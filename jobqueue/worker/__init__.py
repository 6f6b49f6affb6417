"""
Worker module.
Contains the job queue, scheduler loop, executor, retry controller,
recurring registrar and job handlers.
"""

from jobqueue.worker.executor import JobExecutor
from jobqueue.worker.main import JobQueue
from jobqueue.worker.recurring import RecurringJobRegistrar, parse_cron
from jobqueue.worker.retry import RetryController, Transition

__all__ = [
    "JobQueue",
    "JobExecutor",
    "RetryController",
    "Transition",
    "RecurringJobRegistrar",
    "parse_cron",
]
