"""
Exception hierarchy for the job queue.
"""


class JobQueueError(Exception):
    """Base class for job queue errors."""


class StoreUnavailableError(JobQueueError):
    """
    The durable store could not be reached.

    Transient: the scheduler loop backs off and polls again,
    no job attempt is consumed.
    """


class NotFoundError(JobQueueError):
    """Raised by collaborators when a requested entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidCronExpressionError(JobQueueError, ValueError):
    """A recurring job was registered with an unparseable cron expression."""


class DeliveryFailedError(JobQueueError):
    """The notification channel reported that an email was not delivered."""

    def __init__(self, template: str):
        self.template = template
        super().__init__(f"Email delivery failed: {template}")
