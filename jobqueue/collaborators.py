"""
Interfaces of the external collaborators job handlers depend on.

The marketplace application provides the implementations; the queue only
relies on these narrow protocols.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Protocol

from pydantic import BaseModel

from jobqueue.constants import EmailTemplate, RentalStatus
from jobqueue.types.events import JobEvent
from jobqueue.types.job import QueueStats

CountableEntity = Literal["user", "item", "rental"]


class Rental(BaseModel):
    """The slice of a rental the job handlers read."""

    id: str
    status: RentalStatus
    start_date: datetime
    end_date: datetime
    renter_id: str
    owner_id: str
    item_title: str | None = None
    total_price: Decimal | None = None


class Review(BaseModel):
    id: str
    rental_id: str
    reviewer_id: str


class RentalRepository(Protocol):
    """
    Persistence collaborator.

    Lookups of missing entities raise `jobqueue.exceptions.NotFoundError`.
    """

    async def get_rental(self, rental_id: str) -> Rental: ...

    async def list_rentals_starting_on(self, day: date) -> list[Rental]: ...

    async def update_rental_status(self, rental_id: str, status: RentalStatus) -> None: ...

    async def find_review(self, rental_id: str, reviewer_id: str) -> Review | None: ...

    async def delete_expired_tokens(self, now: datetime) -> int: ...

    async def count_created(self, entity: CountableEntity, start: datetime, end: datetime) -> int: ...

    async def sum_completed_revenue(self, start: datetime, end: datetime) -> Decimal: ...


class Notifier(Protocol):
    """
    Notification collaborator.

    Returns False when delivery failed; may raise to signal the same.
    """

    async def send_email(self, template: EmailTemplate, params: dict[str, Any]) -> bool: ...


class PaymentGateway(Protocol):
    async def charge(
        self,
        rental_id: str,
        amount: Decimal,
        payment_method_id: str | None,
    ) -> str: ...


class MonitoringSink(Protocol):
    """Accepts periodic queue stats snapshots."""

    async def record_stats(self, stats: QueueStats) -> None: ...


class EventPublisher(Protocol):
    """Real-time push channel."""

    async def publish(self, event: JobEvent) -> None: ...


@dataclass
class JobDependencies:
    """Collaborators available to job handlers and the queue."""

    rentals: RentalRepository
    notifier: Notifier
    payments: PaymentGateway
    monitoring: MonitoringSink | None = None
    events: EventPublisher | None = None
