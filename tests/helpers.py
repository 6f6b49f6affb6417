"""
Collaborator fakes and async helpers shared by the tests.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from jobqueue.collaborators import Rental, Review
from jobqueue.constants import EmailTemplate, QueueName, RentalStatus
from jobqueue.exceptions import NotFoundError
from jobqueue.store.base import JobStore
from jobqueue.types.events import JobEvent
from jobqueue.types.job import JobRecord, QueueStats

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

# ============================================================================
# Collaborator fakes
# ============================================================================


class FakeRentalRepository:
    """In-memory persistence collaborator."""

    def __init__(self) -> None:
        self.rentals: dict[str, Rental] = {}
        self.reviews: list[Review] = []
        self.status_updates: list[tuple[str, RentalStatus]] = []
        self.expired_tokens = 0
        self.counts: dict[str, int] = {"user": 0, "item": 0, "rental": 0}
        self.revenue = Decimal("0")
        self.windows: list[tuple[datetime, datetime]] = []

    def add_rental(self, rental_id: str, start_date: datetime, status: RentalStatus = RentalStatus.CONFIRMED) -> Rental:
        rental = Rental(
            id=rental_id,
            status=status,
            start_date=start_date,
            end_date=start_date + timedelta(days=3),
            renter_id=f"renter-{rental_id}",
            owner_id=f"owner-{rental_id}",
            item_title="Cordless drill",
            total_price=Decimal("25.00"),
        )
        self.rentals[rental_id] = rental
        return rental

    async def get_rental(self, rental_id: str) -> Rental:
        try:
            return self.rentals[rental_id]
        except KeyError:
            raise NotFoundError("Rental", rental_id)

    async def list_rentals_starting_on(self, day: date) -> list[Rental]:
        return [r for r in self.rentals.values() if r.start_date.date() == day]

    async def update_rental_status(self, rental_id: str, status: RentalStatus) -> None:
        rental = await self.get_rental(rental_id)
        self.rentals[rental_id] = rental.model_copy(update={"status": status})
        self.status_updates.append((rental_id, status))

    async def find_review(self, rental_id: str, reviewer_id: str) -> Review | None:
        for review in self.reviews:
            if review.rental_id == rental_id and review.reviewer_id == reviewer_id:
                return review
        return None

    async def delete_expired_tokens(self, now: datetime) -> int:
        deleted, self.expired_tokens = self.expired_tokens, 0
        return deleted

    async def count_created(self, entity: str, start: datetime, end: datetime) -> int:
        self.windows.append((start, end))
        return self.counts[entity]

    async def sum_completed_revenue(self, start: datetime, end: datetime) -> Decimal:
        return self.revenue


class FakeNotifier:
    """Notification collaborator that records emails and can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[EmailTemplate, dict[str, Any]]] = []
        self.failures_remaining = 0
        self.delivered = True
        self.undeliverable_rentals: set[str] = set()
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    async def send_email(self, template: EmailTemplate, params: dict[str, Any]) -> bool:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.failures_remaining > 0:
                self.failures_remaining -= 1
                raise RuntimeError("SMTP connection refused")
            self.sent.append((template, params))
            return self.delivered and params.get("rental_id") not in self.undeliverable_rentals
        finally:
            self.in_flight -= 1


class FakePaymentGateway:
    def __init__(self) -> None:
        self.charges: list[tuple[str, Decimal, str | None]] = []

    async def charge(self, rental_id: str, amount: Decimal, payment_method_id: str | None) -> str:
        self.charges.append((rental_id, amount, payment_method_id))
        return f"txn-{len(self.charges)}"


class FakeMonitoringSink:
    def __init__(self) -> None:
        self.snapshots: list[QueueStats] = []

    async def record_stats(self, stats: QueueStats) -> None:
        self.snapshots.append(stats)


class FakeEventPublisher:
    def __init__(self) -> None:
        self.events: list[JobEvent] = []

    async def publish(self, event: JobEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[JobEvent]:
        return [e for e in self.events if e.event_type == event_type]


# ============================================================================
# Helpers
# ============================================================================


async def read_collection(store: JobStore, collection: QueueName) -> list[JobRecord]:
    """Decode every record in a collection, lowest score first."""
    raw = await store.pop_due(collection, 2**53, limit=10_000)
    return [JobRecord.from_json(r) for r in raw]


async def wait_until(predicate: Callable[[], Awaitable[bool]], timeout: float = 3.0) -> None:
    """Poll an async predicate until it holds or the timeout expires."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not await predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
