"""
Durable store interface.

Three score-ordered collections (pending, completed, failed) hold serialized
job records. Scores are epoch milliseconds.
"""

from abc import ABC, abstractmethod

from jobqueue.constants import QueueName


class JobStore(ABC):
    """Abstract durable store for job records."""

    @abstractmethod
    async def enqueue(self, collection: QueueName, member: str, score: int) -> None:
        """Insert or update a serialized record at `score`."""

    @abstractmethod
    async def pop_due(self, collection: QueueName, max_score: int, limit: int = 1) -> list[str]:
        """
        Return up to `limit` members with score <= `max_score`, lowest score first.

        Members are not removed. The caller claims one with `remove`.
        """

    @abstractmethod
    async def remove(self, collection: QueueName, member: str) -> bool:
        """
        Remove a member.

        Removing an absent member is a no-op. Returns True only if this
        call removed it.
        """

    @abstractmethod
    async def count(self, collection: QueueName) -> int:
        """Number of members in a collection."""

    @abstractmethod
    async def remove_older_than(self, collection: QueueName, cutoff_score: int) -> int:
        """Remove every member with score <= `cutoff_score`. Returns the number removed."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check store connectivity."""

    async def close(self) -> None:
        """Release connections held by the store."""
