"""
In-memory job store.

Suitable for development and testing. Not shared between processes.
"""

import asyncio
import bisect

from jobqueue.constants import QueueName
from jobqueue.store.base import JobStore


class _SortedSet:
    """Minimal score-ordered set with Redis ZSET ordering (score, then member)."""

    def __init__(self) -> None:
        self.scores: dict[str, int] = {}
        self.entries: list[tuple[int, str]] = []

    def add(self, member: str, score: int) -> None:
        self.discard(member)
        self.scores[member] = score
        bisect.insort(self.entries, (score, member))

    def discard(self, member: str) -> bool:
        score = self.scores.pop(member, None)
        if score is None:
            return False
        index = bisect.bisect_left(self.entries, (score, member))
        del self.entries[index]
        return True

    def range_by_score(self, max_score: int, limit: int) -> list[str]:
        end = bisect.bisect_right(self.entries, max_score, key=lambda entry: entry[0])
        return [member for _, member in self.entries[:min(end, limit)]]


class MemoryJobStore(JobStore):
    """In-memory job store."""

    def __init__(self) -> None:
        self._sets: dict[QueueName, _SortedSet] = {name: _SortedSet() for name in QueueName}
        self._lock = asyncio.Lock()

    async def enqueue(self, collection: QueueName, member: str, score: int) -> None:
        async with self._lock:
            self._sets[collection].add(member, score)

    async def pop_due(self, collection: QueueName, max_score: int, limit: int = 1) -> list[str]:
        async with self._lock:
            return self._sets[collection].range_by_score(max_score, limit)

    async def remove(self, collection: QueueName, member: str) -> bool:
        async with self._lock:
            return self._sets[collection].discard(member)

    async def count(self, collection: QueueName) -> int:
        return len(self._sets[collection].scores)

    async def remove_older_than(self, collection: QueueName, cutoff_score: int) -> int:
        async with self._lock:
            expired = self._sets[collection].range_by_score(cutoff_score, len(self._sets[collection].entries))
            for member in expired:
                self._sets[collection].discard(member)
            return len(expired)

    async def ping(self) -> bool:
        return True
