"""
Redis sorted-set job store.
"""

import logging
from collections.abc import Awaitable
from typing import TypeVar

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from jobqueue.constants import QueueName
from jobqueue.exceptions import StoreUnavailableError
from jobqueue.store.base import JobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisJobStore(JobStore):
    """
    Job store backed by one Redis sorted set per collection.

    Keys are `{prefix}:pending`, `{prefix}:completed` and `{prefix}:failed`.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "jobs"):
        """
        Initialize the store.

        Args:
            client: Async Redis client. Responses may be bytes or str.
            key_prefix: Prefix for the collection keys.
        """
        self._redis = client
        self._key_prefix = key_prefix

    def _key(self, collection: QueueName) -> str:
        return f"{self._key_prefix}:{collection.value}"

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            logger.warning(
                "Redis unavailable",
                extra={"operation": operation, "error": str(e)},
            )
            raise StoreUnavailableError(f"Redis {operation} failed: {e}") from e

    async def enqueue(self, collection: QueueName, member: str, score: int) -> None:
        await self._call("zadd", self._redis.zadd(self._key(collection), {member: score}))

    async def pop_due(self, collection: QueueName, max_score: int, limit: int = 1) -> list[str]:
        members = await self._call(
            "zrangebyscore",
            self._redis.zrangebyscore(
                self._key(collection), "-inf", max_score, start=0, num=limit
            ),
        )
        return [m.decode() if isinstance(m, bytes) else m for m in members]

    async def remove(self, collection: QueueName, member: str) -> bool:
        removed = await self._call("zrem", self._redis.zrem(self._key(collection), member))
        return removed > 0

    async def count(self, collection: QueueName) -> int:
        return await self._call("zcard", self._redis.zcard(self._key(collection)))

    async def remove_older_than(self, collection: QueueName, cutoff_score: int) -> int:
        return await self._call(
            "zremrangebyscore",
            self._redis.zremrangebyscore(self._key(collection), "-inf", cutoff_score),
        )

    async def ping(self) -> bool:
        return bool(await self._call("ping", self._redis.ping()))

    async def close(self) -> None:
        await self._redis.aclose()
