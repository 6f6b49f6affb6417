"""
Store module.
Contains the durable store interface and its Redis and in-memory backends.
"""

from jobqueue.store.base import JobStore
from jobqueue.store.connection import create_redis_client, create_store
from jobqueue.store.memory import MemoryJobStore
from jobqueue.store.redis import RedisJobStore

__all__ = [
    "JobStore",
    "RedisJobStore",
    "MemoryJobStore",
    "create_store",
    "create_redis_client",
]
