"""
Store connection management.
Builds the configured job store backend.
"""

import logging

import redis.asyncio as redis

from jobqueue.config import Settings, get_settings
from jobqueue.store.base import JobStore
from jobqueue.store.memory import MemoryJobStore
from jobqueue.store.redis import RedisJobStore

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings | None = None) -> redis.Redis:
    """
    Create an async Redis client from settings.

    Args:
        settings: Optional settings. Uses the cached settings if not provided.

    Returns:
        redis.Redis: The client. Connections are opened lazily.
    """
    settings = settings or get_settings()
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )


def create_store(settings: Settings | None = None) -> JobStore:
    """
    Create the job store selected by `store_backend`.

    Args:
        settings: Optional settings. Uses the cached settings if not provided.

    Returns:
        JobStore: The store instance.
    """
    settings = settings or get_settings()

    if settings.store_backend == "memory":
        logger.info("Using in-memory job store")
        return MemoryJobStore()

    logger.info(
        "Using Redis job store",
        extra={
            "host": settings.redis_host,
            "port": settings.redis_port,
            "db": settings.redis_db,
        },
    )
    return RedisJobStore(create_redis_client(settings), key_prefix=settings.redis_key_prefix)
