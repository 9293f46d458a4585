# lobby_backend/services/redis_store.py
from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from lobby_backend.core.config import settings
from lobby_backend.core.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_store_operation(operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
    """
    Await a Redis call and translate client failures into PersistenceError.

    Every read or write against the durable store goes through here so a
    broken connection is logged once, with the operation that hit it, and
    reaches the requester as a generic retry notice instead of tearing down
    the WebSocket.
    """
    try:
        return await operation()
    except RedisError as e:
        logger.error("Error during %s: %s", operation_name, e)
        raise PersistenceError(operation_name) from e


class AsyncRedisStore:
    """Owns the redis.asyncio client shared by the message store and room directory."""

    def __init__(self, url: str | None = None):
        self.url = url or settings.redis_url
        self.client: redis.Redis | None = None

    async def connect(self) -> redis.Redis:
        """Establish async connection to Redis."""
        self.client = redis.from_url(self.url, decode_responses=True)
        await self.client.ping()
        logger.info("✓ Connected to Redis at %s:%s", settings.REDIS_HOST, settings.REDIS_PORT)
        return self.client

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self):
        """Close connections."""
        if self.client:
            await self.client.aclose()
            self.client = None
        logger.info("Redis connection closed")
