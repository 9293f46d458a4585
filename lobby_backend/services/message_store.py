# lobby_backend/services/message_store.py

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List

import redis.asyncio as redis

from lobby_backend.core.errors import ValidationError
from lobby_backend.core.redis_keys import messages_key
from lobby_backend.models.models import ChatMessage, Page
from lobby_backend.services.redis_store import run_store_operation

logger = logging.getLogger(__name__)

# ============================================================================
# MESSAGE LOGS
# ============================================================================

class MessageStore:
    """
    Append-only message logs, one per destination, persisted in Redis lists.

    The lobby log lives under ``chat_messages`` and every room keeps its own
    ``room:{id}:messages`` list. Entries are pushed to the head of the list,
    so index 0 is always the newest message; reads flip that back into
    chronological order before handing messages out.

    Appends and clears on the same destination are serialized through a
    per-destination asyncio.Lock, which makes the log order equal to the
    order in which appends were admitted. Different destinations never wait
    on each other.

    Usage:
        store = MessageStore(client)
        await store.append(GLOBAL_DESTINATION, ChatMessage(author="alice", body="hi"))
        page = await store.read_range(GLOBAL_DESTINATION, 0, 50)
    """

    def __init__(self, client: redis.Redis) -> None:
        self.client = client
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, destination: str) -> AsyncIterator[None]:
        """
        Hold the lock that serializes writes to one destination.

        RoomDirectory takes it when a membership check and the write that
        depends on it must not interleave with a concurrent delete. The
        entry is dropped once its last holder or waiter leaves, so ids that
        never became rooms (or were deleted) don't pile up.
        """
        lock = self._locks.get(destination)
        if lock is None:
            lock = self._locks[destination] = asyncio.Lock()
        self._lock_users[destination] = self._lock_users.get(destination, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[destination] -= 1
            if not self._lock_users[destination]:
                del self._lock_users[destination]
                del self._locks[destination]

    @staticmethod
    def _decode(raw: List[str]) -> List[ChatMessage]:
        messages = []
        for item in raw:
            try:
                messages.append(ChatMessage(**json.loads(item)))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping unreadable log entry: %s", e)
        return messages

    async def push(self, destination: str, message: ChatMessage) -> int:
        """Append without locking. The caller must hold ``lock(destination)``."""
        key = messages_key(destination)
        payload = message.model_dump_json(exclude_none=True)
        length = await run_store_operation(
            lambda: self.client.lpush(key, payload),
            "message storage",
        )
        logger.debug("Appended to %s (%d entries)", key, length)
        return length

    async def append(self, destination: str, message: ChatMessage) -> int:
        """
        Add message as the newest entry of the destination's log.

        Returns:
            int: Length of the log after the append
        """
        async with self.lock(destination):
            return await self.push(destination, message)

    async def read_all(self, destination: str) -> List[ChatMessage]:
        """Return the whole log, oldest first."""
        raw = await run_store_operation(
            lambda: self.client.lrange(messages_key(destination), 0, -1),
            "historical messages retrieval",
        )
        return list(reversed(self._decode(raw)))

    async def read_range(self, destination: str, offset: int, limit: int) -> Page:
        """
        Read up to ``limit`` messages starting ``offset`` entries back from the newest.

        Args:
            destination: GLOBAL_DESTINATION or a room id
            offset: How many of the newest messages to skip (>= 0)
            limit: Maximum number of messages to return (> 0)

        Returns:
            Page: messages (oldest first within the page), the offset to ask
            for next, and whether a full page came back
        """
        if offset < 0:
            raise ValidationError("Offset must be zero or greater.")
        if limit <= 0:
            raise ValidationError("Limit must be greater than zero.")

        raw = await run_store_operation(
            lambda: self.client.lrange(messages_key(destination), offset, offset + limit - 1),
            "paginated messages retrieval",
        )
        messages = list(reversed(self._decode(raw)))
        return Page(
            messages=messages,
            offset=offset + len(raw),
            has_more=len(raw) == limit,
        )

    async def drop(self, destination: str) -> None:
        """Delete the log without locking. The caller must hold ``lock(destination)``."""
        key = messages_key(destination)
        await run_store_operation(lambda: self.client.delete(key), "history clearing")
        logger.info("Cleared message log %s", key)

    async def clear(self, destination: str) -> None:
        """Empty the log. The destination keeps accepting appends afterwards."""
        async with self.lock(destination):
            await self.drop(destination)

    async def count(self, destination: str) -> int:
        return await run_store_operation(
            lambda: self.client.llen(messages_key(destination)),
            "message count",
        )
