# lobby_backend/services/room_directory.py

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

import redis.asyncio as redis

from lobby_backend.core.errors import AuthorizationError, ConflictError, NotFoundError
from lobby_backend.core.redis_keys import (
    ROOM_MEMBERS_KEY,
    ROOM_META_KEY,
    ROOMS_KEY,
    messages_key,
)
from lobby_backend.core.validation import validate_room_id
from lobby_backend.models.models import ChatMessage, Room, utc_now
from lobby_backend.services.message_store import MessageStore
from lobby_backend.services.redis_store import run_store_operation

logger = logging.getLogger(__name__)

# ============================================================================
# ROOM DIRECTORY
# ============================================================================

class RoomDirectory:
    """
    Registry of private rooms with Redis persistence.

    Rooms survive backend restarts. Each room is spread over a handful of
    keys (see core.redis_keys):

        rooms                   set of every room id
        room:{id}:meta          hash {name, owner, created_at}
        room:{id}:members       set of member identities
        room:{id}:messages      list, owned by MessageStore

    Membership is keyed by identity, not by connection, so it outlives the
    WebSocket that created it. Live channel association (who actually gets
    room events right now) is tracked separately on the session.

    Locking:
        - create / join / leave / delete hold a directory-wide asyncio.Lock
        - anything that checks membership and then writes the room's log
          (posting, clearing, deleting) also holds the MessageStore lock for
          that room, so a delete can never race with an append into a log
          that is about to disappear

        The directory lock is always taken before a MessageStore lock.

    Usage:
        directory = RoomDirectory(client, message_store)
        room = await directory.create("team1", "Team One", "alice")
        room, history = await directory.join("team1", "bob")
    """

    def __init__(self, client: redis.Redis, message_store: MessageStore) -> None:
        self.client = client
        self.message_store = message_store
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def exists(self, room_id: str) -> bool:
        return bool(
            await run_store_operation(
                lambda: self.client.sismember(ROOMS_KEY, room_id),
                "room existence check",
            )
        )

    async def is_member(self, room_id: str, identity: str) -> bool:
        """Authorization guard for every room-scoped action."""
        return bool(
            await run_store_operation(
                lambda: self.client.sismember(ROOM_MEMBERS_KEY.format(room_id=room_id), identity),
                "room membership check",
            )
        )

    async def get(self, room_id: str) -> Optional[Room]:
        """
        Get a room by ID.

        Returns:
            Room with its current members, or None if it doesn't exist
        """
        async def _read():
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.hgetall(ROOM_META_KEY.format(room_id=room_id))
                pipe.smembers(ROOM_MEMBERS_KEY.format(room_id=room_id))
                return await pipe.execute()

        meta, members = await run_store_operation(_read, "room meta get")
        if not meta:
            return None
        return Room(
            id=room_id,
            name=meta.get("name") or room_id,
            owner=meta.get("owner", ""),
            created_at=meta.get("created_at", ""),
            members=sorted(members),
        )

    async def count(self) -> int:
        return await run_store_operation(lambda: self.client.scard(ROOMS_KEY), "room count")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, room_id: str, display_name: Optional[str], creator: str) -> Room:
        """
        Register a new room owned by ``creator``.

        The creator becomes the owner and the first member. Registry entry,
        metadata and membership are written in one MULTI/EXEC so a failure
        never leaves a half-created room behind.

        Raises:
            ValidationError: room_id is malformed
            ConflictError: a room with this id already exists
        """
        room_id = validate_room_id(room_id)
        name = (display_name or "").strip() or room_id

        async with self._lock:
            if await self.exists(room_id):
                raise ConflictError("Room already exists.", event="room_exists")

            created_at = utc_now()

            async def _create():
                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.sadd(ROOMS_KEY, room_id)
                    pipe.hset(
                        ROOM_META_KEY.format(room_id=room_id),
                        mapping={"name": name, "owner": creator, "created_at": created_at},
                    )
                    pipe.sadd(ROOM_MEMBERS_KEY.format(room_id=room_id), creator)
                    return await pipe.execute()

            await run_store_operation(_create, "room creation")

        logger.info("✓ Room created by %s: id=%s name=%r", creator, room_id, name)
        return Room(id=room_id, name=name, owner=creator, created_at=created_at, members=[creator])

    async def join(self, room_id: str, identity: str) -> Tuple[Room, List[ChatMessage]]:
        """
        Add ``identity`` to the room and return it with its full history.

        Joining twice is a no-op for membership; the history is returned
        every time so a client can resync.

        Raises:
            ValidationError: room_id is malformed
            NotFoundError: the room does not exist
        """
        room_id = validate_room_id(room_id)

        async with self._lock:
            if not await self.exists(room_id):
                raise NotFoundError("Room does not exist.")
            await run_store_operation(
                lambda: self.client.sadd(ROOM_MEMBERS_KEY.format(room_id=room_id), identity),
                "room add member",
            )
            room = await self.get(room_id) or Room(id=room_id, name=room_id, owner="", created_at="")
            history = await self.message_store.read_all(room_id)

        logger.info("→ %s joined room %s", identity, room_id)
        return room, history

    async def leave(self, room_id: str, identity: str) -> str:
        """
        Remove ``identity`` from the room.

        Returns:
            "ok" when the identity was a member, "not_member" otherwise
        """
        room_id = validate_room_id(room_id)

        async with self._lock:
            removed = await run_store_operation(
                lambda: self.client.srem(ROOM_MEMBERS_KEY.format(room_id=room_id), identity),
                "room remove member",
            )

        if not removed:
            return "not_member"
        logger.info("← %s left room %s", identity, room_id)
        return "ok"

    async def post_message(self, room_id: str, message: ChatMessage) -> None:
        """
        Append ``message`` to the room's log if its author is a member.

        Raises:
            ValidationError: room_id is malformed
            AuthorizationError: the author is not a member (nothing is appended)
        """
        room_id = validate_room_id(room_id)

        async with self.message_store.lock(room_id):
            if not await self.is_member(room_id, message.author):
                raise AuthorizationError("You are not a member of this room.", event="not_member")
            await self.message_store.push(room_id, message)

    async def clear_history(self, room_id: str, requester: str) -> None:
        """Delete the room's messages. Metadata and membership stay untouched."""
        room_id = validate_room_id(room_id)

        async with self.message_store.lock(room_id):
            if not await self.is_member(room_id, requester):
                raise AuthorizationError("You are not a member of this room.", event="not_member")
            await self.message_store.drop(room_id)

        logger.info("Room history cleared: room=%s by %s", room_id, requester)

    async def delete(self, room_id: str, requester: str) -> Room:
        """
        Delete a room together with its log, membership and metadata.

        Only the owner may delete. Everything goes in one MULTI/EXEC. Live
        channel associations are session state and are not touched here;
        the caller reads them for the room_deleted fan-out and then drops them.

        Returns:
            Room: The room as it was just before deletion

        Raises:
            ValidationError: room_id is malformed
            NotFoundError: the room does not exist
            AuthorizationError: requester is not the owner
        """
        room_id = validate_room_id(room_id)

        async with self._lock:
            room = await self.get(room_id)
            if room is None:
                raise NotFoundError("Room does not exist.")
            if room.owner != requester:
                raise AuthorizationError(
                    "Only the room owner can delete this room.", event="not_owner"
                )

            async def _teardown():
                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.delete(messages_key(room_id))
                    pipe.delete(ROOM_MEMBERS_KEY.format(room_id=room_id))
                    pipe.delete(ROOM_META_KEY.format(room_id=room_id))
                    pipe.srem(ROOMS_KEY, room_id)
                    return await pipe.execute()

            async with self.message_store.lock(room_id):
                await run_store_operation(_teardown, "room deletion")

        logger.info("✗ Room deleted: id=%s by %s", room_id, requester)
        return room
