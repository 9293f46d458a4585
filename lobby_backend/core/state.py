# lobby_backend/core/state.py
from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from lobby_backend.services.broadcast_router import BroadcastRouter
from lobby_backend.services.message_store import MessageStore
from lobby_backend.services.redis_store import AsyncRedisStore
from lobby_backend.services.room_directory import RoomDirectory
from lobby_backend.services.session_registry import SessionRegistry

# Global singletons for app state.
# Everything is wired in init_state() once the startup hook has a connected
# Redis client.
session_registry: Optional[SessionRegistry] = None
broadcast_router: Optional[BroadcastRouter] = None

redis_store: Optional[AsyncRedisStore] = None
message_store: Optional[MessageStore] = None
room_directory: Optional[RoomDirectory] = None


def init_state(client: redis.Redis) -> None:
    """(Re)build every singleton around a connected Redis client."""
    global session_registry, broadcast_router, message_store, room_directory

    session_registry = SessionRegistry()
    broadcast_router = BroadcastRouter(session_registry)
    message_store = MessageStore(client)
    room_directory = RoomDirectory(client, message_store)
