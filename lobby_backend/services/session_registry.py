# lobby_backend/services/session_registry.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from lobby_backend.core.errors import ConflictError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """
    Live state of one connection.

    Attributes:
        connection_id: Opaque id assigned by the WebSocket layer
        transport: Anything with an async ``send_json(dict)`` (a FastAPI WebSocket)
        identity: Claimed display name, None until the claim succeeds
        channels: Room ids whose events this connection currently receives
    """

    connection_id: str
    transport: Any
    identity: Optional[str] = None
    channels: Set[str] = field(default_factory=set)

    @property
    def identified(self) -> bool:
        return self.identity is not None


# ============================================================================
# SESSION REGISTRY
# ============================================================================

class SessionRegistry:
    """
    Tracks live connections and the identities they hold.

    Data Structures:
        sessions: connection_id -> Session
        identities: identity -> connection_id, one entry per claimed name

    Nothing here is persisted. After a restart every client reconnects and
    claims its identity again.
    """

    def __init__(self) -> None:
        self.sessions: Dict[str, Session] = {}
        self.identities: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.sessions)

    async def register(self, connection_id: str, transport: Any) -> Session:
        """Start tracking a new, unidentified connection."""
        async with self._lock:
            session = Session(connection_id=connection_id, transport=transport)
            self.sessions[connection_id] = session
        logger.info("✓ Connection %s registered. Total: %d", connection_id, len(self.sessions))
        return session

    async def claim(self, connection_id: str, identity: str) -> Session:
        """
        Bind ``identity`` to the connection until it disconnects.

        The identity must already be lexically valid.

        Raises:
            ConflictError: another live session holds the identity, or this
                session already has one
        """
        async with self._lock:
            session = self.sessions.get(connection_id)
            if session is None:
                raise ConflictError("Connection is closed.")
            if session.identity is not None:
                raise ConflictError("Identity already set for this connection.", event="identity_taken")
            if identity in self.identities:
                raise ConflictError(
                    "Identity is already taken. Please choose another.", event="identity_taken"
                )
            self.identities[identity] = connection_id
            session.identity = identity

        logger.info("User selected identity: %s (%s)", identity, connection_id)
        return session

    async def release(self, connection_id: str) -> Optional[Session]:
        """Forget the connection and free its identity. No-op for unknown ids."""
        async with self._lock:
            session = self.sessions.pop(connection_id, None)
            if session is None:
                return None
            if session.identity is not None and self.identities.get(session.identity) == connection_id:
                del self.identities[session.identity]

        logger.info(
            "✗ Connection %s (%s) released. Total: %d",
            connection_id,
            session.identity or "unidentified",
            len(self.sessions),
        )
        return session

    def get(self, connection_id: str) -> Optional[Session]:
        return self.sessions.get(connection_id)

    def holder(self, identity: str) -> Optional[Session]:
        connection_id = self.identities.get(identity)
        return self.sessions.get(connection_id) if connection_id else None

    def live_sessions(self) -> List[Session]:
        """Snapshot of every live session."""
        return list(self.sessions.values())

    def subscribers(self, room_id: str) -> List[Session]:
        """Snapshot of the sessions associated with a room's live channel."""
        return [s for s in self.sessions.values() if room_id in s.channels]

    def drop_channel(self, room_id: str) -> int:
        """Detach every session from a room channel. Returns how many were attached."""
        dropped = 0
        for session in self.sessions.values():
            if room_id in session.channels:
                session.channels.discard(room_id)
                dropped += 1
        return dropped

    @property
    def identified_count(self) -> int:
        return len(self.identities)
