# lobby_backend/services/broadcast_router.py

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from lobby_backend.services.session_registry import Session, SessionRegistry

logger = logging.getLogger(__name__)


class BroadcastRouter:
    """
    Fans events out to live sessions.

    The router keeps no state of its own: every call reads the
    SessionRegistry at dispatch time. Delivery is best effort, a session
    whose socket fails mid-send is skipped and the rest still get the event.

    Outbound frames look like ``{"type": <event>, **payload}``.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    @staticmethod
    def frame(event: str, payload: Optional[dict] = None) -> dict:
        return {"type": event, **(payload or {})}

    async def deliver(self, targets: Iterable[Session], event: str, payload: Optional[dict] = None) -> int:
        """
        Send one event to a precomputed set of sessions.

        Returns:
            int: Number of sessions the event reached
        """
        message = self.frame(event, payload)
        delivered = 0
        for session in targets:
            try:
                await session.transport.send_json(message)
                delivered += 1
            except Exception as e:
                # Socket is closing; its receive loop will clean the session up
                logger.warning("Send error to %s: %s", session.connection_id, e)
        return delivered

    async def send_to_all(self, event: str, payload: Optional[dict] = None, exclude: Optional[Session] = None) -> int:
        """Deliver to every live session, optionally skipping one (the sender)."""
        targets = [s for s in self.registry.live_sessions() if s is not exclude]
        logger.debug("📨 Broadcasting %s to %d clients", event, len(targets))
        return await self.deliver(targets, event, payload)

    def room_targets(self, room_id: str) -> List[Session]:
        return self.registry.subscribers(room_id)

    async def send_to_room(self, room_id: str, event: str, payload: Optional[dict] = None) -> int:
        """Deliver to the sessions currently associated with the room channel."""
        targets = self.room_targets(room_id)
        if not targets:
            logger.debug("[routing] Skipped %s: room=%s has 0 subscribers", event, room_id)
            return 0
        logger.debug("📨 Broadcasting %s to room %s: %d clients", event, room_id, len(targets))
        return await self.deliver(targets, event, payload)

    async def send_to_one(self, session: Session, event: str, payload: Optional[dict] = None) -> int:
        return await self.deliver([session], event, payload)
