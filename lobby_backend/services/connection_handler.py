# lobby_backend/services/connection_handler.py

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, List

from lobby_backend.core.errors import AuthorizationError, ChatError, PersistenceError
from lobby_backend.core.redis_keys import GLOBAL_DESTINATION
from lobby_backend.core.validation import validate_body, validate_identity, validate_room_id
from lobby_backend.models.models import (
    ChatMessage,
    ClaimIdentity,
    ClearHistory,
    ClearRoomHistory,
    CreateRoom,
    DeleteRoom,
    FetchHistory,
    FetchPage,
    JoinRoom,
    LeaveRoom,
    SendMessage,
    SendRoomMessage,
    utc_now,
)
from lobby_backend.services.broadcast_router import BroadcastRouter
from lobby_backend.services.message_store import MessageStore
from lobby_backend.services.room_directory import RoomDirectory
from lobby_backend.services.session_registry import Session, SessionRegistry

logger = logging.getLogger(__name__)


def _dump(messages: List[ChatMessage]) -> List[dict]:
    return [m.to_event() for m in messages]


# ============================================================================
# PER-CONNECTION PROTOCOL HANDLER
# ============================================================================

class ConnectionHandler:
    """
    Protocol dispatcher for a single connection.

    One instance lives for as long as its WebSocket. Requests arrive already
    decoded into one of the ClientRequest models and are routed through a
    table keyed by request type; the table covers the whole union.

    Every request produces exactly one outcome for the requester: either
    the success event (which may be part of a broadcast it also receives)
    or a single typed error event. Failures are never broadcast.

    States:
        unidentified  - may only claim an identity or read lobby history
        identified    - everything else; joined rooms are tracked in
                        session.channels
    """

    def __init__(
        self,
        session: Session,
        registry: SessionRegistry,
        directory: RoomDirectory,
        store: MessageStore,
        router: BroadcastRouter,
        page_size: int = 50,
    ) -> None:
        self.session = session
        self.registry = registry
        self.directory = directory
        self.store = store
        self.router = router
        self.page_size = page_size

        self._handlers: Dict[type, Callable[..., Awaitable[None]]] = {
            ClaimIdentity: self.claim_identity,
            SendMessage: self.send_message,
            CreateRoom: self.create_room,
            JoinRoom: self.join_room,
            SendRoomMessage: self.send_room_message,
            LeaveRoom: self.leave_room,
            ClearRoomHistory: self.clear_room_history,
            DeleteRoom: self.delete_room,
            ClearHistory: self.clear_history,
            FetchHistory: self.fetch_history,
            FetchPage: self.fetch_page,
        }

    # ------------------------------------------------------------------
    # Entry points used by the WebSocket endpoint
    # ------------------------------------------------------------------

    async def on_connect(self) -> None:
        """Send the newest page of the lobby so the client has something to show."""
        await self._guarded("connect", self._send_page, 0, self.page_size)

    async def handle(self, request) -> None:
        handler = self._handlers[type(request)]
        await self._guarded(request.action, handler, request)

    async def on_disconnect(self) -> None:
        """Release the identity and tell everyone else. Room membership is kept."""
        session = await self.registry.release(self.session.connection_id)
        if session is not None and session.identity is not None:
            await self.router.send_to_all("user_left", {"identity": session.identity})

    async def _guarded(self, action: str, handler, *args) -> None:
        try:
            await handler(*args)
        except PersistenceError as e:
            logger.error(
                "Store failure on %s for %s (%s)",
                action,
                self.session.identity or self.session.connection_id,
                e.operation,
            )
            await self._reply_error(action, e)
        except ChatError as e:
            logger.debug("Rejected %s from %s: %s", action, self.session.connection_id, e.message)
            await self._reply_error(action, e)

    async def _reply_error(self, action: str, error: ChatError) -> None:
        await self.router.send_to_one(self.session, error.event, {"action": action, **error.to_payload()})

    def _require_identity(self) -> str:
        if not self.session.identified:
            raise AuthorizationError("Please claim an identity first.")
        return self.session.identity

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def claim_identity(self, request: ClaimIdentity) -> None:
        identity = validate_identity(request.identity)
        await self.registry.claim(self.session.connection_id, identity)
        await self.router.send_to_one(self.session, "identity_accepted", {"identity": identity})
        await self.router.send_to_all("user_joined", {"identity": identity}, exclude=self.session)

    # ------------------------------------------------------------------
    # Lobby
    # ------------------------------------------------------------------

    async def send_message(self, request: SendMessage) -> None:
        author = self._require_identity()
        message = ChatMessage(
            author=author,
            body=validate_body(request.body),
            timestamp=request.timestamp or utc_now(),
        )
        # Broadcast only once the append is confirmed
        await self.store.append(GLOBAL_DESTINATION, message)
        await self.router.send_to_all("message", message.to_event())

    async def clear_history(self, request: ClearHistory) -> None:
        identity = self._require_identity()
        await self.store.clear(GLOBAL_DESTINATION)
        logger.info("Lobby history cleared by %s", identity)
        await self.router.send_to_all(
            "global_history_cleared", {"cleared_by": identity, "timestamp": utc_now()}
        )

    async def fetch_history(self, request: FetchHistory) -> None:
        messages = await self.store.read_all(GLOBAL_DESTINATION)
        await self.router.send_to_one(self.session, "historical_messages", {"messages": _dump(messages)})

    async def fetch_page(self, request: FetchPage) -> None:
        await self._send_page(request.offset, request.limit)

    async def _send_page(self, offset: int, limit: int) -> None:
        page = await self.store.read_range(GLOBAL_DESTINATION, offset, limit)
        await self.router.send_to_one(
            self.session,
            "paginated_messages",
            {"messages": _dump(page.messages), "offset": page.offset, "has_more": page.has_more},
        )

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def create_room(self, request: CreateRoom) -> None:
        owner = self._require_identity()
        room = await self.directory.create(request.room_id, request.name, owner)
        self.session.channels.add(room.id)
        await self.router.send_to_one(
            self.session,
            "room_created",
            {"room_id": room.id, "name": room.name, "owner": room.owner, "created_at": room.created_at},
        )

    async def join_room(self, request: JoinRoom) -> None:
        identity = self._require_identity()
        room, history = await self.directory.join(request.room_id, identity)
        self.session.channels.add(room.id)
        await self.router.send_to_one(
            self.session,
            "room_joined",
            {"room_id": room.id, "name": room.name, "messages": _dump(history)},
        )

    async def send_room_message(self, request: SendRoomMessage) -> None:
        author = self._require_identity()
        room_id = validate_room_id(request.room_id)
        message = ChatMessage(
            author=author,
            body=validate_body(request.body),
            timestamp=request.timestamp or utc_now(),
            room_id=room_id,
        )
        await self.directory.post_message(room_id, message)
        await self._to_room_and_requester(room_id, "room_message", message.to_event())

    async def leave_room(self, request: LeaveRoom) -> None:
        identity = self._require_identity()
        room_id = validate_room_id(request.room_id)
        status = await self.directory.leave(room_id, identity)
        self.session.channels.discard(room_id)
        await self.router.send_to_one(self.session, "room_left", {"room_id": room_id, "status": status})

    async def clear_room_history(self, request: ClearRoomHistory) -> None:
        identity = self._require_identity()
        room_id = validate_room_id(request.room_id)
        await self.directory.clear_history(room_id, identity)
        await self._to_room_and_requester(
            room_id,
            "room_history_cleared",
            {"room_id": room_id, "cleared_by": identity, "timestamp": utc_now()},
        )

    async def delete_room(self, request: DeleteRoom) -> None:
        identity = self._require_identity()
        room = await self.directory.delete(request.room_id, identity)
        # Snapshot channel subscribers before detaching them
        targets = self.router.room_targets(room.id)
        self.registry.drop_channel(room.id)
        if self.session not in targets:
            targets.append(self.session)
        await self.router.deliver(targets, "room_deleted", {"room_id": room.id, "deleted_by": identity})

    async def _to_room_and_requester(self, room_id: str, event: str, payload: dict) -> None:
        if room_id in self.session.channels:
            await self.router.send_to_room(room_id, event, payload)
            return
        # Member on a connection that hasn't opened the channel yet
        targets = self.router.room_targets(room_id)
        targets.append(self.session)
        await self.router.deliver(targets, event, payload)
