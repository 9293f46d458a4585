# lobby_backend/api/websocket.py

from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as RequestValidationError

from lobby_backend.core import state
from lobby_backend.core.config import settings
from lobby_backend.models.models import request_adapter
from lobby_backend.services.connection_handler import ConnectionHandler

logger = logging.getLogger(__name__)

router = APIRouter()


def _describe_rejection(action, error: RequestValidationError) -> str:
    # loc is (action tag, field, ...) once the action itself was recognised
    fields = dict.fromkeys(
        ".".join(str(part) for part in err["loc"][1:])
        for err in error.errors()
        if len(err["loc"]) > 1
    )
    if fields:
        return f"Invalid {', '.join(fields)} for action: {action}"
    return f"Unknown or malformed action: {action}"

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for the lobby and private rooms.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Claim Identity:
        {"action": "claim_identity", "identity": "alice"}
        Response: {"type": "identity_accepted", "identity": "alice"}
        Others:   {"type": "user_joined", "identity": "alice"}

    Lobby Message:
        {"action": "send_message", "body": "Hello!", "timestamp": "..."}
        Everyone: {"type": "message", "author": "alice", "body": "Hello!", "timestamp": "..."}

    Create / Join / Leave Room:
        {"action": "create_room", "room_id": "team1", "name": "Team One"}
        Response: {"type": "room_created", "room_id": "team1", "name": "...", "owner": "alice", "created_at": "..."}

        {"action": "join_room", "room_id": "team1"}
        Response: {"type": "room_joined", "room_id": "team1", "name": "...", "messages": [...]}

        {"action": "leave_room", "room_id": "team1"}
        Response: {"type": "room_left", "room_id": "team1", "status": "ok" | "not_member"}

    Room Message:
        {"action": "send_room_message", "room_id": "team1", "body": "hi"}
        Room:     {"type": "room_message", "author": "alice", "body": "hi", "room_id": "team1", "timestamp": "..."}

    Room History / Deletion:
        {"action": "clear_room_history", "room_id": "team1"}
        Room:     {"type": "room_history_cleared", "room_id": "team1", "cleared_by": "alice", "timestamp": "..."}

        {"action": "delete_room", "room_id": "team1"}
        Room:     {"type": "room_deleted", "room_id": "team1", "deleted_by": "alice"}

    Lobby History:
        {"action": "clear_history"}
        Everyone: {"type": "global_history_cleared", "cleared_by": "alice", "timestamp": "..."}

        {"action": "fetch_history"}
        Response: {"type": "historical_messages", "messages": [...]}

        {"action": "fetch_page", "offset": 50, "limit": 50}
        Response: {"type": "paginated_messages", "messages": [...], "offset": 100, "has_more": true}

    Errors:
        {"type": "<error type>", "action": "<action>", "message": "..."}
        error types: validation_error, identity_taken, room_exists,
        authorization_error, not_member, not_owner, room_not_found, error

    Lifecycle:
    ==========
    1. Client connects, receives the newest page of lobby history
    2. Client claims an identity
    3. Client chats in the lobby and in rooms it creates or joins
    4. On disconnect the identity is released and others get "user_left";
       room membership is kept
    """
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    session = await state.session_registry.register(connection_id, websocket)
    handler = ConnectionHandler(
        session=session,
        registry=state.session_registry,
        directory=state.room_directory,
        store=state.message_store,
        router=state.broadcast_router,
        page_size=settings.HISTORY_PAGE_SIZE,
    )

    try:
        await handler.on_connect()

        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            try:
                request = request_adapter.validate_python(message)
            except RequestValidationError as e:
                action = message.get("action") if isinstance(message, dict) else None
                logger.debug("Rejected frame from %s: %s", connection_id, e)
                await websocket.send_json(
                    {
                        "type": "validation_error",
                        "action": action,
                        "message": _describe_rejection(action, e),
                    }
                )
                continue

            logger.debug("Websocket input: connection=%s action=%s", connection_id, request.action)
            await handler.handle(request)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: %s", connection_id)
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection_id, e, exc_info=True)
    finally:
        await handler.on_disconnect()
