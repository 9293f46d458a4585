# lobby_backend/models/models.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field, TypeAdapter


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Epoch numbers at or above this are milliseconds (JS Date.now())
EPOCH_MS_THRESHOLD = 100_000_000_000


def normalize_timestamp(value):
    """Turn an epoch number (seconds or milliseconds) into an ISO 8601 UTC string."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) >= EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {value}") from e
    return value


ClientTimestamp = Annotated[Optional[str], BeforeValidator(normalize_timestamp)]


# ============================================================================
# PERSISTED RECORDS
# ============================================================================

class ChatMessage(BaseModel):
    """A single log entry. room_id is absent for lobby messages."""

    author: str
    body: str
    timestamp: str = Field(default_factory=utc_now)
    room_id: Optional[str] = None

    def to_event(self) -> dict:
        return self.model_dump(exclude_none=True)


class Room(BaseModel):
    id: str
    name: str
    owner: str
    created_at: str
    members: List[str] = Field(default_factory=list)


class Page(BaseModel):
    messages: List[ChatMessage]
    offset: int
    has_more: bool


# ============================================================================
# CLIENT REQUESTS
# ============================================================================
# Every inbound frame is one of these, selected by its "action" field.
# Field values are loosely typed on purpose: lexical rules live in
# core.validation so the handler can report them as validation errors.

class ClaimIdentity(BaseModel):
    action: Literal["claim_identity"] = "claim_identity"
    identity: str = ""


class SendMessage(BaseModel):
    action: Literal["send_message"] = "send_message"
    body: str = ""
    timestamp: ClientTimestamp = None


class CreateRoom(BaseModel):
    action: Literal["create_room"] = "create_room"
    room_id: str = ""
    name: Optional[str] = None


class JoinRoom(BaseModel):
    action: Literal["join_room"] = "join_room"
    room_id: str = ""


class SendRoomMessage(BaseModel):
    action: Literal["send_room_message"] = "send_room_message"
    room_id: str = ""
    body: str = ""
    timestamp: ClientTimestamp = None


class LeaveRoom(BaseModel):
    action: Literal["leave_room"] = "leave_room"
    room_id: str = ""


class ClearRoomHistory(BaseModel):
    action: Literal["clear_room_history"] = "clear_room_history"
    room_id: str = ""


class DeleteRoom(BaseModel):
    action: Literal["delete_room"] = "delete_room"
    room_id: str = ""


class ClearHistory(BaseModel):
    action: Literal["clear_history"] = "clear_history"


class FetchHistory(BaseModel):
    action: Literal["fetch_history"] = "fetch_history"


class FetchPage(BaseModel):
    action: Literal["fetch_page"] = "fetch_page"
    offset: int = 0
    limit: int = 50


ClientRequest = Annotated[
    Union[
        ClaimIdentity,
        SendMessage,
        CreateRoom,
        JoinRoom,
        SendRoomMessage,
        LeaveRoom,
        ClearRoomHistory,
        DeleteRoom,
        ClearHistory,
        FetchHistory,
        FetchPage,
    ],
    Field(discriminator="action"),
]

request_adapter: TypeAdapter = TypeAdapter(ClientRequest)
