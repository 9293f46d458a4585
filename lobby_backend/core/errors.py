# lobby_backend/core/errors.py

from __future__ import annotations


class ChatError(Exception):
    """
    Base class for every failure that is reported back to a client.

    Attributes:
        event: The outbound event type the requester receives
        message: Human readable explanation sent with the event
    """

    event: str = "error"

    def __init__(self, message: str, event: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if event is not None:
            self.event = event

    def to_payload(self) -> dict:
        return {"message": self.message}


class ValidationError(ChatError):
    """Malformed identity, room id, body or request frame."""

    event = "validation_error"


class ConflictError(ChatError):
    """Identity already claimed or room already exists."""

    event = "conflict"


class AuthorizationError(ChatError):
    """Not identified, not a member, or not the owner."""

    event = "authorization_error"


class NotFoundError(ChatError):
    event = "room_not_found"


class PersistenceError(ChatError):
    """Redis was unreachable or an operation on it failed."""

    event = "error"

    def __init__(self, operation: str) -> None:
        super().__init__("Operation failed. Please try again.")
        self.operation = operation
