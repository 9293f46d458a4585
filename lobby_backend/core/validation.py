# lobby_backend/core/validation.py

from __future__ import annotations

import re

from lobby_backend.core.errors import ValidationError

IDENTITY_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{2,20}$")
ROOM_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{2,50}$")


def validate_identity(identity) -> str:
    """
    Return the trimmed identity or raise ValidationError.

    Identities are case-sensitive, 2-20 characters of letters, digits,
    underscores and hyphens.
    """
    if not isinstance(identity, str) or not identity.strip():
        raise ValidationError("Identity cannot be empty.")
    trimmed = identity.strip()
    if len(trimmed) < 2:
        raise ValidationError("Identity must be at least 2 characters.")
    if len(trimmed) > 20:
        raise ValidationError("Identity must be at most 20 characters.")
    if not IDENTITY_PATTERN.match(trimmed):
        raise ValidationError("Identity may only contain letters, numbers, _ or -.")
    return trimmed


def validate_room_id(room_id) -> str:
    if not isinstance(room_id, str) or not ROOM_ID_PATTERN.match(room_id.strip()):
        raise ValidationError("Invalid room ID. Use 2-50 chars: letters, numbers, _ or -.")
    return room_id.strip()


def validate_body(body) -> str:
    if not isinstance(body, str) or not body.strip():
        raise ValidationError("Message cannot be empty.")
    return body.strip()
