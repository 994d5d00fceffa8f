"""Opaque keyset cursors over ``(created_at, id)``."""

import base64
import binascii
import json
from typing import Optional, Tuple

from .exceptions import ValidationError

def encode_cursor(created_at: str, listing_id: str) -> str:
    payload = json.dumps([created_at, listing_id], separators=(',', ':'))
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip('=')

def decode_cursor(cursor: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return the ``(created_at, id)`` position a cursor points after.

    Raises:
        ValidationError: If the cursor was not produced by :func:`encode_cursor`
    """
    if not cursor:
        return None

    try:
        padded = cursor + '=' * (-len(cursor) % 4)
        position = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise ValidationError("Malformed pagination cursor")

    if (
        not isinstance(position, list)
        or len(position) != 2
        or not all(isinstance(part, str) for part in position)
    ):
        raise ValidationError("Malformed pagination cursor")

    return position[0], position[1]
