"""Cursor-based pagination for conversation history.

Uses keyset pagination (not OFFSET). The cursor encodes the (created_at, id)
of the oldest message on the previous page as base64 JSON; the next page holds
only rows strictly before it, so messages sent in between never shift or
repeat across pages.
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime

from sqlalchemy import Select, and_, or_

from campus.db.models import Message

# Message ids are BIGINT.
_MAX_ID = 2**63 - 1


def encode_cursor(created_at: datetime, message_id: int) -> str:
    """Encode a cursor from message fields."""
    payload = {"before": created_at.isoformat(), "id": message_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, int | None]:
    """Decode a cursor into (created_at, id).

    Raises:
        ValueError: If cursor is malformed.
    """
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode()))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        msg = f"Invalid cursor: {e}"
        raise ValueError(msg) from e
    if not isinstance(data, dict) or "before" not in data:
        msg = "Invalid cursor: missing 'before'"
        raise ValueError(msg)
    try:
        before = datetime.fromisoformat(data["before"])
    except (TypeError, ValueError) as e:
        msg = f"Invalid cursor: {e}"
        raise ValueError(msg) from e
    message_id = data.get("id")
    if message_id is not None and (
        isinstance(message_id, bool) or not isinstance(message_id, int) or not 0 < message_id <= _MAX_ID
    ):
        msg = "Invalid cursor: bad 'id'"
        raise ValueError(msg)
    return before, message_id


def apply_cursor(query: Select, cursor: str | None) -> Select:  # type: ignore[type-arg]
    """Apply keyset cursor to a message query.

    Assumes the query is already ordered by (created_at DESC, id DESC).
    """
    if cursor is None:
        return query

    before, message_id = decode_cursor(cursor)
    if message_id is None:
        return query.where(Message.created_at < before)

    return query.where(
        or_(
            Message.created_at < before,
            and_(Message.created_at == before, Message.id < message_id),
        )
    )
