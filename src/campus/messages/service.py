"""Message ledger: append and page through a conversation's history."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus.config import get_settings
from campus.conversations.service import authorize_member
from campus.db.models import Message
from campus.errors import InvalidRequest
from campus.messages.pagination import apply_cursor, encode_cursor

logger = structlog.get_logger()


async def send_message(db: AsyncSession, actor_id: int, conversation_id: int, body: str) -> Message:
    """Append a message from a member.

    Raises:
        Forbidden: If the actor is not a member.
        InvalidRequest: If the body is blank or too long.
    """
    await authorize_member(db, actor_id, conversation_id)

    settings = get_settings()
    if not body or not body.strip():
        raise InvalidRequest("Message body cannot be empty")
    if len(body) > settings.message_max_length:
        raise InvalidRequest(f"Message body must not exceed {settings.message_max_length} characters")

    message = Message(
        conversation_id=conversation_id,
        sender_id=actor_id,
        body=body,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    await db.flush()
    logger.info("message_sent", conversation_id=conversation_id, message_id=message.id, sender_id=actor_id)
    return message


async def list_messages(
    db: AsyncSession,
    actor_id: int,
    conversation_id: int,
    cursor: str | None = None,
    limit: int | None = None,
) -> tuple[list[Message], str | None]:
    """Fetch a page of history, newest first.

    Args:
        cursor: Opaque cursor from the previous page's ``next_cursor``.
        limit: Page size, capped at ``message_page_max``.

    Returns:
        Tuple of (messages, next_cursor). ``next_cursor`` is None when the
        page came back short, i.e. the start of history was reached.
    """
    await authorize_member(db, actor_id, conversation_id)

    settings = get_settings()
    limit = min(limit or settings.message_page_default, settings.message_page_max)

    query = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
    )
    try:
        query = apply_cursor(query, cursor)
    except ValueError as e:
        raise InvalidRequest(str(e)) from e

    result = await db.execute(query.limit(limit))
    items = list(result.scalars().all())

    next_cursor = None
    if len(items) == limit:
        oldest = items[-1]
        next_cursor = encode_cursor(oldest.created_at, oldest.id)

    return items, next_cursor
