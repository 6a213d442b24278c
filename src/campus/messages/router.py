"""Message endpoints under /api/v1/conversations/{id}/messages."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus.auth.dependencies import get_current_user_id
from campus.database import get_session
from campus.messages.schemas import MessagePage, MessageResponse, SendMessageRequest
from campus.messages.service import list_messages, send_message

router = APIRouter(prefix="/api/v1/conversations", tags=["Messages"])


@router.get("/{conversation_id}/messages", response_model=MessagePage)
async def get_messages(
    conversation_id: int,
    cursor: str | None = Query(None, max_length=512),
    limit: int = Query(30, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> MessagePage:
    """Newest-first history. Pass ``next_cursor`` back to load older messages."""
    messages, next_cursor = await list_messages(db, user_id, conversation_id, cursor=cursor, limit=limit)
    return MessagePage(
        messages=[MessageResponse.model_validate(m) for m in messages],
        next_cursor=next_cursor,
    )


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=201)
async def post_message(
    conversation_id: int,
    body: SendMessageRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> MessageResponse:
    message = await send_message(db, user_id, conversation_id, body.body)
    await db.commit()
    return MessageResponse.model_validate(message)
