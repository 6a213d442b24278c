"""User directory router: /api/v1/users/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus.auth.dependencies import get_current_user_id
from campus.database import get_session
from campus.users.schemas import UserSearchResponse, UserSummary
from campus.users.service import search_users

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/search", response_model=UserSearchResponse)
async def search(
    q: str = Query("", max_length=64),
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> UserSearchResponse:
    """Username/email suggestions for the invite and DM pickers."""
    users = await search_users(db, q)
    return UserSearchResponse(users=[UserSummary.model_validate(u) for u in users])
