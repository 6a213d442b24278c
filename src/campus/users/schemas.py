"""Schemas for user directory endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserSummary(BaseModel):
    """Public view of another user, embedded in conversations, events and Q&A."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: str | None = None


class UserSearchResponse(BaseModel):
    users: list[UserSummary]
