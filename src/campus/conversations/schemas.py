"""Pydantic schemas for conversation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from campus.users.schemas import UserSummary


class CreateGroupRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=80)
    member_emails: list[EmailStr] = Field(default_factory=list, max_length=100)

    @field_validator("member_emails")
    @classmethod
    def normalize_emails(cls, v: list[str]) -> list[str]:
        return [e.lower().strip() for e in v]


class OpenDmRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class InviteMemberRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: Literal["dm", "group"]
    title: str | None = None
    created_by: int | None = None
    created_at: datetime


class ConversationListItem(BaseModel):
    id: int
    kind: Literal["dm", "group"]
    title: str | None = None
    created_at: datetime
    member_count: int
    dm_with: UserSummary | None = None


class ConversationListResponse(BaseModel):
    conversations: list[ConversationListItem]


class MemberResponse(BaseModel):
    user_id: int
    email: str
    username: str | None = None
    role: Literal["admin", "member"]
    joined_at: datetime


class MembersResponse(BaseModel):
    conversation_id: int
    kind: Literal["dm", "group"]
    title: str | None = None
    members: list[MemberResponse]


class InviteResponse(BaseModel):
    status: str
    added: bool


class LeaveResponse(BaseModel):
    status: str
    deleted: bool
