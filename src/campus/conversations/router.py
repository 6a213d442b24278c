"""Conversation API endpoints for groups, DMs and membership."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from campus.auth.dependencies import get_current_user_id
from campus.conversations.schemas import (
    ConversationListItem,
    ConversationListResponse,
    ConversationResponse,
    CreateGroupRequest,
    InviteMemberRequest,
    InviteResponse,
    LeaveResponse,
    MemberResponse,
    MembersResponse,
    OpenDmRequest,
)
from campus.conversations.service import (
    create_group,
    get_conversation_for_member,
    invite_member,
    leave_conversation,
    list_members,
    list_user_conversations,
    open_or_create_dm,
)
from campus.database import get_session
from campus.users.schemas import UserSummary

router = APIRouter(prefix="/api/v1/conversations", tags=["Conversations"])


@router.get("", response_model=ConversationListResponse)
async def list_my_conversations(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> ConversationListResponse:
    """Conversations the caller belongs to, newest first."""
    summaries = await list_user_conversations(db, user_id)
    return ConversationListResponse(
        conversations=[
            ConversationListItem(
                id=s.conversation.id,
                kind=s.conversation.kind,  # type: ignore[arg-type]
                title=s.conversation.title,
                created_at=s.conversation.created_at,
                member_count=s.member_count,
                dm_with=UserSummary.model_validate(s.dm_with) if s.dm_with else None,
            )
            for s in summaries
        ]
    )


@router.post("/group", response_model=ConversationResponse, status_code=201)
async def create_group_endpoint(
    body: CreateGroupRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> ConversationResponse:
    """Create a group; the caller becomes its admin."""
    conv = await create_group(db, user_id, body.title, body.member_emails)
    await db.commit()
    return ConversationResponse.model_validate(conv)


@router.post("/dm", response_model=ConversationResponse)
async def open_dm(
    body: OpenDmRequest,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> ConversationResponse:
    """Open the DM with another user, creating it on first contact (201)."""
    conv, created = await open_or_create_dm(db, user_id, body.email)
    await db.commit()
    response.status_code = 201 if created else 200
    return ConversationResponse.model_validate(conv)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation_endpoint(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> ConversationResponse:
    conv = await get_conversation_for_member(db, user_id, conversation_id)
    return ConversationResponse.model_validate(conv)


@router.get("/{conversation_id}/members", response_model=MembersResponse)
async def list_members_endpoint(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> MembersResponse:
    """Members ordered by join time."""
    conv, rows = await list_members(db, user_id, conversation_id)
    return MembersResponse(
        conversation_id=conv.id,
        kind=conv.kind,  # type: ignore[arg-type]
        title=conv.title,
        members=[
            MemberResponse(
                user_id=user.id,
                email=user.email,
                username=user.username,
                role=member.role,  # type: ignore[arg-type]
                joined_at=member.joined_at,
            )
            for member, user in rows
        ],
    )


@router.post("/{conversation_id}/members", response_model=InviteResponse)
async def invite_member_endpoint(
    conversation_id: int,
    body: InviteMemberRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> InviteResponse:
    """Admin adds a user to a group by email."""
    added = await invite_member(db, user_id, conversation_id, body.email)
    await db.commit()
    return InviteResponse(status="ok", added=added)


@router.post("/{conversation_id}/leave", response_model=LeaveResponse)
async def leave_endpoint(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> LeaveResponse:
    """Leave a group. The group is deleted when its last member leaves."""
    deleted = await leave_conversation(db, user_id, conversation_id)
    await db.commit()
    return LeaveResponse(status="left", deleted=deleted)
