"""Conversation membership business logic.

Rules:
- Exactly one DM per unordered pair of users (unique ``dm_key``)
- Membership is unique per (conversation, user); adds are idempotent
- Only group admins may invite; DMs take no invites and cannot be left
- Admin transfer on last-admin leave (to the earliest-joined member)
- Last member leaving deletes the group and its history
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus.db.models import (
    Conversation,
    ConversationMember,
    Message,
    Studyathon,
    StudyathonParticipant,
    User,
)
from campus.db.upsert import insert_ignore
from campus.errors import Forbidden, InvalidRequest, NotFound
from campus.users.service import get_user_by_email, get_users_by_emails

logger = structlog.get_logger()


@dataclass(frozen=True)
class ConversationSummary:
    """One row of the caller's conversation list."""

    conversation: Conversation
    member_count: int
    dm_with: User | None = None


def dm_key_for(user_a: int, user_b: int) -> str:
    """Canonical key for an unordered user pair."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


# ---------------------------------------------------------------------------
# Lookups and authorization
# ---------------------------------------------------------------------------


async def get_conversation(
    db: AsyncSession,
    conversation_id: int,
    *,
    for_update: bool = False,
) -> Conversation | None:
    """Get a conversation by ID, optionally locking the row for this transaction."""
    stmt = select(Conversation).where(Conversation.id == conversation_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_membership(db: AsyncSession, conversation_id: int, user_id: int) -> ConversationMember | None:
    """Get a user's membership row in a conversation (if any)."""
    result = await db.execute(
        select(ConversationMember).where(
            ConversationMember.conversation_id == conversation_id,
            ConversationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def authorize_member(db: AsyncSession, user_id: int, conversation_id: int) -> ConversationMember:
    """Gate for every read/write against a conversation.

    Raises:
        Forbidden: If the user is not a member.
    """
    member = await get_membership(db, conversation_id, user_id)
    if member is None:
        raise Forbidden("Not a member of this conversation")
    return member


async def get_conversation_for_member(db: AsyncSession, actor_id: int, conversation_id: int) -> Conversation:
    """Fetch a conversation the actor belongs to."""
    conv = await get_conversation(db, conversation_id)
    if conv is None:
        raise NotFound("Conversation not found")
    await authorize_member(db, actor_id, conversation_id)
    return conv


async def add_member(db: AsyncSession, conversation_id: int, user_id: int, role: str = "member") -> bool:
    """Idempotent membership insert. Returns True if the user was newly added."""
    return await insert_ignore(
        db,
        ConversationMember,
        {
            "conversation_id": conversation_id,
            "user_id": user_id,
            "role": role,
            "joined_at": datetime.now(timezone.utc),
        },
        index_elements=["conversation_id", "user_id"],
    )


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_group(
    db: AsyncSession,
    creator_id: int,
    title: str,
    invite_emails: Iterable[str] = (),
) -> Conversation:
    """Create a group chat. The creator becomes the admin.

    Invite emails that resolve to other existing users are added as members;
    unknown addresses and the creator's own address are dropped.
    """
    title = title.strip()
    if not title:
        raise InvalidRequest("Group title cannot be empty")

    now = datetime.now(timezone.utc)
    conv = Conversation(kind="group", title=title, created_by=creator_id, created_at=now)
    db.add(conv)
    await db.flush()

    db.add(ConversationMember(conversation_id=conv.id, user_id=creator_id, role="admin", joined_at=now))
    await db.flush()

    invitees = [u for u in await get_users_by_emails(db, invite_emails) if u.id != creator_id]
    for user in invitees:
        db.add(ConversationMember(conversation_id=conv.id, user_id=user.id, role="member", joined_at=now))
    await db.flush()

    logger.info("group_created", conversation_id=conv.id, creator_id=creator_id, invited=len(invitees))
    return conv


async def _find_dm(db: AsyncSession, dm_key: str) -> Conversation | None:
    result = await db.execute(
        select(Conversation).where(Conversation.kind == "dm", Conversation.dm_key == dm_key)
    )
    return result.scalar_one_or_none()


async def open_or_create_dm(db: AsyncSession, user_id: int, other_email: str) -> tuple[Conversation, bool]:
    """
    Return the DM between the caller and ``other_email``, creating it if needed.

    Two concurrent opens for the same pair race on the unique ``dm_key``; the
    loser rolls back and returns the winner's conversation.

    Returns:
        Tuple of (conversation, created).
    """
    other = await get_user_by_email(db, other_email)
    if other is None:
        raise NotFound("User not found")
    other_id = other.id
    if other_id == user_id:
        raise InvalidRequest("Cannot DM yourself")

    key = dm_key_for(user_id, other_id)
    existing = await _find_dm(db, key)
    if existing is not None:
        return existing, False

    now = datetime.now(timezone.utc)
    conv = Conversation(kind="dm", title=None, created_by=user_id, created_at=now, dm_key=key)
    try:
        db.add(conv)
        await db.flush()
        db.add(ConversationMember(conversation_id=conv.id, user_id=user_id, role="admin", joined_at=now))
        db.add(ConversationMember(conversation_id=conv.id, user_id=other_id, role="member", joined_at=now))
        await db.flush()
    except IntegrityError:
        await db.rollback()
        existing = await _find_dm(db, key)
        if existing is None:
            raise
        logger.info("dm_open_race_lost", dm_key=key)
        return existing, False

    logger.info("dm_created", conversation_id=conv.id, user_id=user_id, other_id=other_id)
    return conv, True


# ---------------------------------------------------------------------------
# Membership changes
# ---------------------------------------------------------------------------


async def invite_member(db: AsyncSession, actor_id: int, conversation_id: int, email: str) -> bool:
    """Admin adds a user to a group by email. Re-inviting a member is a no-op.

    Returns True if the user was newly added.
    """
    conv = await get_conversation(db, conversation_id, for_update=True)
    if conv is None:
        raise NotFound("Conversation not found")
    if conv.kind != "group":
        raise InvalidRequest("Only group conversations support adding members")

    actor = await get_membership(db, conversation_id, actor_id)
    if actor is None:
        raise Forbidden("Not a member of this conversation")
    if actor.role != "admin":
        raise Forbidden("Only admins can add members")

    other = await get_user_by_email(db, email)
    if other is None:
        raise NotFound("User not found")

    added = await add_member(db, conversation_id, other.id)
    if added:
        logger.info("member_invited", conversation_id=conversation_id, actor_id=actor_id, user_id=other.id)
    return added


async def list_members(
    db: AsyncSession,
    actor_id: int,
    conversation_id: int,
) -> tuple[Conversation, list[tuple[ConversationMember, User]]]:
    """All members of a conversation the actor belongs to, by join order."""
    await authorize_member(db, actor_id, conversation_id)
    conv = await get_conversation(db, conversation_id)
    if conv is None:
        raise NotFound("Conversation not found")

    result = await db.execute(
        select(ConversationMember, User)
        .join(User, ConversationMember.user_id == User.id)
        .where(ConversationMember.conversation_id == conversation_id)
        .order_by(ConversationMember.joined_at.asc(), ConversationMember.id.asc())
    )
    return conv, [(row.ConversationMember, row.User) for row in result]


async def _delete_conversation(db: AsyncSession, conversation_id: int) -> None:
    """Remove a conversation with its history and any study-a-thon it backs."""
    studyathon_ids = select(Studyathon.id).where(Studyathon.conversation_id == conversation_id)
    await db.execute(delete(StudyathonParticipant).where(StudyathonParticipant.studyathon_id.in_(studyathon_ids)))
    await db.execute(delete(Studyathon).where(Studyathon.conversation_id == conversation_id))
    await db.execute(delete(Message).where(Message.conversation_id == conversation_id))
    await db.execute(delete(ConversationMember).where(ConversationMember.conversation_id == conversation_id))
    await db.execute(delete(Conversation).where(Conversation.id == conversation_id))


async def leave_conversation(db: AsyncSession, actor_id: int, conversation_id: int) -> bool:
    """
    Leave a group.

    The conversation row is locked for the transaction so concurrent leaves
    observe each other's promotions.

    Returns:
        True if the conversation was deleted because it became empty.
    """
    conv = await get_conversation(db, conversation_id, for_update=True)
    if conv is None:
        raise NotFound("Conversation not found")
    if conv.kind != "group":
        raise InvalidRequest("Only group conversations support leaving")

    me = await get_membership(db, conversation_id, actor_id)
    if me is None:
        raise InvalidRequest("Not a member")
    was_admin = me.role == "admin"

    await db.delete(me)
    # Leaving an event chat also leaves the event roster.
    await db.execute(
        delete(StudyathonParticipant).where(
            StudyathonParticipant.user_id == actor_id,
            StudyathonParticipant.studyathon_id.in_(
                select(Studyathon.id).where(Studyathon.conversation_id == conversation_id)
            ),
        )
    )
    await db.flush()

    result = await db.execute(
        select(ConversationMember)
        .where(ConversationMember.conversation_id == conversation_id)
        .order_by(ConversationMember.joined_at.asc(), ConversationMember.id.asc())
    )
    remaining = list(result.scalars().all())

    if not remaining:
        await _delete_conversation(db, conversation_id)
        await db.flush()
        logger.info("conversation_deleted", conversation_id=conversation_id, last_member_id=actor_id)
        return True

    if was_admin and not any(m.role == "admin" for m in remaining):
        successor = remaining[0]
        successor.role = "admin"
        await db.flush()
        logger.info("member_promoted", conversation_id=conversation_id, user_id=successor.user_id)

    logger.info("member_left", conversation_id=conversation_id, user_id=actor_id)
    return False


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


async def list_user_conversations(db: AsyncSession, user_id: int) -> list[ConversationSummary]:
    """The caller's conversations, newest first."""
    result = await db.execute(
        select(Conversation)
        .join(ConversationMember, ConversationMember.conversation_id == Conversation.id)
        .where(ConversationMember.user_id == user_id)
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
    )
    conversations = list(result.scalars().all())
    if not conversations:
        return []

    ids = [c.id for c in conversations]
    counts_result = await db.execute(
        select(ConversationMember.conversation_id, func.count())
        .where(ConversationMember.conversation_id.in_(ids))
        .group_by(ConversationMember.conversation_id)
    )
    counts = {conv_id: count for conv_id, count in counts_result}

    dm_ids = [c.id for c in conversations if c.kind == "dm"]
    partners: dict[int, User] = {}
    if dm_ids:
        partner_result = await db.execute(
            select(ConversationMember.conversation_id, User)
            .join(User, ConversationMember.user_id == User.id)
            .where(ConversationMember.conversation_id.in_(dm_ids), ConversationMember.user_id != user_id)
        )
        partners = {conv_id: user for conv_id, user in partner_result}

    return [
        ConversationSummary(conversation=c, member_count=counts.get(c.id, 0), dm_with=partners.get(c.id))
        for c in conversations
    ]
