"""Study-a-thon roster.

A study-a-thon is created together with its group chat; joining the event
always joins the chat. The live feed keeps events with a future end time, and
events without one for ``studyathon_live_window_hours`` after they start.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus.config import get_settings
from campus.conversations.service import add_member, get_conversation
from campus.db.models import Conversation, ConversationMember, Studyathon, StudyathonParticipant, User
from campus.db.upsert import insert_ignore
from campus.errors import InvalidRequest, NotFound

logger = structlog.get_logger()

CHAT_TITLE_PREFIX = "Study-a-thon · "


@dataclass(frozen=True)
class LiveStudyathon:
    """A live feed row: the event, its roster size and who created it."""

    studyathon: Studyathon
    participant_count: int
    creator: User


def _as_utc(value: datetime) -> datetime:
    """Naive instants are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def get_studyathon(db: AsyncSession, studyathon_id: int) -> Studyathon | None:
    result = await db.execute(select(Studyathon).where(Studyathon.id == studyathon_id))
    return result.scalar_one_or_none()


async def create_studyathon(
    db: AsyncSession,
    actor_id: int,
    title: str,
    starts_at: datetime,
    ends_at: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
) -> Studyathon:
    """Create the event, its group chat (creator as admin) and the creator's roster entry."""
    title = title.strip()
    if not title:
        raise InvalidRequest("Title cannot be empty")
    starts_at = _as_utc(starts_at)
    ends_at = _as_utc(ends_at) if ends_at else None
    if ends_at is not None and ends_at <= starts_at:
        raise InvalidRequest("ends_at must be after starts_at")

    now = datetime.now(timezone.utc)
    conv = Conversation(kind="group", title=f"{CHAT_TITLE_PREFIX}{title}", created_by=actor_id, created_at=now)
    db.add(conv)
    await db.flush()
    db.add(ConversationMember(conversation_id=conv.id, user_id=actor_id, role="admin", joined_at=now))

    studyathon = Studyathon(
        title=title,
        description=description or None,
        location=location or None,
        starts_at=starts_at,
        ends_at=ends_at,
        created_by=actor_id,
        conversation_id=conv.id,
        created_at=now,
    )
    db.add(studyathon)
    await db.flush()

    db.add(StudyathonParticipant(studyathon_id=studyathon.id, user_id=actor_id, joined_at=now))
    await db.flush()

    logger.info("studyathon_created", studyathon_id=studyathon.id, conversation_id=conv.id, creator_id=actor_id)
    return studyathon


async def join_studyathon(db: AsyncSession, actor_id: int, studyathon_id: int) -> int:
    """Join an event and its chat. Joining twice is harmless.

    Returns:
        The backing conversation id.
    """
    studyathon = await get_studyathon(db, studyathon_id)
    if studyathon is None:
        raise NotFound("Studyathon not found")
    if await get_conversation(db, studyathon.conversation_id, for_update=True) is None:
        raise NotFound("Studyathon not found")

    joined = await insert_ignore(
        db,
        StudyathonParticipant,
        {"studyathon_id": studyathon.id, "user_id": actor_id, "joined_at": datetime.now(timezone.utc)},
        index_elements=["studyathon_id", "user_id"],
    )
    await add_member(db, studyathon.conversation_id, actor_id)
    await db.flush()

    if joined:
        logger.info("studyathon_joined", studyathon_id=studyathon.id, user_id=actor_id)
    return studyathon.conversation_id


async def list_live(db: AsyncSession, limit: int = 20, now: datetime | None = None) -> list[LiveStudyathon]:
    """Events that are upcoming or in progress, soonest start first."""
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    limit = min(limit, settings.studyathon_feed_max)
    window_start = now - timedelta(hours=settings.studyathon_live_window_hours)

    participant_counts = (
        select(StudyathonParticipant.studyathon_id, func.count().label("participants"))
        .group_by(StudyathonParticipant.studyathon_id)
        .subquery()
    )
    result = await db.execute(
        select(Studyathon, User, func.coalesce(participant_counts.c.participants, 0))
        .join(User, Studyathon.created_by == User.id)
        .outerjoin(participant_counts, participant_counts.c.studyathon_id == Studyathon.id)
        .where(
            or_(
                Studyathon.ends_at >= now,
                and_(Studyathon.ends_at.is_(None), Studyathon.starts_at >= window_start),
            )
        )
        .order_by(Studyathon.starts_at.asc(), Studyathon.id.asc())
        .limit(limit)
    )
    return [
        LiveStudyathon(studyathon=studyathon, participant_count=int(count), creator=creator)
        for studyathon, creator, count in result
    ]


async def count_participants(db: AsyncSession, studyathon_id: int) -> int:
    """Roster size of one study-a-thon."""
    result = await db.execute(
        select(func.count()).select_from(StudyathonParticipant).where(
            StudyathonParticipant.studyathon_id == studyathon_id
        )
    )
    return int(result.scalar_one())
