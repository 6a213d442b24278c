"""Q&A board: questions with tags, and their answers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus.config import get_settings
from campus.db.models import Answer, Question, User
from campus.errors import InvalidRequest, NotFound

logger = structlog.get_logger()

TITLE_MIN, TITLE_MAX = 5, 140
BODY_MIN, BODY_MAX = 10, 4000
TAG_MIN, TAG_MAX = 1, 20
ANSWER_MIN, ANSWER_MAX = 2, 4000
LIST_DEFAULT, LIST_MAX = 20, 50


@dataclass(frozen=True)
class QuestionSummary:
    """A question list row with its answer count and author."""

    question: Question
    answer_count: int
    creator: User


def _check_length(field: str, value: str, lo: int, hi: int) -> str:
    value = value.strip()
    if not lo <= len(value) <= hi:
        raise InvalidRequest(f"{field} must be between {lo} and {hi} characters")
    return value


def normalize_tags(tags: list[str] | None) -> list[str] | None:
    """Trim tags and enforce the per-question cap. An empty list becomes None."""
    if not tags:
        return None
    max_tags = get_settings().question_max_tags
    if len(tags) > max_tags:
        raise InvalidRequest(f"At most {max_tags} tags are allowed")
    return [_check_length("Tag", tag, TAG_MIN, TAG_MAX) for tag in tags]


async def get_question(db: AsyncSession, question_id: int) -> Question | None:
    result = await db.execute(select(Question).where(Question.id == question_id))
    return result.scalar_one_or_none()


async def post_question(
    db: AsyncSession,
    actor_id: int,
    title: str,
    body: str,
    tags: list[str] | None = None,
) -> Question:
    """Post a question.

    Raises:
        InvalidRequest: If title, body or tags are out of bounds.
    """
    question = Question(
        title=_check_length("Title", title, TITLE_MIN, TITLE_MAX),
        body=_check_length("Body", body, BODY_MIN, BODY_MAX),
        tags=normalize_tags(tags),
        created_by=actor_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(question)
    await db.flush()
    logger.info("question_posted", question_id=question.id, user_id=actor_id, tag_count=len(question.tags or []))
    return question


async def list_questions(db: AsyncSession, limit: int = LIST_DEFAULT) -> list[QuestionSummary]:
    """Newest questions first, each with its answer count and author."""
    limit = min(limit, LIST_MAX)
    answer_counts = (
        select(Answer.question_id, func.count().label("answers"))
        .group_by(Answer.question_id)
        .subquery()
    )
    result = await db.execute(
        select(Question, User, func.coalesce(answer_counts.c.answers, 0))
        .join(User, Question.created_by == User.id)
        .outerjoin(answer_counts, answer_counts.c.question_id == Question.id)
        .order_by(Question.created_at.desc(), Question.id.desc())
        .limit(limit)
    )
    return [
        QuestionSummary(question=question, answer_count=int(count), creator=creator)
        for question, creator, count in result
    ]


async def answer_question(db: AsyncSession, actor_id: int, question_id: int, body: str) -> Answer:
    """Answer an existing question.

    Raises:
        NotFound: If the question does not exist.
        InvalidRequest: If the body is out of bounds.
    """
    if await get_question(db, question_id) is None:
        raise NotFound("Question not found")

    answer = Answer(
        question_id=question_id,
        body=_check_length("Answer", body, ANSWER_MIN, ANSWER_MAX),
        created_by=actor_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(answer)
    await db.flush()
    logger.info("question_answered", question_id=question_id, answer_id=answer.id, user_id=actor_id)
    return answer


async def list_answers(db: AsyncSession, question_id: int) -> list[tuple[Answer, User]]:
    """Answers oldest first. An unknown question simply has none."""
    result = await db.execute(
        select(Answer, User)
        .join(User, Answer.created_by == User.id)
        .where(Answer.question_id == question_id)
        .order_by(Answer.created_at.asc(), Answer.id.asc())
    )
    return [(answer, user) for answer, user in result]
