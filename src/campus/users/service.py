"""User record queries (credential store)."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus.db.models import User
from campus.errors import Conflict

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    """Lowercase and trim an email address before any lookup or storage."""
    return email.strip().lower()


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_users_by_emails(db: AsyncSession, emails: Iterable[str]) -> list[User]:
    """Resolve many emails at once; unknown addresses are simply absent."""
    normalized = {normalize_email(e) for e in emails}
    if not normalized:
        return []
    result = await db.execute(select(User).where(User.email.in_(normalized)).order_by(User.id))
    return list(result.scalars().all())


async def create_user(
    db: AsyncSession,
    email: str,
    password_hash: str,
    username: str | None = None,
) -> User:
    """
    Insert a user row.

    Uniqueness of email and username is left to the table constraints.

    Raises:
        Conflict: If the email or username is already taken.
    """
    user = User(
        email=normalize_email(email),
        username=username,
        password_hash=password_hash,
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        msg = "Email or username already registered"
        raise Conflict(msg) from e
    return user


async def search_users(db: AsyncSession, query: str, limit: int = 10) -> list[User]:
    """Case-insensitive substring match on username or email."""
    q = query.strip().lower()
    if not q:
        return []
    pattern = f"%{q}%"
    result = await db.execute(
        select(User)
        .where(or_(func.lower(User.username).like(pattern), User.email.like(pattern)))
        .order_by(User.id)
        .limit(limit)
    )
    return list(result.scalars().all())
