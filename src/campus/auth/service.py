"""
Session manager.

Handles registration, login, refresh-token rotation, logout and access token
authentication. Refresh secrets are opaque random strings; only their SHA-256
is ever written to ``auth_sessions``.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import jwt
import structlog
from sqlalchemy import select, update

from campus.auth.jwt import create_access_token, verify_token
from campus.auth.password import (
    PasswordStrengthError,
    burn_verification,
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from campus.config import get_settings
from campus.db.models import AuthSession, User
from campus.errors import InvalidRequest, Unauthorized
from campus.users.service import create_user, get_user_by_email, get_user_by_id

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

_INVALID_CREDENTIALS = "Invalid email or password"


@dataclass(frozen=True)
class TokenPair:
    """A freshly minted access token and refresh secret."""

    access_token: str
    refresh_token: str


def hash_refresh_token(raw_token: str) -> str:
    """SHA-256 hex digest used as the stored lookup key."""
    return hashlib.sha256(raw_token.encode()).hexdigest()


def _make_refresh_token() -> str:
    return secrets.token_urlsafe(48)


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    username: str | None = None,
) -> User:
    """
    Register a new user with email + password.

    Raises:
        InvalidRequest: If the password is out of bounds.
        Conflict: If the email or username already exists.
    """
    try:
        validate_password_strength(password)
    except PasswordStrengthError as e:
        raise InvalidRequest(str(e)) from e

    user = await create_user(db, email=email, password_hash=hash_password(password), username=username)
    logger.info("user_registered", user_id=user.id)
    return user


async def authenticate_credentials(db: AsyncSession, email: str, password: str) -> User:
    """
    Check email + password.

    Raises:
        Unauthorized: Same message whether the email is unknown or the password wrong.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        burn_verification(password)
        raise Unauthorized(_INVALID_CREDENTIALS)

    if not verify_password(password, user.password_hash):
        logger.info("login_failed", user_id=user.id)
        raise Unauthorized(_INVALID_CREDENTIALS)

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        await db.flush()
        logger.info("password_rehashed", user_id=user.id)

    return user


async def _open_session(
    db: AsyncSession,
    user_id: int,
    user_agent: str | None,
    ip_address: str | None,
) -> TokenPair:
    """Mint an access token and persist a new refresh session."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    refresh_token = _make_refresh_token()
    db.add(
        AuthSession(
            user_id=user_id,
            refresh_token_hash=hash_refresh_token(refresh_token),
            user_agent=user_agent[:512] if user_agent else None,
            ip_address=ip_address,
            created_at=now,
            expires_at=now + timedelta(days=settings.jwt_refresh_token_expire_days),
        )
    )
    await db.flush()
    return TokenPair(access_token=create_access_token(user_id), refresh_token=refresh_token)


async def login(
    db: AsyncSession,
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[TokenPair, User]:
    """Verify credentials and open a new session."""
    user = await authenticate_credentials(db, email, password)
    tokens = await _open_session(db, user.id, user_agent, ip_address)
    logger.info("user_logged_in", user_id=user.id)
    return tokens, user


# ---------------------------------------------------------------------------
# Refresh sessions
# ---------------------------------------------------------------------------


async def get_session_by_token(db: AsyncSession, raw_token: str) -> AuthSession | None:
    """Look up a session by the hash of the presented secret."""
    result = await db.execute(
        select(AuthSession).where(AuthSession.refresh_token_hash == hash_refresh_token(raw_token))
    )
    return result.scalar_one_or_none()


async def refresh_session(
    db: AsyncSession,
    raw_token: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> TokenPair:
    """
    Rotate a refresh secret: revoke the matched session, open a new one.

    Raises:
        Unauthorized: If the secret is unknown, revoked, expired, or a
            concurrent refresh already rotated it.
    """
    session = await get_session_by_token(db, raw_token)
    if session is None:
        raise Unauthorized("Invalid refresh token")
    if session.revoked_at is not None:
        logger.warning("refresh_token_reuse", session_id=session.id, user_id=session.user_id)
        raise Unauthorized("Session revoked")

    now = datetime.now(timezone.utc)
    if session.expires_at <= now:
        raise Unauthorized("Session expired")

    # Conditional revoke: only one concurrent rotation can flip revoked_at.
    result = await db.execute(
        update(AuthSession)
        .where(AuthSession.id == session.id)
        .where(AuthSession.revoked_at.is_(None))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Unauthorized("Session revoked")

    tokens = await _open_session(db, session.user_id, user_agent, ip_address)
    logger.info("session_rotated", old_session_id=session.id, user_id=session.user_id)
    return tokens


async def revoke_session(db: AsyncSession, raw_token: str) -> int:
    """Revoke live sessions matching the secret. Unknown tokens revoke nothing."""
    result = await db.execute(
        update(AuthSession)
        .where(AuthSession.refresh_token_hash == hash_refresh_token(raw_token))
        .where(AuthSession.revoked_at.is_(None))
        .values(revoked_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount  # type: ignore[return-value]


async def revoke_all_sessions(db: AsyncSession, user_id: int) -> int:
    """Revoke all live refresh sessions for a user. Returns count revoked."""
    result = await db.execute(
        update(AuthSession)
        .where(AuthSession.user_id == user_id)
        .where(AuthSession.revoked_at.is_(None))
        .values(revoked_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    logger.info("sessions_revoked", user_id=user_id, count=result.rowcount)
    return result.rowcount  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


def authenticate(access_token: str) -> int:
    """
    Resolve a bearer access token to a user id. No storage lookup.

    Raises:
        Unauthorized: On any signature, expiry, issuer or type failure.
    """
    try:
        payload = verify_token(access_token, expected_type="access")
        return int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError) as e:
        raise Unauthorized(str(e) or "Invalid token") from e


async def get_me(db: AsyncSession, user_id: int) -> User:
    """Return the caller's record."""
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise Unauthorized("User not found")
    return user
