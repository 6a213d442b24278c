"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campus.auth.dependencies import get_current_user_id
from campus.auth.schemas import (
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserResponse,
)
from campus.auth.service import (
    get_me,
    login,
    refresh_session,
    register_user,
    revoke_all_sessions,
    revoke_session,
)
from campus.config import get_settings
from campus.database import get_session

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _client_meta(request: Request) -> tuple[str | None, str | None]:
    """(user agent, ip) recorded on new sessions."""
    return request.headers.get("user-agent"), request.client.host if request.client else None


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Register with email + password (+ optional username)."""
    user = await register_user(db, email=body.email, password=body.password, username=body.username)
    await db.commit()
    return UserResponse.model_validate(user)


@router.post("/login", response_model=LoginResponse)
async def login_endpoint(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> LoginResponse:
    """Login with email + password."""
    user_agent, ip_address = _client_meta(request)
    tokens, user = await login(db, body.email, body.password, user_agent=user_agent, ip_address=ip_address)
    await db.commit()
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    body: RefreshRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> TokenPairResponse:
    """Rotate refresh token."""
    user_agent, ip_address = _client_meta(request)
    tokens = await refresh_session(db, body.refresh_token, user_agent=user_agent, ip_address=ip_address)
    await db.commit()
    return TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    body: LogoutRequest,
    db: AsyncSession = Depends(get_session),
) -> LogoutResponse:
    """Revoke a refresh token. Unknown or already revoked tokens are fine."""
    await revoke_session(db, body.refresh_token)
    await db.commit()
    return LogoutResponse(status="logged_out")


@router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> LogoutAllResponse:
    """Revoke all refresh tokens for the current user."""
    count = await revoke_all_sessions(db, user_id)
    await db.commit()
    return LogoutAllResponse(status="all_sessions_revoked", revoked_count=count)


@router.get("/me", response_model=UserResponse)
async def me(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Current user's profile."""
    return UserResponse.model_validate(await get_me(db, user_id))
