"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Email registration request."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    username: str | None = Field(None, min_length=3, max_length=32)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class LoginRequest(BaseModel):
    """Login with email + password."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class RefreshRequest(BaseModel):
    """Refresh token rotation request."""

    refresh_token: str = Field(..., min_length=20)


class LogoutRequest(BaseModel):
    """Logout (revoke refresh token)."""

    refresh_token: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """The caller's own profile."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: str | None = None
    created_at: datetime


class TokenPairResponse(BaseModel):
    """Access + refresh pair returned by refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginResponse(TokenPairResponse):
    """Login response carries the user as well."""

    user: UserResponse


class LogoutResponse(BaseModel):
    status: str


class LogoutAllResponse(BaseModel):
    status: str
    revoked_count: int
