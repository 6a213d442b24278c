"""FastAPI authentication dependencies."""

from __future__ import annotations

from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from campus.auth.service import authenticate
from campus.errors import Unauthorized

_bearer = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> int:
    """
    Verify the bearer access token and return the caller's user id.

    Only the signature and expiry are checked; handlers receive the id and
    pass it explicitly to the services.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Missing bearer token")
    return authenticate(credentials.credentials)
