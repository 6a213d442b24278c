"""Shared test fixtures.

Every test gets a fresh SQLite database file and an app with Redis left
uninitialized, so rate limiting passes requests through unless a test
installs a fake client.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from contextlib import aclosing
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("CAMPUS_JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256-signing")
os.environ.setdefault("CAMPUS_LOG_FORMAT", "console")

from campus.auth.jwt import reset_keys  # noqa: E402
from campus.config import get_settings  # noqa: E402
from campus.database import close_db, get_engine, get_session, init_db  # noqa: E402
from campus.db import models  # noqa: E402, F401
from campus.db.base import Base  # noqa: E402
from campus.main import create_app  # noqa: E402
from campus.redis_client import close_redis  # noqa: E402

DEFAULT_PASSWORD = "pw12345678"

MakeUser = Callable[..., Awaitable[dict]]


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Point the app at a throwaway database and reload settings."""
    monkeypatch.setenv("CAMPUS_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'campus.db'}")
    get_settings.cache_clear()
    reset_keys()
    yield
    get_settings.cache_clear()
    reset_keys()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Initialize the engine and create the schema."""
    await close_redis()
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against a freshly created app."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for service-level tests and assertions."""
    async with aclosing(get_session()) as sessions:
        async for session in sessions:
            yield session
            break


@pytest_asyncio.fixture
async def make_user(client: AsyncClient) -> MakeUser:
    """Factory: register and log in a user, return ids, tokens and auth headers."""

    async def _make(email: str, password: str = DEFAULT_PASSWORD, username: str | None = None) -> dict:
        payload: dict[str, str] = {"email": email, "password": password}
        if username:
            payload["username"] = username
        response = await client.post("/api/v1/auth/register", json=payload)
        assert response.status_code == 201, response.text

        response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        data = response.json()
        return {
            "user_id": data["user"]["id"],
            "email": email,
            "password": password,
            "access_token": data["access_token"],
            "refresh_token": data["refresh_token"],
            "headers": {"Authorization": f"Bearer {data['access_token']}"},
        }

    return _make


@pytest_asyncio.fixture
async def alice(make_user: MakeUser) -> dict:
    return await make_user("alice@campus.edu", username="alice")


@pytest_asyncio.fixture
async def bob(make_user: MakeUser) -> dict:
    return await make_user("bob@campus.edu", username="bob")


@pytest_asyncio.fixture
async def carol(make_user: MakeUser) -> dict:
    return await make_user("carol@campus.edu", username="carol")
