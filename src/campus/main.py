"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from campus.auth.router import router as auth_router
from campus.config import get_settings
from campus.conversations.router import router as conversations_router
from campus.database import close_db, init_db
from campus.health.router import router as health_router
from campus.messages.router import router as messages_router
from campus.middleware import setup_middleware
from campus.questions.router import router as questions_router
from campus.redis_client import close_redis, init_redis
from campus.studyathons.router import router as studyathons_router
from campus.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Campus API",
        description="Campus messaging: direct messages, group chats, study-a-thons and a Q&A board",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(conversations_router)
    app.include_router(messages_router)
    app.include_router(studyathons_router)
    app.include_router(questions_router)

    return app


app = create_app()
