"""Liveness, readiness and version probes (no auth, no rate limit)."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus.config import get_settings
from campus.database import get_session
from campus.errors import Unavailable, error_body
from campus.redis_client import redis_status

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready", response_model=None)
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object] | JSONResponse:
    """Ready when the database answers.

    The database is required: without it the probe answers 503 ``unavailable``.
    Redis only backs rate limiting, so losing it leaves the service up but
    ``degraded``.
    """
    checks: dict[str, str] = {}
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {type(exc).__name__}"
    checks["redis"] = await redis_status()

    if checks["database"] != "ok":
        down = Unavailable("Database unreachable")
        return JSONResponse(
            status_code=down.status_code,
            content={**error_body(down.kind, down.message), "checks": checks},
        )
    status = "ready" if checks["redis"] == "ok" else "degraded"
    return {"status": status, "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
