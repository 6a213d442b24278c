"""Shared Redis client for rate-limit counters.

Redis is optional: when it was never set up or stops answering, rate limiting
steps aside and readiness reports ``degraded``.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from campus.config import get_settings

_client: redis.Redis | None = None


async def init_redis(url: str) -> None:
    global _client  # noqa: PLW0603
    settings = get_settings()
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Raises RuntimeError until ``init_redis`` has run."""
    if _client is None:
        msg = "Redis client is not set up"
        raise RuntimeError(msg)
    return _client


async def redis_status() -> str:
    """``ok``, or ``error: <reason>`` when Redis is missing or not answering."""
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError, OSError) as exc:
        return f"error: {exc}"
    return "ok"
