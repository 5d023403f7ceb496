"""
Kindred — Shared Redis client.

Redis is optional: when ``REDIS_URL`` is empty the client stays ``None`` and
callers fall back to database row locks alone.
"""

from __future__ import annotations

import structlog

from app.config import get_settings

logger = structlog.get_logger("kindred.redis")

_redis_client = None


async def connect_redis() -> None:
    global _redis_client
    import redis.asyncio as aioredis

    settings = get_settings()
    if not settings.REDIS_URL:
        logger.info("redis_skip", reason="REDIS_URL not configured")
        return

    _redis_client = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis_connected", url=settings.REDIS_URL)


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_closed")


def get_redis():
    """Return the shared Redis client, or ``None`` when not configured."""
    return _redis_client
