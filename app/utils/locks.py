"""Per-pair distributed lock used to serialise match creation."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from redis.exceptions import LockError

from app.errors import ConflictError
from app.models.match import ordered_pair

logger = structlog.get_logger("kindred.locks")


def pair_lock_name(first: uuid.UUID, second: uuid.UUID) -> str:
    low, high = ordered_pair(first, second)
    return f"kindred:match-lock:{low}:{high}"


@asynccontextmanager
async def pair_lock(
    redis_client: Any | None,
    first: uuid.UUID,
    second: uuid.UUID,
    timeout: float = 5.0,
) -> AsyncIterator[None]:
    """Hold a Redis lock on the unordered pair for the duration of the block.

    Without a Redis client the block runs unlocked; the database unique
    constraint on the pair still guarantees a single match row.
    """
    if redis_client is None:
        yield
        return

    name = pair_lock_name(first, second)
    lock = redis_client.lock(name, timeout=timeout, blocking_timeout=timeout)
    acquired = await lock.acquire()
    if not acquired:
        logger.warning("pair_lock_timeout", lock=name, timeout=timeout)
        raise ConflictError("Another update for this pair is in progress, try again")

    try:
        yield
    finally:
        try:
            await lock.release()
        except LockError:
            # Expired before release; the database constraint still holds.
            logger.warning("pair_lock_release_failed", lock=name)
