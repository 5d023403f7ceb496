"""
Kindred — Swipe & Match Engine

Tracks each user's decision about every other user and turns mutual
interest into a match:

  swipe left   → target recorded as disliked (may reappear in the feed)
  swipe right  → target recorded as liked, or a match if the target
                 already liked the actor
  spin winner  → match forced without a like-check, costs one spin
  connect      → same as a spin winner, from the spinner's "connect" button

Every swipe and every match creation runs under ``_locked_pair``:
  1. Canonicalise the pair (low id, high id).
  2. Hold the per-pair Redis lock when Redis is configured.
  3. Lock both user rows in canonical order.
Inside it, ``_create_match`` removes both directions' swipe rows and
inserts the match if absent, in a SAVEPOINT.  A unique violation from a
concurrent creator rolls back the savepoint and is retried, so the retry
sees the winner's row.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from app.config import Settings, get_settings
from app.errors import (
    MatchInconsistencyError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from app.models.match import SWIPE_DIRECTIONS, Match, Swipe, ordered_pair
from app.models.user import User
from app.redis_client import get_redis
from app.utils.locks import pair_lock

logger = structlog.get_logger("kindred.matching_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

_CONFLICT_RETRY_ATTEMPTS = 3


def _conflict_retrying() -> AsyncRetrying:
    """Retry policy for unique-constraint races on pair rows."""
    return AsyncRetrying(
        retry=retry_if_exception_type(IntegrityError),
        stop=stop_after_attempt(_CONFLICT_RETRY_ATTEMPTS),
        reraise=True,
    )


class MatchingService:
    """Swipe, spin and connect operations over the swipe/match tables.

    ``redis_client`` may be injected for tests; otherwise the shared client
    from ``app.redis_client`` is used (``None`` when Redis is not configured).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        redis_client: Any | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.redis_client = redis_client

    # ── Public API ────────────────────────────────────────────────────────

    async def swipe(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        direction: str,
        db_session: AsyncSession,
    ) -> dict[str, Any]:
        """Record a swipe and decrement the actor's swipe quota.

        Returns
        -------
        dict
            ``matched`` and the remaining ``swipe_limit``.

        Raises
        ------
        ValidationError
            Unknown direction or a self-swipe.
        NotFoundError
            Actor or target does not exist.
        QuotaExceededError
            The actor has no swipes left.
        """
        log = logger.bind(actor_id=str(actor_id), target_id=str(target_id))
        actor, _ = await self._load_pair(actor_id, target_id, direction, db_session)

        if actor.swipe_limit <= 0:
            log.info("swipe_quota_exhausted")
            raise QuotaExceededError("No swipes left for today")

        if await self._find_match(actor_id, target_id, db_session) is not None:
            log.info("swipe_already_matched")
            return {"matched": True, "swipe_limit": actor.swipe_limit}

        matched = await self._apply_swipe(actor_id, target_id, direction, db_session)
        remaining = await self._decrement(actor_id, User.swipe_limit, db_session)

        log.info("swipe_recorded", direction=direction, matched=matched, swipe_limit=remaining)
        return {"matched": matched, "swipe_limit": remaining}

    async def spin_resolve(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        is_winner: bool,
        db_session: AsyncSession,
        direction: str | None = None,
    ) -> dict[str, Any]:
        """Resolve a spinner round.

        A winner is matched unconditionally and costs one spin.  Anyone
        else is swiped with ``direction`` without touching either quota.
        """
        if is_winner:
            return await self._forced_match(actor_id, target_id, "spin", db_session)

        actor, _ = await self._load_pair(actor_id, target_id, direction, db_session)
        if await self._find_match(actor_id, target_id, db_session) is not None:
            return {"matched": True, "spin_limit": actor.spin_limit}
        matched = await self._apply_swipe(actor_id, target_id, direction, db_session)
        logger.info(
            "spin_swipe_recorded",
            actor_id=str(actor_id),
            target_id=str(target_id),
            direction=direction,
            matched=matched,
        )
        return {"matched": matched, "spin_limit": actor.spin_limit}

    async def connect_user(
        self,
        actor_id: uuid.UUID,
        winner_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> dict[str, Any]:
        """Connect the actor with a spinner winner; costs one spin like a
        winning spin does."""
        return await self._forced_match(actor_id, winner_id, "connect", db_session)

    async def liked_by(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        """Users who currently have a right swipe on ``user_id``; banned
        accounts are left out."""
        await self._get_user(user_id, db_session)

        stmt = (
            select(User)
            .join(Swipe, Swipe.swiper_id == User.id)
            .where(
                Swipe.target_id == user_id,
                Swipe.direction == "right",
                User.status != "banned",
            )
            .order_by(Swipe.created_at, User.id)
        )
        result = await db_session.execute(stmt)
        return [
            {
                "id": u.id,
                "name": u.name,
                "username": u.username,
                "profile_picture": u.profile_picture,
            }
            for u in result.scalars().all()
        ]

    # ── Forced matches ────────────────────────────────────────────────────

    async def _forced_match(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        source: str,
        db_session: AsyncSession,
    ) -> dict[str, Any]:
        """Match without a like-check, paid for with one spin.

        An existing match is returned as-is and costs nothing.
        """
        log = logger.bind(actor_id=str(actor_id), target_id=str(target_id), source=source)
        actor, _ = await self._load_pair(actor_id, target_id, "right", db_session)

        if await self._find_match(actor_id, target_id, db_session) is not None:
            log.info("forced_match_exists")
            return {"matched": True, "spin_limit": actor.spin_limit}

        if actor.spin_limit <= 0:
            log.info("spin_quota_exhausted")
            raise QuotaExceededError("No spins left for today")

        match = await self._establish_match(actor_id, target_id, source, db_session)
        remaining = await self._decrement(actor_id, User.spin_limit, db_session)

        log.info("forced_match_established", match_id=str(match.id), spin_limit=remaining)
        return {"matched": True, "spin_limit": remaining}

    # ── Swipe state ───────────────────────────────────────────────────────

    async def _apply_swipe(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        direction: str,
        db_session: AsyncSession,
    ) -> bool:
        """Move the actor's decision about the target; return True on a match.

        The reverse-like check and the write that follows run under the
        pair lock, so two crossing right swipes cannot both miss each other.
        """
        async with self._locked_pair(actor_id, target_id, db_session):
            if await self._find_match(actor_id, target_id, db_session) is not None:
                return True

            if direction == "right" and await self._has_liked(target_id, actor_id, db_session):
                await self._create_match(actor_id, target_id, "swipe", db_session)
                return True

            async for attempt in _conflict_retrying():
                with attempt:
                    async with db_session.begin_nested():
                        await self._upsert_swipe(actor_id, target_id, direction, db_session)
        return False

    @staticmethod
    async def _has_liked(
        swiper_id: uuid.UUID,
        target_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> bool:
        result = await db_session.execute(
            select(Swipe.id).where(
                Swipe.swiper_id == swiper_id,
                Swipe.target_id == target_id,
                Swipe.direction == "right",
            )
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def _upsert_swipe(
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        direction: str,
        db_session: AsyncSession,
    ) -> None:
        result = await db_session.execute(
            select(Swipe).where(Swipe.swiper_id == actor_id, Swipe.target_id == target_id)
        )
        swipe = result.scalar_one_or_none()
        if swipe is None:
            db_session.add(Swipe(swiper_id=actor_id, target_id=target_id, direction=direction))
        else:
            swipe.direction = direction
        await db_session.flush()

    # ── Pair serialisation ────────────────────────────────────────────────

    @asynccontextmanager
    async def _locked_pair(
        self,
        first_id: uuid.UUID,
        second_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> AsyncIterator[None]:
        """Hold the Redis pair lock (when configured) and both user rows.

        Row locks last until the surrounding transaction ends; the Redis
        lock is released when the block exits.
        """
        low, high = ordered_pair(first_id, second_id)
        redis_client = self.redis_client if self.redis_client is not None else get_redis()
        async with pair_lock(
            redis_client, low, high, timeout=self.settings.MATCH_LOCK_TIMEOUT_SECONDS
        ):
            await self._lock_user_rows(low, high, db_session)
            yield

    @staticmethod
    async def _lock_user_rows(
        low: uuid.UUID,
        high: uuid.UUID,
        db_session: AsyncSession,
    ) -> None:
        await db_session.execute(
            select(User.id)
            .where(User.id.in_([low, high]))
            .order_by(User.id)
            .with_for_update()
        )

    # ── Match creation ────────────────────────────────────────────────────

    async def _establish_match(
        self,
        first_id: uuid.UUID,
        second_id: uuid.UUID,
        source: str,
        db_session: AsyncSession,
    ) -> Match:
        """Create the match for an unordered pair, or return the existing one."""
        async with self._locked_pair(first_id, second_id, db_session):
            return await self._create_match(first_id, second_id, source, db_session)

    async def _create_match(
        self,
        first_id: uuid.UUID,
        second_id: uuid.UUID,
        source: str,
        db_session: AsyncSession,
    ) -> Match:
        """Insert the match; the caller must hold ``_locked_pair``.

        Raises MatchInconsistencyError if the pair still conflicts after the
        retry budget is spent.
        """
        low, high = ordered_pair(first_id, second_id)
        log = logger.bind(user_a_id=str(low), user_b_id=str(high), source=source)

        try:
            async for attempt in _conflict_retrying():
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        log.warning(
                            "match_insert_retry",
                            attempt_number=attempt.retry_state.attempt_number,
                        )
                    async with db_session.begin_nested():
                        match, created = await self._insert_match_if_absent(
                            low, high, source, db_session
                        )
        except IntegrityError as exc:
            log.error("match_insert_exhausted", attempts=_CONFLICT_RETRY_ATTEMPTS)
            raise MatchInconsistencyError() from exc

        if created:
            log.info("match_established", match_id=str(match.id))
        else:
            log.info("match_exists", match_id=str(match.id))
        return match

    @staticmethod
    async def _insert_match_if_absent(
        low: uuid.UUID,
        high: uuid.UUID,
        source: str,
        db_session: AsyncSession,
    ) -> tuple[Match, bool]:
        await db_session.execute(
            delete(Swipe).where(
                or_(
                    and_(Swipe.swiper_id == low, Swipe.target_id == high),
                    and_(Swipe.swiper_id == high, Swipe.target_id == low),
                )
            )
        )

        result = await db_session.execute(
            select(Match).where(Match.user_a_id == low, Match.user_b_id == high)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing, False

        match = Match(user_a_id=low, user_b_id=high, source=source)
        db_session.add(match)
        await db_session.flush()
        return match, True

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _load_pair(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        direction: str | None,
        db_session: AsyncSession,
    ) -> tuple[User, User]:
        if direction not in SWIPE_DIRECTIONS:
            raise ValidationError("Direction must be 'left' or 'right'")
        if actor_id == target_id:
            raise ValidationError("You cannot swipe on yourself")

        actor = await self._get_user(actor_id, db_session)
        target = await self._get_user(target_id, db_session, "Target user not found")
        return actor, target

    @staticmethod
    async def _get_user(
        user_id: uuid.UUID,
        db_session: AsyncSession,
        message: str = "User not found",
    ) -> User:
        result = await db_session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(message)
        return user

    @staticmethod
    async def _find_match(
        first_id: uuid.UUID,
        second_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Match | None:
        low, high = ordered_pair(first_id, second_id)
        result = await db_session.execute(
            select(Match).where(Match.user_a_id == low, Match.user_b_id == high)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _decrement(user_id: uuid.UUID, column, db_session: AsyncSession) -> int:
        """Atomically subtract one from a quota column and return the new value."""
        await db_session.execute(
            update(User).where(User.id == user_id).values({column: column - 1})
        )
        result = await db_session.execute(select(column).where(User.id == user_id))
        return result.scalar_one()
