"""
Kindred — Candidate feed generation.

Builds the swipeable pool for a user:
  1. Map ``interested_in`` to a set of acceptable genders.
  2. Exclude the user, everyone they liked and everyone they matched.
     Disliked users are *not* excluded and may come back around.
  3. Query profiles with a picture and profiles without one separately,
     paginating each with the same offset/limit.
  4. Shuffle each group independently and return pictured profiles first.
"""

from __future__ import annotations

import random
import uuid
from typing import Any

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.errors import NotFoundError, ValidationError
from app.models.match import Match, Swipe
from app.models.user import User

logger = structlog.get_logger("kindred.feed_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

_GENDER_FILTERS: dict[str, tuple[str, ...]] = {
    "Male": ("Male",),
    "Female": ("Female",),
    "Both": ("Male", "Female", "Other"),
}

_DEFAULT_SPINNER_NAME = "Name not available"


def gender_filter_for(interested_in: str | None) -> tuple[str, ...]:
    """Genders a user with this preference should see.

    Unknown or unset preferences yield an empty filter, and therefore an
    empty feed.
    """
    return _GENDER_FILTERS.get(interested_in or "", ())


class FeedService:
    """Candidate feed and spinner pool.

    ``rng`` is injectable so tests can seed the shuffle.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.rng = rng or random.Random()

    # ── Public API ────────────────────────────────────────────────────────

    async def get_feed(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        page: int = 1,
        limit: int | None = None,
    ) -> list[User]:
        """Return one page of candidates: shuffled pictured profiles first,
        then shuffled profiles without a picture.

        Each group is paginated independently, so a page holds up to
        ``2 * limit`` users.
        """
        limit = limit or self.settings.FEED_DEFAULT_LIMIT
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive integers")
        limit = min(limit, self.settings.FEED_MAX_LIMIT)

        log = logger.bind(user_id=str(user_id))
        user = await self._get_user(user_id, db_session)

        genders = gender_filter_for(user.interested_in)
        if not genders:
            log.info("feed_empty_gender_filter", interested_in=user.interested_in)
            return []

        base_filters = [
            *self._exclusion_filters(user_id),
            User.name.is_not(None),
            User.name != "",
            User.dob.is_not(None),
            User.gender.in_(genders),
            User.interested_in.is_not(None),
        ]
        has_picture = and_(User.profile_picture.is_not(None), User.profile_picture != "")
        no_picture = or_(User.profile_picture.is_(None), User.profile_picture == "")

        offset = (page - 1) * limit
        with_picture = await self._fetch_page(base_filters + [has_picture], offset, limit, db_session)
        without_picture = await self._fetch_page(base_filters + [no_picture], offset, limit, db_session)

        self.rng.shuffle(with_picture)
        self.rng.shuffle(without_picture)

        log.info(
            "feed_generated",
            page=page,
            limit=limit,
            with_picture=len(with_picture),
            without_picture=len(without_picture),
        )
        return with_picture + without_picture

    async def get_spinner_candidates(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        """Return up to ``SPINNER_CANDIDATE_LIMIT`` candidates for the spinner
        wheel, with display defaults filled in."""
        user = await self._get_user(user_id, db_session)

        genders = gender_filter_for(user.interested_in)
        if not genders:
            return []

        stmt = (
            select(User)
            .where(
                *self._exclusion_filters(user_id),
                User.dob.is_not(None),
                User.gender.in_(genders),
            )
            .order_by(User.created_at, User.id)
            .limit(self.settings.SPINNER_CANDIDATE_LIMIT)
        )
        result = await db_session.execute(stmt)
        candidates = result.scalars().all()

        logger.info("spinner_candidates", user_id=str(user_id), count=len(candidates))
        return [
            {
                "id": c.id,
                "name": c.name or _DEFAULT_SPINNER_NAME,
                "profile_picture": c.profile_picture or self.settings.PLACEHOLDER_PROFILE_PICTURE,
            }
            for c in candidates
        ]

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _get_user(self, user_id: uuid.UUID, db_session: AsyncSession) -> User:
        result = await db_session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def _exclusion_filters(user_id: uuid.UUID) -> list:
        """Self, liked and matched users; banned accounts are never shown."""
        liked = select(Swipe.target_id).where(
            Swipe.swiper_id == user_id, Swipe.direction == "right"
        )
        matched_as_a = select(Match.user_b_id).where(Match.user_a_id == user_id)
        matched_as_b = select(Match.user_a_id).where(Match.user_b_id == user_id)
        return [
            User.id != user_id,
            User.id.not_in(liked),
            User.id.not_in(matched_as_a),
            User.id.not_in(matched_as_b),
            User.status != "banned",
        ]

    @staticmethod
    async def _fetch_page(
        filters: list,
        offset: int,
        limit: int,
        db_session: AsyncSession,
    ) -> list[User]:
        stmt = (
            select(User)
            .where(*filters)
            .order_by(User.created_at, User.id)
            .offset(offset)
            .limit(limit)
        )
        result = await db_session.execute(stmt)
        return list(result.scalars().all())
