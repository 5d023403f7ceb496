"""
Kindred — Match list ordering and pinning.

Ordering is two-stage:
  1. Partition the user's matches (in match-creation order) into pinned and
     unpinned, pinned first.
  2. Stable-sort the result by the pair's last message, newest first.  A pair
     without a chat or without messages sorts as the oldest instant.

Recency therefore dominates; the pin partition only decides ties, which
includes every match that has no messages yet.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, ValidationError
from app.models.chat import Chat, Message
from app.models.match import Match, PinnedMatch, ordered_pair
from app.models.user import User
from app.utils.clock import as_utc

logger = structlog.get_logger("kindred.match_list_service")

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class MatchListService:
    """Ordered match list and pin toggling."""

    # ── Public API ────────────────────────────────────────────────────────

    async def list_matches(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        await self._get_user(user_id, db_session)

        result = await db_session.execute(
            select(Match)
            .where(or_(Match.user_a_id == user_id, Match.user_b_id == user_id))
            .order_by(Match.created_at, Match.id)
        )
        matches = list(result.scalars().all())
        if not matches:
            return []

        other_ids = [m.other_user_id(user_id) for m in matches]
        users_result = await db_session.execute(select(User).where(User.id.in_(other_ids)))
        users = {u.id: u for u in users_result.scalars().all()}

        pinned_ids = set(await self._pinned_ids(user_id, db_session))
        last_messages = await self._last_messages(user_id, db_session)

        pinned = [m for m in matches if m.other_user_id(user_id) in pinned_ids]
        unpinned = [m for m in matches if m.other_user_id(user_id) not in pinned_ids]

        entries = []
        for match in pinned + unpinned:
            other_id = match.other_user_id(user_id)
            other = users[other_id]
            last = last_messages.get(other_id)
            entries.append(
                {
                    "id": other_id,
                    "name": other.name,
                    "profile_picture": other.profile_picture,
                    "is_pinned": other_id in pinned_ids,
                    "matched_at": match.created_at,
                    "last_message": (
                        {
                            "content": last.content,
                            "sender_id": last.sender_id,
                            "created_at": last.created_at,
                        }
                        if last is not None
                        else None
                    ),
                }
            )

        entries.sort(
            key=lambda e: (
                as_utc(e["last_message"]["created_at"]) if e["last_message"] else _OLDEST
            ),
            reverse=True,
        )
        return entries

    async def toggle_pin(
        self,
        user_id: uuid.UUID,
        target_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> dict[str, Any]:
        """Unpin ``target_id`` if pinned, otherwise pin it at the end.

        Only current matches can be pinned.
        """
        log = logger.bind(user_id=str(user_id), target_id=str(target_id))
        await self._get_user(user_id, db_session)
        await self._get_user(target_id, db_session, "Target user not found")

        result = await db_session.execute(
            select(PinnedMatch).where(
                PinnedMatch.user_id == user_id, PinnedMatch.target_id == target_id
            )
        )
        pin = result.scalar_one_or_none()

        if pin is not None:
            await db_session.delete(pin)
            await db_session.flush()
            pinned = False
        else:
            low, high = ordered_pair(user_id, target_id)
            match = await db_session.execute(
                select(Match.id).where(Match.user_a_id == low, Match.user_b_id == high)
            )
            if match.scalar_one_or_none() is None:
                raise ValidationError("You can only pin your matches")

            max_position = await db_session.execute(
                select(func.max(PinnedMatch.position)).where(PinnedMatch.user_id == user_id)
            )
            position = (max_position.scalar_one() or 0) + 1
            db_session.add(PinnedMatch(user_id=user_id, target_id=target_id, position=position))
            await db_session.flush()
            pinned = True

        log.info("pin_toggled", pinned=pinned)
        return {
            "pinned": pinned,
            "pinned_matches": await self._pinned_ids(user_id, db_session),
        }

    # ── Helpers ──────────────────────────────────────────────────────────

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
    async def _pinned_ids(user_id: uuid.UUID, db_session: AsyncSession) -> list[uuid.UUID]:
        result = await db_session.execute(
            select(PinnedMatch.target_id)
            .where(PinnedMatch.user_id == user_id)
            .order_by(PinnedMatch.position)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _last_messages(
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> dict[uuid.UUID, Message]:
        """Latest message of each of the user's chats, keyed by the other participant."""
        latest = (
            select(Message.chat_id, func.max(Message.sequence).label("sequence"))
            .group_by(Message.chat_id)
            .subquery()
        )
        result = await db_session.execute(
            select(Chat, Message)
            .join(latest, latest.c.chat_id == Chat.id)
            .join(
                Message,
                (Message.chat_id == latest.c.chat_id) & (Message.sequence == latest.c.sequence),
            )
            .where(or_(Chat.participant_a_id == user_id, Chat.participant_b_id == user_id))
        )
        last: dict[uuid.UUID, Message] = {}
        for chat, message in result.all():
            other_id = (
                chat.participant_b_id if chat.participant_a_id == user_id else chat.participant_a_id
            )
            last[other_id] = message
        return last
