"""
Kindred — Chat store.

One chat per unordered pair of users, created lazily.  Messages carry a
per-chat sequence number that is the total order of the conversation;
timestamps can tie, sequences cannot.  Sequencing is serialised by locking
the chat row while a message is appended.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, ValidationError
from app.models.chat import Chat, Message, MessageRead
from app.models.match import ordered_pair
from app.models.user import User
from app.utils.clock import utcnow

logger = structlog.get_logger("kindred.chat_service")


def _participant_filter(user_id: uuid.UUID):
    return or_(Chat.participant_a_id == user_id, Chat.participant_b_id == user_id)


class ChatService:
    """Chat creation, message posting and read tracking."""

    # ── Chats ─────────────────────────────────────────────────────────────

    async def start_or_get_chat(
        self,
        user_id: uuid.UUID,
        target_user_id: str | uuid.UUID,
        db_session: AsyncSession,
    ) -> Chat:
        """Return the chat between the two users, creating it if needed.

        Calling it again, or from the other side, returns the same chat.
        """
        try:
            target_id = (
                target_user_id
                if isinstance(target_user_id, uuid.UUID)
                else uuid.UUID(str(target_user_id))
            )
        except ValueError as exc:
            raise ValidationError("Invalid target user id") from exc

        if target_id == user_id:
            raise ValidationError("You cannot start a chat with yourself")

        target = await db_session.execute(select(User.id).where(User.id == target_id))
        if target.scalar_one_or_none() is None:
            raise NotFoundError("Target user not found")

        low, high = ordered_pair(user_id, target_id)
        log = logger.bind(participant_a_id=str(low), participant_b_id=str(high))

        chat = await self._find_chat(low, high, db_session)
        if chat is None:
            try:
                async with db_session.begin_nested():
                    chat = Chat(participant_a_id=low, participant_b_id=high)
                    db_session.add(chat)
                    await db_session.flush()
                log.info("chat_created", chat_id=str(chat.id))
            except IntegrityError:
                # Concurrent creator won; use its row
                log.info("chat_create_race")
                chat = await self._find_chat(low, high, db_session)
                if chat is None:
                    raise

        await db_session.refresh(chat, attribute_names=["participant_a", "participant_b"])
        return chat

    async def list_chats(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        """All of the user's chats, most recently active first, with the
        last message and the number of messages the user has not read."""
        result = await db_session.execute(
            select(Chat)
            .where(_participant_filter(user_id))
            .order_by(Chat.last_message_at.desc(), Chat.id)
            .execution_options(populate_existing=True)
        )
        chats = list(result.scalars().all())
        if not chats:
            return []
        chat_ids = [c.id for c in chats]

        unread_result = await db_session.execute(
            select(Message.chat_id, func.count(Message.id))
            .where(
                Message.chat_id.in_(chat_ids),
                ~exists().where(
                    MessageRead.message_id == Message.id,
                    MessageRead.user_id == user_id,
                ),
            )
            .group_by(Message.chat_id)
        )
        unread = dict(unread_result.all())

        latest = (
            select(Message.chat_id, func.max(Message.sequence).label("sequence"))
            .where(Message.chat_id.in_(chat_ids))
            .group_by(Message.chat_id)
            .subquery()
        )
        last_result = await db_session.execute(
            select(Message)
            .join(
                latest,
                (Message.chat_id == latest.c.chat_id) & (Message.sequence == latest.c.sequence),
            )
            .execution_options(populate_existing=True)
        )
        last_messages = {m.chat_id: m for m in last_result.scalars().all()}

        return [
            {
                "id": chat.id,
                "participants": chat.participants,
                "last_message_at": chat.last_message_at,
                "created_at": chat.created_at,
                "unread_count": unread.get(chat.id, 0),
                "last_message": last_messages.get(chat.id),
            }
            for chat in chats
        ]

    # ── Messages ──────────────────────────────────────────────────────────

    async def post_message(
        self,
        chat_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str | None,
        db_session: AsyncSession,
    ) -> Message:
        """Append a message to the chat.

        Raises
        ------
        ValidationError
            Content is empty after trimming; nothing is written.
        NotFoundError
            Unknown chat, or the sender is not one of its participants.
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content is required")

        result = await db_session.execute(
            select(Chat)
            .where(Chat.id == chat_id, _participant_filter(sender_id))
            .with_for_update()
        )
        chat = result.scalar_one_or_none()
        if chat is None:
            raise NotFoundError("Chat not found")

        now = utcnow()
        chat.message_count += 1
        chat.last_message_at = now
        message = Message(
            chat_id=chat.id,
            sequence=chat.message_count,
            sender_id=sender_id,
            content=text,
            created_at=now,
        )
        db_session.add(message)
        await db_session.flush()
        await db_session.refresh(message, attribute_names=["sender", "reads"])

        logger.info(
            "message_posted",
            chat_id=str(chat.id),
            sender_id=str(sender_id),
            sequence=message.sequence,
        )
        return message

    async def list_messages(
        self,
        chat_id: uuid.UUID,
        viewer_id: uuid.UUID,
        db_session: AsyncSession,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Message]:
        """Messages in sequence order; the full history unless ``limit`` is set."""
        if offset < 0 or (limit is not None and limit < 1):
            raise ValidationError("offset must be >= 0 and limit >= 1")

        await self._get_participant_chat(chat_id, viewer_id, db_session)

        stmt = (
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.sequence)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await db_session.execute(stmt)
        return list(result.scalars().all())

    async def mark_read(
        self,
        chat_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> int:
        """Mark every message in the chat as read by the user.

        Returns the number of messages newly marked; repeating the call
        returns 0.
        """
        await self._get_participant_chat(chat_id, user_id, db_session)

        result = await db_session.execute(
            select(Message.id).where(
                Message.chat_id == chat_id,
                ~exists().where(
                    MessageRead.message_id == Message.id,
                    MessageRead.user_id == user_id,
                ),
            )
        )
        unread_ids = list(result.scalars().all())

        now = utcnow()
        db_session.add_all(
            MessageRead(message_id=message_id, user_id=user_id, read_at=now)
            for message_id in unread_ids
        )
        await db_session.flush()

        logger.info("chat_marked_read", chat_id=str(chat_id), user_id=str(user_id), marked=len(unread_ids))
        return len(unread_ids)

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    async def _find_chat(
        low: uuid.UUID,
        high: uuid.UUID,
        db_session: AsyncSession,
    ) -> Chat | None:
        result = await db_session.execute(
            select(Chat).where(Chat.participant_a_id == low, Chat.participant_b_id == high)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _get_participant_chat(
        chat_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Chat:
        result = await db_session.execute(
            select(Chat).where(Chat.id == chat_id, _participant_filter(user_id))
        )
        chat = result.scalar_one_or_none()
        if chat is None:
            raise NotFoundError("Chat not found")
        return chat
