"""
Kindred — Chat, Message and MessageRead models.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.clock import utcnow


class Chat(Base):
    __tablename__ = "chats"
    __table_args__ = (
        UniqueConstraint("participant_a_id", "participant_b_id", name="uq_chat_pair"),
        CheckConstraint(
            "participant_a_id <> participant_b_id", name="ck_chat_distinct_participants"
        ),
        Index("ix_chats_last_message_at", "last_message_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    participant_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    participant_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    participant_a: Mapped["User"] = relationship(
        "User", foreign_keys=[participant_a_id], lazy="selectin"
    )
    participant_b: Mapped["User"] = relationship(
        "User", foreign_keys=[participant_b_id], lazy="selectin"
    )

    @property
    def participants(self) -> list["User"]:
        return [self.participant_a, self.participant_b]

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.participant_a_id, self.participant_b_id)

    def __repr__(self) -> str:
        return f"<Chat {self.participant_a_id} <-> {self.participant_b_id} n={self.message_count}>"


class Message(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint("chat_id", "sequence", name="uq_message_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    chat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="1-based position within the chat"
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    sender: Mapped["User"] = relationship("User", lazy="selectin")
    reads: Mapped[list["MessageRead"]] = relationship(
        "MessageRead", lazy="selectin", cascade="all, delete-orphan"
    )

    @property
    def read_by(self) -> list[uuid.UUID]:
        return [r.user_id for r in self.reads]

    def __repr__(self) -> str:
        return f"<Message chat={self.chat_id} seq={self.sequence} sender={self.sender_id}>"


class MessageRead(Base):
    __tablename__ = "message_reads"

    message_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chat_messages.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
