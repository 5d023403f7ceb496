"""
Kindred — Swipe, Match and PinnedMatch models.

A swipe row records one user's current decision about another; because the
pair is unique a target can never be liked and disliked at the same time.
A match row is stored once per unordered pair in canonical order
(``user_a_id < user_b_id``) so both sides always see the same state.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.clock import utcnow

SWIPE_DIRECTIONS = ("left", "right")
MATCH_SOURCES = ("swipe", "spin", "connect")


def ordered_pair(first: uuid.UUID, second: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    """Return the canonical (low, high) ordering of an unordered pair."""
    return (first, second) if first < second else (second, first)


class Swipe(Base):
    __tablename__ = "swipes"
    __table_args__ = (
        UniqueConstraint("swiper_id", "target_id", name="uq_swipe_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    swiper_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    direction: Mapped[str] = mapped_column(
        String, nullable=False, comment="left / right"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    def __repr__(self) -> str:
        return f"<Swipe {self.swiper_id} -> {self.target_id} dir={self.direction!r}>"


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        CheckConstraint("user_a_id <> user_b_id", name="ck_match_distinct_users"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(
        String, nullable=False, default="swipe", comment="swipe / spin / connect"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    user_a: Mapped["User"] = relationship(
        "User", foreign_keys=[user_a_id], lazy="selectin"
    )
    user_b: Mapped["User"] = relationship(
        "User", foreign_keys=[user_b_id], lazy="selectin"
    )

    def other_user_id(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_b_id if self.user_a_id == user_id else self.user_a_id

    def other_user(self, user_id: uuid.UUID) -> "User":
        return self.user_b if self.user_a_id == user_id else self.user_a

    def __repr__(self) -> str:
        return f"<Match {self.user_a_id} <-> {self.user_b_id} source={self.source!r}>"


class PinnedMatch(Base):
    __tablename__ = "pinned_matches"
    __table_args__ = (
        UniqueConstraint("user_id", "target_id", name="uq_pinned_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Pin order, ascending"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<PinnedMatch {self.user_id} pins {self.target_id} pos={self.position}>"
