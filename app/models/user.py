"""
Kindred — User model.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.clock import utcnow

GENDERS = ("Male", "Female", "Other")
INTERESTS = ("Male", "Female", "Both")
STATUSES = ("active", "inactive", "banned")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    username: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    password_hash: Mapped[str] = mapped_column(String, nullable=False)

    # ── Profile ────────────────────────────────────────────────────
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    dob: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Male / Female / Other"
    )
    interested_in: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Male / Female / Both"
    )
    bio: Mapped[str] = mapped_column(String(250), default="", nullable=False)
    profile_picture: Mapped[str | None] = mapped_column(String, nullable=True)
    affiliation: Mapped[str] = mapped_column(
        String, default="", nullable=False, comment="University or similar"
    )

    # ── Quotas ─────────────────────────────────────────────────────
    swipe_limit: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    spin_limit: Mapped[int] = mapped_column(Integer, default=5, nullable=False)

    # ── Lifecycle ──────────────────────────────────────────────────
    last_login: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String, default="inactive", server_default="inactive", nullable=False
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    @property
    def has_picture(self) -> bool:
        return bool(self.profile_picture)

    def __repr__(self) -> str:
        return f"<User {self.username!r} id={self.id}>"
