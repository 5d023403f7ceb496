"""Initial schema — users, swipes, matches, pins and chats.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _user_fk(name: str, **kwargs) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        **kwargs,
    )


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String, nullable=False),
        sa.Column("username", sa.String, nullable=False),
        sa.Column("password_hash", sa.String, nullable=False),
        sa.Column("name", sa.String, nullable=True),
        sa.Column("dob", sa.Date, nullable=True),
        sa.Column("gender", sa.String, nullable=True, comment="Male / Female / Other"),
        sa.Column(
            "interested_in", sa.String, nullable=True, comment="Male / Female / Both"
        ),
        sa.Column("bio", sa.String(250), server_default="", nullable=False),
        sa.Column("profile_picture", sa.String, nullable=True),
        sa.Column(
            "affiliation",
            sa.String,
            server_default="",
            nullable=False,
            comment="University or similar",
        ),
        sa.Column("swipe_limit", sa.Integer, server_default="10", nullable=False),
        sa.Column("spin_limit", sa.Integer, server_default="5", nullable=False),
        sa.Column(
            "last_login",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("status", sa.String, server_default="inactive", nullable=False),
        sa.Column("is_verified", sa.Boolean, server_default="false", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # ── 2. swipes ───────────────────────────────────────────────────
    op.create_table(
        "swipes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("swiper_id", index=True),
        _user_fk("target_id", index=True),
        sa.Column("direction", sa.String, nullable=False, comment="left / right"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("swiper_id", "target_id", name="uq_swipe_pair"),
    )

    # ── 3. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("user_a_id", index=True),
        _user_fk("user_b_id", index=True),
        sa.Column(
            "source",
            sa.String,
            server_default="swipe",
            nullable=False,
            comment="swipe / spin / connect",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        sa.CheckConstraint("user_a_id <> user_b_id", name="ck_match_distinct_users"),
    )

    # ── 4. pinned_matches ───────────────────────────────────────────
    op.create_table(
        "pinned_matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("user_id", index=True),
        _user_fk("target_id"),
        sa.Column("position", sa.Integer, nullable=False, comment="Pin order, ascending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "target_id", name="uq_pinned_pair"),
    )

    # ── 5. chats ────────────────────────────────────────────────────
    op.create_table(
        "chats",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("participant_a_id", index=True),
        _user_fk("participant_b_id", index=True),
        sa.Column("message_count", sa.Integer, server_default="0", nullable=False),
        sa.Column(
            "last_message_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("participant_a_id", "participant_b_id", name="uq_chat_pair"),
        sa.CheckConstraint(
            "participant_a_id <> participant_b_id",
            name="ck_chat_distinct_participants",
        ),
    )
    op.create_index("ix_chats_last_message_at", "chats", ["last_message_at"])

    # ── 6. chat_messages ────────────────────────────────────────────
    op.create_table(
        "chat_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "chat_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("chats.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "sequence",
            sa.Integer,
            nullable=False,
            comment="1-based position within the chat",
        ),
        _user_fk("sender_id"),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("chat_id", "sequence", name="uq_message_sequence"),
    )

    # ── 7. message_reads ────────────────────────────────────────────
    op.create_table(
        "message_reads",
        sa.Column(
            "message_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("chat_messages.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "read_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_table("message_reads")
    op.drop_table("chat_messages")

    op.drop_index("ix_chats_last_message_at", table_name="chats")
    op.drop_table("chats")

    op.drop_table("pinned_matches")
    op.drop_table("matches")
    op.drop_table("swipes")

    op.drop_index("ix_users_username", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
