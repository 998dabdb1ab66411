"""Initial schema — users, meal splits, join requests, conversations.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. Tables in FK dependency order (users → meal_splits → split_members
     → split_join_requests → conversations → messages)
  2. Indexes

ON DELETE policies:
  meal_splits.creator_id          → RESTRICT  (splits are soft-deleted, never removed)
  split_members.split_id          → CASCADE   (member rows owned by their split)
  split_members.user_id           → RESTRICT
  split_join_requests.*           → RESTRICT
  conversations.user_*_id         → CASCADE   (a user's threads go with the user)
  messages.conversation_id        → CASCADE   (messages owned by their conversation)
  messages.request_id             → RESTRICT  (the tagged message is removed first)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    """Apply the full initial schema."""

    # ── Step 1: users ──────────────────────────────────────────────────────
    # role is a plain VARCHAR (student/admin/vendor); values are checked in code.

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default="student",
        ),
        sa.Column(
            "is_disabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column("pfp_url", sa.String(500), nullable=True),
        sa.Column("active_split_id", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_users_name_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    # ── Step 2: meal_splits ────────────────────────────────────────────────
    # version backs optimistic locking (SQLAlchemy version_id_col).

    op.create_table(
        "meal_splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "creator_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_meal_splits_creator"),
            nullable=False,
        ),
        sa.Column("creator_name", sa.String(100), nullable=False),
        sa.Column("vendor_id", sa.String(64), nullable=False),
        sa.Column("vendor_name", sa.String(200), nullable=False),
        sa.Column("dish_name", sa.String(200), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("people_needed", sa.Integer(), nullable=False),
        sa.Column("time_note", sa.String(200), nullable=False, server_default=""),
        sa.Column("split_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_closed",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column("closed_reason", sa.String(20), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_meal_splits"),
        sa.CheckConstraint("total_price > 0", name="ck_meal_splits_price_positive"),
        sa.CheckConstraint("people_needed >= 2", name="ck_meal_splits_people_needed_min"),
        sa.CheckConstraint(
            "LENGTH(TRIM(dish_name)) > 0",
            name="ck_meal_splits_dish_nonempty",
        ),
    )

    # ── Step 3: split_members ──────────────────────────────────────────────
    # UNIQUE(split_id, user_id): a user appears at most once per split.

    op.create_table(
        "split_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "split_id",
            sa.Integer(),
            sa.ForeignKey("meal_splits.id", ondelete="CASCADE", name="fk_split_members_split"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_split_members_user"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_split_members"),
        sa.UniqueConstraint("split_id", "user_id", name="uq_split_members_split_user"),
    )

    # ── Step 4: split_join_requests ────────────────────────────────────────
    # UNIQUE(split_id, requester_id): one request per user per split.

    op.create_table(
        "split_join_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "split_id",
            sa.Integer(),
            sa.ForeignKey("meal_splits.id", ondelete="RESTRICT", name="fk_split_join_requests_split"),
            nullable=False,
        ),
        sa.Column(
            "requester_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_split_join_requests_requester"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_split_join_requests"),
        sa.UniqueConstraint(
            "split_id",
            "requester_id",
            name="uq_split_join_requests_split_requester",
        ),
    )

    # ── Step 5: conversations ──────────────────────────────────────────────
    # id is "<low>_<high>"; CHECK keeps the pair canonical.

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column(
            "user_low_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_conversations_user_low"),
            nullable=False,
        ),
        sa.Column(
            "user_high_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_conversations_user_high"),
            nullable=False,
        ),
        sa.Column("participant_details", sa.JSON(), nullable=False),
        sa.Column("last_message", sa.JSON(), nullable=True),
        sa.Column("unread_counts", sa.JSON(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_conversations"),
        sa.CheckConstraint(
            "user_low_id < user_high_id",
            name="ck_conversations_canonical_pair",
        ),
    )

    # ── Step 6: messages ───────────────────────────────────────────────────

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "conversation_id",
            sa.String(64),
            sa.ForeignKey("conversations.id", ondelete="CASCADE", name="fk_messages_conversation"),
            nullable=False,
        ),
        sa.Column(
            "sender_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_messages_sender"),
            nullable=False,
        ),
        sa.Column(
            "receiver_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_messages_receiver"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "is_read",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column(
            "request_id",
            sa.Integer(),
            sa.ForeignKey(
                "split_join_requests.id",
                ondelete="RESTRICT",
                name="fk_messages_request",
            ),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_messages"),
    )

    # ── Step 7: Indexes ────────────────────────────────────────────────────

    op.create_index("ix_meal_splits_creator_id", "meal_splits", ["creator_id"])
    # Listing scans open splits newest first.
    op.create_index("idx_meal_splits_open", "meal_splits", ["is_closed", "created_at"])

    op.create_index("ix_split_members_split_id", "split_members", ["split_id"])
    op.create_index("ix_split_members_user_id", "split_members", ["user_id"])

    op.create_index("ix_split_join_requests_split_id", "split_join_requests", ["split_id"])
    # Rate-limit count: requests by one user since the slot started.
    op.create_index(
        "idx_split_join_requests_requester_created",
        "split_join_requests",
        ["requester_id", "created_at"],
    )

    op.create_index("ix_conversations_user_low_id", "conversations", ["user_low_id"])
    op.create_index("ix_conversations_user_high_id", "conversations", ["user_high_id"])

    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])
    op.create_index("ix_messages_request_id", "messages", ["request_id"])


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.
    For local development resets only; production gets corrective migrations.
    """
    op.drop_index("ix_messages_request_id",                    table_name="messages")
    op.drop_index("ix_messages_conversation_id",               table_name="messages")
    op.drop_index("ix_conversations_user_high_id",             table_name="conversations")
    op.drop_index("ix_conversations_user_low_id",              table_name="conversations")
    op.drop_index("idx_split_join_requests_requester_created", table_name="split_join_requests")
    op.drop_index("ix_split_join_requests_split_id",           table_name="split_join_requests")
    op.drop_index("ix_split_members_user_id",                  table_name="split_members")
    op.drop_index("ix_split_members_split_id",                 table_name="split_members")
    op.drop_index("idx_meal_splits_open",                      table_name="meal_splits")
    op.drop_index("ix_meal_splits_creator_id",                 table_name="meal_splits")

    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("split_join_requests")
    op.drop_table("split_members")
    op.drop_table("meal_splits")
    op.drop_table("users")
