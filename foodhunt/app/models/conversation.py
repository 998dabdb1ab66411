"""
models/conversation.py — Conversation and Message table definitions.

No business logic. No imports from services or routes.

A conversation is a one-on-one thread keyed by the canonical pair
"<lower user id>_<higher user id>", so both sides resolve the same row
without a lookup. Participant display info, the last message preview and
per-user unread counters are cached on the row as JSON for inbox rendering.

Messages are owned by their conversation: deleting the conversation through
the ORM deletes its messages (cascade), which does not depend on the
database enforcing ON DELETE CASCADE.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from foodhunt.app.extensions import db
from foodhunt.app.models.types import UTCDateTime, utc_now


class Conversation(db.Model):
    __tablename__ = "conversations"

    __table_args__ = (
        CheckConstraint(
            "user_low_id < user_high_id",
            name="ck_conversations_canonical_pair",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    user_low_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_high_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # {"<user id>": {"name": ..., "email": ..., "pfp_url": ...}}
    participant_details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # {"content", "sender_id", "created_at", "is_read"} or None for an empty stub.
    last_message: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # {"<user id>": int}
    unread_counts: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        order_by="[Message.created_at, Message.id]",
        cascade="all, delete-orphan",
    )

    @property
    def participants(self) -> list[int]:
        return [self.user_low_id, self.user_high_id]

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Conversation id={self.id!r}>"


class Message(db.Model):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(primary_key=True)

    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    receiver_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    # Set on the automated join-request message so the chat view can render
    # accept/reject controls and the request's current status.
    request_id: Mapped[int | None] = mapped_column(
        ForeignKey("split_join_requests.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    conversation: Mapped["Conversation"] = relationship(
        "Conversation",
        back_populates="messages",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Message id={self.id} conversation_id={self.conversation_id!r} "
            f"request_id={self.request_id}>"
        )
