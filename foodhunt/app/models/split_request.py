"""
models/split_request.py — SplitRequest (join request) table definition.

No business logic. No imports from services or routes.

UNIQUE(split_id, requester_id): one request per user per split, whatever
its status. A cancelled request is deleted, which frees the pair again.
The (requester_id, created_at) index serves the per-slot rate-limit count.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from foodhunt.app.extensions import db
from foodhunt.app.models.types import UTCDateTime, utc_now


class RequestStatus(str, enum.Enum):
    PENDING  = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SplitRequest(db.Model):
    __tablename__ = "split_join_requests"

    __table_args__ = (
        UniqueConstraint(
            "split_id",
            "requester_id",
            name="uq_split_join_requests_split_requester",
        ),
        Index("idx_split_join_requests_requester_created", "requester_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    split_id: Mapped[int] = mapped_column(
        ForeignKey("meal_splits.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    requester_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RequestStatus.PENDING.value,
        server_default=RequestStatus.PENDING.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    split: Mapped["MealSplit"] = relationship(  # noqa: F821
        "MealSplit",
        back_populates="requests",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SplitRequest id={self.id} split_id={self.split_id} "
            f"requester_id={self.requester_id} status={self.status}>"
        )
