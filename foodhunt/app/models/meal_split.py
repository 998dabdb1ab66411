"""
models/meal_split.py — MealSplit and SplitMember table definitions.

No business logic. No imports from services or routes.

Key design points:
  - Membership lives in split_members, one row per member, ordered by
    `position` (join order). UNIQUE(split_id, user_id) keeps the member list
    free of duplicates at the store level.
  - `people_joined_ids` is a read-only view over the ordered member rows.
  - `version` is SQLAlchemy's version_id_col: every UPDATE of a split row is
    qualified with the version it was read at, so two concurrent membership
    changes cannot both commit. Services touch `updated_at` on every
    membership change to make sure the split row is part of the flush.
  - Splits are never hard-deleted; closing is recorded in `closed_reason`.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from foodhunt.app.extensions import db
from foodhunt.app.models.types import UTCDateTime, utc_now


class ClosedReason(str, enum.Enum):
    FULL      = "full"       # membership reached people_needed
    COMPLETED = "completed"  # creator marked it done
    DELETED   = "deleted"    # creator/admin soft delete
    EXPIRED   = "expired"    # split_time passed (expiry sweep)
    ABANDONED = "abandoned"  # last member left


# Reasons that keep a split closed regardless of membership size.
STICKY_CLOSED_REASONS = frozenset({
    ClosedReason.COMPLETED.value,
    ClosedReason.DELETED.value,
    ClosedReason.EXPIRED.value,
    ClosedReason.ABANDONED.value,
})


class MealSplit(db.Model):
    __tablename__ = "meal_splits"

    __table_args__ = (
        CheckConstraint("total_price > 0", name="ck_meal_splits_price_positive"),
        CheckConstraint("people_needed >= 2", name="ck_meal_splits_people_needed_min"),
        CheckConstraint(
            "LENGTH(TRIM(dish_name)) > 0",
            name="ck_meal_splits_dish_nonempty",
        ),
        Index("idx_meal_splits_open", "is_closed", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    creator_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    creator_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Vendors are owned by the catalogue service; stored as opaque values.
    vendor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)

    dish_name: Mapped[str] = mapped_column(String(200), nullable=False)

    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    people_needed: Mapped[int] = mapped_column(Integer, nullable=False)

    time_note: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="",
        server_default="",
    )

    split_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    is_closed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    closed_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ──────────────────────────────────────────────────────

    members: Mapped[list["SplitMember"]] = relationship(
        "SplitMember",
        back_populates="split",
        order_by="SplitMember.position",
        cascade="all, delete-orphan",
    )

    requests: Mapped[list["SplitRequest"]] = relationship(  # noqa: F821
        "SplitRequest",
        back_populates="split",
    )

    @property
    def people_joined_ids(self) -> list[int]:
        return [m.user_id for m in self.members]

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<MealSplit id={self.id} dish={self.dish_name!r} "
            f"members={self.people_joined_ids} closed={self.is_closed}>"
        )


class SplitMember(db.Model):
    __tablename__ = "split_members"

    __table_args__ = (
        UniqueConstraint("split_id", "user_id", name="uq_split_members_split_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    split_id: Mapped[int] = mapped_column(
        ForeignKey("meal_splits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Join order. Gaps are left behind when members leave.
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    joined_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    split: Mapped["MealSplit"] = relationship(
        "MealSplit",
        back_populates="members",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="split_memberships",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SplitMember split_id={self.split_id} "
            f"user_id={self.user_id} position={self.position}>"
        )
