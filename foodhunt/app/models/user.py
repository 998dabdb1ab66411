"""
models/user.py — User table definition.

No business logic. No imports from services or routes.

active_split_id is a last-write-wins pointer to the user's most recent
split. It carries no foreign key: it is a display hint, and leave_split
clears it before touching the split so a deleted split can never strand it.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from foodhunt.app.extensions import db
from foodhunt.app.models.types import UTCDateTime, utc_now


class UserRole(str, enum.Enum):
    STUDENT = "student"
    ADMIN   = "admin"
    VENDOR  = "vendor"


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_users_name_nonempty",
        ),
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.STUDENT.value,
        server_default=UserRole.STUDENT.value,
    )

    is_disabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    pfp_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    active_split_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    split_memberships: Mapped[list["SplitMember"]] = relationship(  # noqa: F821
        "SplitMember",
        back_populates="user",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email!r}>"
