"""
jobs/expiry_sweep.py — Close splits whose scheduled time has passed.

Listing splits is a pure read; expired splits are hidden from the listing
but only change state here. Run it from cron through the CLI:

    flask --app foodhunt.app sweep-expired-splits

The sweep flushes; the caller commits.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from foodhunt.app.models.meal_split import ClosedReason, MealSplit
from foodhunt.app.models.types import utc_now

log = logging.getLogger(__name__)


def _find_candidates(session: Session, now: datetime) -> list[MealSplit]:
    """Open splits, and splits closed only for being full, whose time has passed."""
    return list(session.execute(
        select(MealSplit)
        .where(
            or_(
                MealSplit.is_closed.is_(False),
                MealSplit.closed_reason == ClosedReason.FULL.value,
            ),
            MealSplit.split_time.is_not(None),
            MealSplit.split_time < now,
        )
        .order_by(MealSplit.split_time.asc(), MealSplit.id.asc())
    ).scalars().all())


def sweep_expired_splits(session: Session, now: datetime | None = None) -> dict:
    """
    Marks every open or full split with split_time < now as closed (expired).
    Membership is kept for history views.

    Returns: {"expired_count": int, "expired_ids": [int, ...]}
    """
    now = now or utc_now()
    expired_ids: list[int] = []

    for split in _find_candidates(session, now):
        split.is_closed = True
        split.closed_reason = ClosedReason.EXPIRED.value
        split.updated_at = now
        expired_ids.append(split.id)

    session.flush()

    summary = {
        "expired_count": len(expired_ids),
        "expired_ids": expired_ids,
    }
    log.info("expiry sweep summary: %s", summary)
    return summary
