"""
services/split_service.py — Meal-split lifecycle.

Invariants enforced here:
  - people_joined_ids never holds a user twice (also UNIQUE in split_members)
  - while a split is open its creator is a member
  - is_closed is true iff membership >= people_needed, or the split was
    completed / deleted / expired / abandoned (closed_reason)
  - a creator cannot open two splits whose split_time values are less than
    4 hours apart (checked at creation only, not when a request is accepted)
  - at most 5 join requests per user per fixed 3-hour wall-clock slot

Authorization rules:
  - Responding to a join request: the split's current creator, or an admin
  - Cancelling a join request:    the requester
  - Marking complete:             the creator
  - Deleting (soft):              the creator, or an admin

Concurrency:
  MealSplit rows are versioned (version_id_col). Every membership change
  also writes the split row, so two concurrent accepts cannot both commit:
  the loser's flush raises StaleDataError and unit_of_work retries it, and
  the retry re-reads membership before appending.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, tzinfo

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foodhunt.app.errors import (
    AlreadyJoinedError,
    AppError,
    ConflictError,
    DuplicateRequestError,
    ErrorCode,
    InputError,
    NotFoundError,
    RateLimitError,
)
from foodhunt.app.models.conversation import Message
from foodhunt.app.models.meal_split import (
    STICKY_CLOSED_REASONS,
    ClosedReason,
    MealSplit,
    SplitMember,
)
from foodhunt.app.models.split_request import RequestStatus, SplitRequest
from foodhunt.app.models.types import utc_now
from foodhunt.app.models.user import User
from foodhunt.app.services import messaging_service

log = logging.getLogger(__name__)

MAX_REQUESTS_PER_SLOT = 5
RATE_LIMIT_SLOT_HOURS = 3
CONFLICT_WINDOW = timedelta(hours=4)

JOIN_REQUEST_TEMPLATE = (
    "Hii, I'd like to join your split of {dish} from {vendor} at {date} {time}."
)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_split_or_404(split_id: int, session: Session) -> MealSplit:
    """Returns the MealSplit or raises SPLIT_NOT_FOUND (404)."""
    split = session.get(MealSplit, split_id)
    if split is None:
        raise NotFoundError(
            ErrorCode.SPLIT_NOT_FOUND,
            "Split not found.",
        )
    return split


def _get_request_or_404(request_id: int, session: Session) -> SplitRequest:
    """Returns the SplitRequest or raises REQUEST_NOT_FOUND (404)."""
    split_request = session.get(SplitRequest, request_id)
    if split_request is None:
        raise NotFoundError(
            ErrorCode.REQUEST_NOT_FOUND,
            "Request not found.",
        )
    return split_request


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
        )
    return user


def _is_admin(user_id: int, session: Session) -> bool:
    user = session.get(User, user_id)
    return user is not None and user.is_admin


def _set_active_split(user_id: int, split_id: int | None, session: Session) -> None:
    """Last-write-wins update of the user's active-split pointer."""
    user = session.get(User, user_id)
    if user is not None:
        user.active_split_id = split_id


def _apply_closed_state(split: MealSplit, member_count: int, now: datetime) -> None:
    """
    Recomputes is_closed from membership size, sticky close reasons and the
    split's time. A split that was only closed for being full reopens when a
    seat frees up, unless its time has already passed.
    """
    if split.closed_reason in STICKY_CLOSED_REASONS:
        split.is_closed = True
        return

    if is_expired(split, now):
        split.is_closed = True
        split.closed_reason = ClosedReason.EXPIRED.value
    elif member_count >= split.people_needed:
        split.is_closed = True
        split.closed_reason = ClosedReason.FULL.value
    else:
        split.is_closed = False
        split.closed_reason = None


def _close(split: MealSplit, reason: ClosedReason, now: datetime) -> None:
    split.is_closed = True
    split.closed_reason = reason.value
    split.updated_at = now


def rate_limit_slot_start(now: datetime, tz: tzinfo | None = None) -> datetime:
    """
    Start of the fixed 3-hour slot containing `now`: 00:00, 03:00, ... 21:00
    in `tz`, or in the server's local time when tz is None.
    """
    local = now.astimezone(tz)
    slot_hour = (local.hour // RATE_LIMIT_SLOT_HOURS) * RATE_LIMIT_SLOT_HOURS
    start = local.replace(hour=slot_hour, minute=0, second=0, microsecond=0, fold=0)
    if tz is None:
        # astimezone(None) carries now's fixed offset; resolve the wall-clock
        # start against the system zone so a DST change inside the slot counts.
        start = start.replace(tzinfo=None).astimezone()
    return start


def count_requests_in_slot(
        user_id: int,
        session: Session,
        now: datetime,
        tz: tzinfo | None = None,
) -> int:
    """Counts the user's requests (any split, any status) created since the slot started."""
    slot_start = rate_limit_slot_start(now, tz)
    return session.execute(
        select(func.count())
        .select_from(SplitRequest)
        .where(
            SplitRequest.requester_id == user_id,
            SplitRequest.created_at >= slot_start,
        )
    ).scalar_one()


def find_schedule_conflict(
        user_id: int,
        split_time: datetime,
        session: Session,
) -> MealSplit | None:
    """
    Returns an open split the user belongs to whose split_time is less than
    CONFLICT_WINDOW away from `split_time`, or None.
    Splits without a split_time never conflict.
    """
    open_splits = session.execute(
        select(MealSplit)
        .join(SplitMember, SplitMember.split_id == MealSplit.id)
        .where(
            SplitMember.user_id == user_id,
            MealSplit.is_closed.is_(False),
        )
    ).scalars().all()

    for split in open_splits:
        if split.split_time is None:
            continue
        if abs(split.split_time - split_time) < CONFLICT_WINDOW:
            return split
    return None


def render_join_request_message(
        split: MealSplit,
        now: datetime,
        tz: tzinfo | None = None,
) -> str:
    when = (split.split_time or now).astimezone(tz)
    return JOIN_REQUEST_TEMPLATE.format(
        dish=split.dish_name,
        vendor=split.vendor_name,
        date=when.strftime("%m/%d/%Y"),
        time=when.strftime("%I:%M %p"),
    )


def is_expired(split: MealSplit, now: datetime | None = None) -> bool:
    """True when the split's scheduled time has passed."""
    if split.split_time is None:
        return False
    return split.split_time < (now or utc_now())


# ── Public service functions ───────────────────────────────────────────────

def create_split(
        creator_id: int,
        data: dict,
        session: Session,
        now: datetime | None = None,
) -> MealSplit:
    """
    Creates a split with the creator as its only member.

    Args:
        creator_id: The authenticated user creating the split.
        data:       Validated dict from CreateSplitSchema.

    Raises:
      InputError(SPLIT_TIME_IN_PAST, 422)    — split_time is not in the future
      NotFoundError(USER_NOT_FOUND, 404)     — creator does not exist
      ConflictError(SCHEDULE_CONFLICT, 409)  — another open split within 4 hours
    """
    now = now or utc_now()
    split_time: datetime = data["split_time"]

    if split_time <= now:
        raise InputError(
            ErrorCode.SPLIT_TIME_IN_PAST,
            "The split time must be in the future.",
            field="split_time",
        )

    creator = _get_user_or_404(creator_id, session)

    if find_schedule_conflict(creator_id, split_time, session) is not None:
        raise ConflictError(
            ErrorCode.SCHEDULE_CONFLICT,
            "You have another split scheduled within 4 hours of this time.",
        )

    split = MealSplit(
        creator_id=creator_id,
        creator_name=creator.name,
        vendor_id=data["vendor_id"],
        vendor_name=data["vendor_name"],
        dish_name=data["dish_name"],
        total_price=data["total_price"],
        people_needed=data["people_needed"],
        time_note=data.get("time_note", ""),
        split_time=split_time,
        is_closed=False,
        created_at=now,
        updated_at=now,
    )
    split.members.append(SplitMember(user_id=creator_id, position=0, joined_at=now))
    session.add(split)
    session.flush()  # populate split.id before pointing the creator at it

    creator.active_split_id = split.id
    session.flush()

    log.info("split %s created by user %s", split.id, creator_id)
    return split


def get_split(split_id: int, session: Session) -> MealSplit:
    return _get_split_or_404(split_id, session)


def list_splits(session: Session, user_id: int | None = None) -> list[MealSplit]:
    """
    Returns every open split plus, for a signed-in user, the closed splits
    they are still a member of. Newest first. Pure read.
    """
    splits = list(session.execute(
        select(MealSplit)
        .where(MealSplit.is_closed.is_(False))
        .order_by(MealSplit.created_at.desc())
    ).scalars().all())

    if user_id is not None:
        own_closed = session.execute(
            select(MealSplit)
            .join(SplitMember, SplitMember.split_id == MealSplit.id)
            .where(
                SplitMember.user_id == user_id,
                MealSplit.is_closed.is_(True),
            )
        ).scalars().all()
        seen = {s.id for s in splits}
        splits.extend(s for s in own_closed if s.id not in seen)

    splits.sort(key=lambda s: (s.created_at, s.id), reverse=True)
    return splits


def request_join(
        split_id: int,
        user_id: int,
        session: Session,
        now: datetime | None = None,
        tz: tzinfo | None = None,
) -> tuple[SplitRequest, Message]:
    """
    Files a pending join request and posts the automated message to the
    split's creator, in the caller's transaction.

    Checks run in this order and stop at the first failure:
      RateLimitError(RATE_LIMITED, 429)           — 5 requests already this slot
      NotFoundError(SPLIT_NOT_FOUND, 404)
      AlreadyJoinedError(ALREADY_JOINED, 409)
      ConflictError(SPLIT_CLOSED, 409)
      DuplicateRequestError(DUPLICATE_REQUEST, 409) — a request for this pair exists

    Returns:
        (SplitRequest, Message) — the new request and the message it spawned.
    """
    now = now or utc_now()

    if count_requests_in_slot(user_id, session, now, tz) >= MAX_REQUESTS_PER_SLOT:
        raise RateLimitError(
            "Rate limit exceeded: You can only request 5 splits in this 3-hour slot.",
        )

    split = _get_split_or_404(split_id, session)

    if user_id in split.people_joined_ids:
        raise AlreadyJoinedError()

    if split.is_closed or is_expired(split, now):
        raise ConflictError(
            ErrorCode.SPLIT_CLOSED,
            "This split is closed and no longer accepts requests.",
        )

    existing = session.execute(
        select(SplitRequest).where(
            SplitRequest.split_id == split_id,
            SplitRequest.requester_id == user_id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise DuplicateRequestError()

    split_request = SplitRequest(
        split_id=split_id,
        requester_id=user_id,
        status=RequestStatus.PENDING.value,
        created_at=now,
    )
    session.add(split_request)
    try:
        session.flush()
    except IntegrityError:
        # A concurrent request for the same pair won the unique constraint;
        # the caller's unit of work rolls the session back.
        raise DuplicateRequestError()

    content = render_join_request_message(split, now, tz)
    message = messaging_service.notify_join_request(
        requester_id=user_id,
        creator_id=split.creator_id,
        content=content,
        request_id=split_request.id,
        session=session,
        now=now,
    )

    log.info(
        "join request %s filed by user %s for split %s",
        split_request.id, user_id, split_id,
    )
    return split_request, message


def respond_to_request(
        request_id: int,
        status: str,
        caller_id: int,
        session: Session,
        now: datetime | None = None,
) -> SplitRequest:
    """
    Accepts or rejects a join request.

    Accepting appends the requester to the split, recomputes is_closed and
    points the requester's active split at it. Accepting a requester who is
    already a member only marks the request accepted.

    Raises:
      NotFoundError(REQUEST_NOT_FOUND / SPLIT_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)                — caller is not the creator or an admin
      ConflictError(REQUEST_NOT_PENDING, 409) — already resolved the other way
      ConflictError(SPLIT_CLOSED, 409)        — no seat left to accept into
    """
    now = now or utc_now()
    split_request = _get_request_or_404(request_id, session)
    split = _get_split_or_404(split_request.split_id, session)

    if caller_id != split.creator_id and not _is_admin(caller_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the split's creator can respond to join requests.",
            403,
        )

    if split_request.status == status:
        return split_request

    if split_request.status != RequestStatus.PENDING.value:
        raise ConflictError(
            ErrorCode.REQUEST_NOT_PENDING,
            f"This request has already been {split_request.status}.",
        )

    if status == RequestStatus.REJECTED.value:
        split_request.status = RequestStatus.REJECTED.value
        session.flush()
        log.info("join request %s rejected", request_id)
        return split_request

    requester_id = split_request.requester_id
    members = split.people_joined_ids

    if requester_id in members:
        split_request.status = RequestStatus.ACCEPTED.value
        session.flush()
        return split_request

    if split.is_closed or is_expired(split, now):
        raise ConflictError(
            ErrorCode.SPLIT_CLOSED,
            "This split is closed and cannot take more people.",
        )

    next_position = max((m.position for m in split.members), default=-1) + 1
    split.members.append(
        SplitMember(user_id=requester_id, position=next_position, joined_at=now)
    )
    _apply_closed_state(split, len(members) + 1, now)
    split.updated_at = now

    split_request.status = RequestStatus.ACCEPTED.value
    _set_active_split(requester_id, split.id, session)
    session.flush()

    log.info(
        "join request %s accepted; split %s now has %s/%s people",
        request_id, split.id, len(split.members), split.people_needed,
    )
    return split_request


def cancel_request(request_id: int, caller_id: int, session: Session) -> None:
    """
    Withdraws a pending join request together with the message it spawned.

    The tagged message is removed first (it references the request), then the
    request. The conversation is deleted if that leaves it empty, otherwise
    its preview falls back to the newest remaining message.

    Raises:
      NotFoundError(REQUEST_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)                — caller is not the requester
      ConflictError(REQUEST_NOT_PENDING, 409) — accepted/rejected requests are history
    """
    split_request = _get_request_or_404(request_id, session)

    if split_request.requester_id != caller_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You can only cancel your own requests.",
            403,
        )

    if split_request.status != RequestStatus.PENDING.value:
        raise ConflictError(
            ErrorCode.REQUEST_NOT_PENDING,
            f"This request has already been {split_request.status} and cannot be cancelled.",
        )

    messaging_service.retract_request_message(request_id, session)

    session.delete(split_request)
    session.flush()
    log.info("join request %s cancelled by user %s", request_id, caller_id)


def leave_split(
        split_id: int,
        user_id: int,
        session: Session,
        now: datetime | None = None,
) -> None:
    """
    Removes the user from the split.

    The user's active-split pointer is cleared first, whatever happens next.
    A missing split, or a user who is not a member, is treated as already
    left. When the last member leaves the split is closed (abandoned) and
    kept. When the creator leaves, ownership passes to the earliest-joined
    remaining member. When anyone else leaves, their conversation with the
    creator is deleted.
    """
    now = now or utc_now()
    _set_active_split(user_id, None, session)
    session.flush()

    split = session.get(MealSplit, split_id)
    if split is None:
        return

    member = next((m for m in split.members if m.user_id == user_id), None)
    if member is None:
        return

    original_creator_id = split.creator_id
    split.members.remove(member)
    remaining = split.people_joined_ids
    split.updated_at = now

    if not remaining:
        _close(split, ClosedReason.ABANDONED, now)
        session.flush()
        log.info("split %s abandoned by its last member %s", split_id, user_id)
        return

    if user_id == original_creator_id:
        new_creator = session.get(User, remaining[0])
        if new_creator is not None:
            split.creator_id = new_creator.id
            split.creator_name = new_creator.name
            log.info(
                "split %s ownership transferred from %s to %s",
                split_id, user_id, new_creator.id,
            )

    _apply_closed_state(split, len(remaining), now)
    session.flush()

    if user_id != original_creator_id:
        messaging_service.delete_conversation_between(user_id, original_creator_id, session)


def mark_complete(split_id: int, caller_id: int, session: Session) -> MealSplit:
    """
    Closes the split early without touching membership. Creator only.

    Raises:
      NotFoundError(SPLIT_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)
    """
    split = _get_split_or_404(split_id, session)
    if caller_id != split.creator_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the split's creator can mark it complete.",
            403,
        )

    _close(split, ClosedReason.COMPLETED, utc_now())
    session.flush()
    return split


def delete_split(split_id: int, caller_id: int, session: Session) -> None:
    """
    Soft delete: closes the split and keeps its members for history views.
    Creator or admin.

    Raises:
      NotFoundError(SPLIT_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)
    """
    split = _get_split_or_404(split_id, session)
    if caller_id != split.creator_id and not _is_admin(caller_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the split's creator or an admin can delete it.",
            403,
        )

    _close(split, ClosedReason.DELETED, utc_now())
    session.flush()
    log.info("split %s deleted by user %s", split_id, caller_id)


def list_my_requests(user_id: int, session: Session) -> list[SplitRequest]:
    """Returns the user's join requests, newest first."""
    return list(session.execute(
        select(SplitRequest)
        .where(SplitRequest.requester_id == user_id)
        .order_by(SplitRequest.created_at.desc(), SplitRequest.id.desc())
    ).scalars().all())


# ── Serialization ──────────────────────────────────────────────────────────

def serialize_split(split: MealSplit) -> dict:
    return {
        "id": split.id,
        "creator_id": split.creator_id,
        "creator_name": split.creator_name,
        "vendor_id": split.vendor_id,
        "vendor_name": split.vendor_name,
        "dish_name": split.dish_name,
        "total_price": split.total_price,
        "people_needed": split.people_needed,
        "people_joined_ids": split.people_joined_ids,
        "time_note": split.time_note,
        "split_time": split.split_time.isoformat() if split.split_time else None,
        "is_closed": split.is_closed,
        "closed_reason": split.closed_reason,
        "created_at": split.created_at.isoformat(),
    }


def serialize_request(split_request: SplitRequest) -> dict:
    return {
        "id": split_request.id,
        "split_id": split_request.split_id,
        "requester_id": split_request.requester_id,
        "status": split_request.status,
        "created_at": split_request.created_at.isoformat(),
    }
