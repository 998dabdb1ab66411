"""
services/messaging_service.py — One-on-one conversations and messages.

This module owns conversation get-or-create. The split workflow talks to it
only through three calls:
  notify_join_request()        — post the automated join-request message
  retract_request_message()    — remove it again when the request is cancelled
  delete_conversation_between()— drop the thread when a member leaves

Everything else here backs the inbox endpoints.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
  - Push notifications are dispatched by routes after commit, never here.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from foodhunt.app.errors import AppError, ErrorCode, InputError, NotFoundError
from foodhunt.app.models.conversation import Conversation, Message
from foodhunt.app.models.split_request import RequestStatus, SplitRequest
from foodhunt.app.models.types import utc_now
from foodhunt.app.models.user import User

log = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def conversation_id_for(user_a: int, user_b: int) -> str:
    """Canonical conversation key for a pair of users, independent of order."""
    low, high = sorted((user_a, user_b))
    return f"{low}_{high}"


def _participant_details(user: User | None) -> dict:
    if user is None:
        return {"name": "Unknown", "email": None, "pfp_url": None}
    return {"name": user.name, "email": user.email, "pfp_url": user.pfp_url}


def _last_message_dict(message: Message) -> dict:
    return {
        "content": message.content,
        "sender_id": message.sender_id,
        "created_at": message.created_at.isoformat(),
        "is_read": message.is_read,
    }


def _get_conversation_or_404(conversation_id: str, session: Session) -> Conversation:
    conversation = session.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError(
            ErrorCode.CONVERSATION_NOT_FOUND,
            f"Conversation {conversation_id} does not exist.",
        )
    return conversation


def _require_participant(conversation: Conversation, user_id: int) -> None:
    if user_id not in conversation.participants:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You are not a participant in this conversation.",
            403,
        )


def get_or_create_conversation(
        user_a: int,
        user_b: int,
        session: Session,
        now: datetime | None = None,
) -> Conversation:
    """
    Returns the conversation between two users, creating an empty stub with
    cached participant details if none exists yet.
    """
    conversation_id = conversation_id_for(user_a, user_b)
    conversation = session.get(Conversation, conversation_id)
    if conversation is not None:
        return conversation

    low, high = sorted((user_a, user_b))
    conversation = Conversation(
        id=conversation_id,
        user_low_id=low,
        user_high_id=high,
        participant_details={
            str(low): _participant_details(session.get(User, low)),
            str(high): _participant_details(session.get(User, high)),
        },
        last_message=None,
        unread_counts={str(low): 0, str(high): 0},
        updated_at=now or utc_now(),
    )
    session.add(conversation)
    session.flush()
    return conversation


def post_message(
        sender_id: int,
        receiver_id: int,
        content: str,
        session: Session,
        request_id: int | None = None,
        now: datetime | None = None,
) -> Message:
    """
    Appends a message to the sender/receiver conversation and refreshes the
    conversation's last-message preview, receiver unread count and
    timestamp.
    """
    now = now or utc_now()
    conversation = get_or_create_conversation(sender_id, receiver_id, session, now=now)

    message = Message(
        conversation=conversation,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        is_read=False,
        request_id=request_id,
        created_at=now,
    )
    session.add(message)

    # JSON columns only register a change on reassignment.
    counts = dict(conversation.unread_counts or {})
    counts[str(receiver_id)] = counts.get(str(receiver_id), 0) + 1
    conversation.unread_counts = counts
    conversation.last_message = {
        "content": content,
        "sender_id": sender_id,
        "created_at": now.isoformat(),
        "is_read": False,
    }
    conversation.updated_at = now
    session.flush()

    return message


def _refresh_after_removal(conversation: Conversation, session: Session) -> None:
    """
    Deletes the conversation when it has no messages left, otherwise points
    its preview at the newest remaining message.
    """
    latest = session.execute(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(1)
    ).scalar_one_or_none()

    if latest is None:
        session.delete(conversation)
        session.flush()
        log.info("conversation %s deleted (no messages left)", conversation.id)
        return

    conversation.last_message = _last_message_dict(latest)
    conversation.updated_at = latest.created_at
    session.flush()


# ── Notifier contract used by split_service ────────────────────────────────

def notify_join_request(
        requester_id: int,
        creator_id: int,
        content: str,
        request_id: int,
        session: Session,
        now: datetime | None = None,
) -> Message:
    """Posts the automated join-request message, tagged with the request id."""
    return post_message(
        sender_id=requester_id,
        receiver_id=creator_id,
        content=content,
        session=session,
        request_id=request_id,
        now=now,
    )


def retract_request_message(request_id: int, session: Session) -> Conversation | None:
    """
    Deletes the message tagged with request_id, then deletes its conversation
    if that left it empty or rewinds the preview to the new latest message.

    Returns the surviving conversation, or None if it was deleted or no
    tagged message existed.
    """
    message = session.execute(
        select(Message).where(Message.request_id == request_id)
    ).scalar_one_or_none()
    if message is None:
        return None

    conversation = message.conversation
    session.delete(message)
    session.flush()
    session.expire(conversation, ["messages"])

    _refresh_after_removal(conversation, session)
    if session.get(Conversation, conversation.id) is None:
        return None
    return conversation


def delete_conversation_between(user_a: int, user_b: int, session: Session) -> bool:
    """Deletes the pair's conversation with its messages. Returns True if one existed."""
    conversation = session.get(Conversation, conversation_id_for(user_a, user_b))
    if conversation is None:
        return False
    session.delete(conversation)
    session.flush()
    return True


# ── Public inbox functions ─────────────────────────────────────────────────

def send_message(
        sender_id: int,
        receiver_id: int,
        content: str,
        session: Session,
        now: datetime | None = None,
) -> Message:
    """
    Sends a direct message.

    Raises:
      InputError(SELF_MESSAGE, 422)      — sender and receiver are the same user
      NotFoundError(USER_NOT_FOUND, 404) — receiver does not exist
    """
    if sender_id == receiver_id:
        raise InputError(
            ErrorCode.SELF_MESSAGE,
            "You cannot send a message to yourself.",
            field="receiver_id",
        )
    if session.get(User, receiver_id) is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {receiver_id} does not exist.",
        )
    return post_message(sender_id, receiver_id, content, session, now=now)


def list_inbox(user_id: int, session: Session) -> list[Conversation]:
    """
    Returns the user's conversations, most recently updated first.

    Cached participant details are refreshed from current profiles so
    renamed users and new avatars show up.
    """
    conversations = list(session.execute(
        select(Conversation)
        .where(or_(
            Conversation.user_low_id == user_id,
            Conversation.user_high_id == user_id,
        ))
        .order_by(Conversation.updated_at.desc())
    ).scalars().all())

    participant_ids = {pid for c in conversations for pid in c.participants}
    if participant_ids:
        users = session.execute(
            select(User).where(User.id.in_(participant_ids))
        ).scalars().all()
        by_id = {u.id: u for u in users}
        for conversation in conversations:
            details = dict(conversation.participant_details or {})
            for pid in conversation.participants:
                if pid in by_id:
                    details[str(pid)] = _participant_details(by_id[pid])
            conversation.participant_details = details

    return conversations


def get_chat(conversation_id: str, caller_id: int, session: Session) -> list[dict]:
    """
    Returns the conversation's messages in chronological order.

    Messages tagged with a join request carry `request_status`, read from the
    request's current status. A tag whose request no longer exists reads as
    pending.
    """
    conversation = _get_conversation_or_404(conversation_id, session)
    _require_participant(conversation, caller_id)

    messages = list(conversation.messages)
    request_ids = [m.request_id for m in messages if m.request_id is not None]

    statuses: dict[int, str] = {}
    if request_ids:
        rows = session.execute(
            select(SplitRequest.id, SplitRequest.status)
            .where(SplitRequest.id.in_(request_ids))
        ).all()
        statuses = {row.id: row.status for row in rows}

    result = []
    for m in messages:
        item = serialize_message(m)
        if m.request_id is not None:
            item["request_status"] = statuses.get(m.request_id, RequestStatus.PENDING.value)
        result.append(item)
    return result


def mark_as_read(conversation_id: str, user_id: int, session: Session) -> None:
    """Resets the user's unread counter and flags messages addressed to them as read."""
    conversation = _get_conversation_or_404(conversation_id, session)
    _require_participant(conversation, user_id)

    counts = dict(conversation.unread_counts or {})
    counts[str(user_id)] = 0
    conversation.unread_counts = counts

    for message in conversation.messages:
        if message.receiver_id == user_id and not message.is_read:
            message.is_read = True

    if conversation.last_message and conversation.last_message.get("sender_id") != user_id:
        conversation.last_message = {**conversation.last_message, "is_read": True}

    session.flush()


def delete_conversation(conversation_id: str, caller_id: int, session: Session) -> None:
    conversation = _get_conversation_or_404(conversation_id, session)
    _require_participant(conversation, caller_id)
    session.delete(conversation)
    session.flush()


def clear_inbox(user_id: int, session: Session) -> int:
    """Deletes every conversation the user takes part in. Returns how many."""
    conversations = session.execute(
        select(Conversation).where(or_(
            Conversation.user_low_id == user_id,
            Conversation.user_high_id == user_id,
        ))
    ).scalars().all()
    for conversation in conversations:
        session.delete(conversation)
    session.flush()
    return len(conversations)


# ── Serialization ──────────────────────────────────────────────────────────

def serialize_message(m: Message) -> dict:
    return {
        "id": m.id,
        "conversation_id": m.conversation_id,
        "sender_id": m.sender_id,
        "receiver_id": m.receiver_id,
        "content": m.content,
        "is_read": m.is_read,
        "request_id": m.request_id,
        "created_at": m.created_at.isoformat(),
    }


def serialize_conversation(c: Conversation) -> dict:
    return {
        "id": c.id,
        "participants": c.participants,
        "participant_details": c.participant_details,
        "last_message": c.last_message,
        "unread_counts": c.unread_counts,
        "updated_at": c.updated_at.isoformat(),
    }
