"""
services/push_service.py — Best-effort push notifications.

Push delivery is fire-and-forget: routes call send_push() only after the
database transaction has committed, and a failure here never turns a
successful request into an error. Failures are logged and swallowed.

The push gateway is an HTTP endpoint (PUSH_ENDPOINT_URL) accepting
{"userId", "title", "body"}. With no endpoint configured every call is a
no-op, which is what the test configuration relies on.
"""

from __future__ import annotations

import logging

import httpx
from flask import current_app

log = logging.getLogger(__name__)

PREVIEW_LENGTH = 30


def preview(content: str) -> str:
    """First 30 characters of a message, with "..." when it was cut."""
    if len(content) > PREVIEW_LENGTH:
        return f"{content[:PREVIEW_LENGTH]}..."
    return content


def send_push(user_id: int, title: str, body: str) -> bool:
    """
    POSTs one notification to the push gateway.

    Returns True when the gateway accepted it, False when push is not
    configured or delivery failed.
    """
    url = current_app.config.get("PUSH_ENDPOINT_URL") or ""
    if not url:
        return False

    timeout = current_app.config.get("PUSH_TIMEOUT_SECONDS", 5)
    payload = {"userId": user_id, "title": title, "body": body}

    try:
        resp = httpx.post(url, json=payload, timeout=timeout)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        log.warning("push to user %s failed: %s", user_id, exc)
        return False

    return True


def notify_new_message(receiver_id: int, content: str) -> bool:
    return send_push(
        receiver_id,
        "New Message",
        f"You received a message: {preview(content)}",
    )
