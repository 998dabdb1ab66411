"""
routes/conversations.py — Inbox and direct-message route handlers.

Endpoints (url_prefix=/api/v1/conversations):
  GET    /conversations                  → 200  inbox, newest first
  DELETE /conversations                  → 200  clear inbox
  POST   /conversations/messages         → 201  send a direct message
  GET    /conversations/:cid/messages    → 200  chat history
  POST   /conversations/:cid/read        → 200  mark as read
  DELETE /conversations/:cid             → 200  delete one conversation
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from foodhunt.app.extensions import db
from foodhunt.app.middleware.auth_middleware import require_auth
from foodhunt.app.schemas.message_schema import SendMessageSchema
from foodhunt.app.services import messaging_service, push_service, unit_of_work

conversations_bp = Blueprint("conversations", __name__)


def _run(work):
    return unit_of_work.run(
        db.session,
        work,
        attempts=current_app.config.get("TRANSIENT_RETRY_ATTEMPTS", 3),
    )


@conversations_bp.route("", methods=["GET"])
@require_auth
def list_inbox():
    """GET /conversations — refreshes cached participant details, hence the commit."""
    result = _run(lambda: [
        messaging_service.serialize_conversation(c)
        for c in messaging_service.list_inbox(user_id=g.user_id, session=db.session)
    ])
    return jsonify({"data": result, "warnings": []}), 200


@conversations_bp.route("", methods=["DELETE"])
@require_auth
def clear_inbox():
    deleted = _run(lambda: messaging_service.clear_inbox(
        user_id=g.user_id,
        session=db.session,
    ))
    return jsonify({"data": {"deleted": deleted}, "warnings": []}), 200


@conversations_bp.route("/messages", methods=["POST"])
@require_auth
def send_message():
    """POST /conversations/messages — body: {"receiver_id", "content"}"""
    data = SendMessageSchema().load(request.get_json(force=True) or {})
    result = _run(lambda: messaging_service.serialize_message(
        messaging_service.send_message(
            sender_id=g.user_id,
            receiver_id=data["receiver_id"],
            content=data["content"],
            session=db.session,
        )
    ))

    push_service.notify_new_message(result["receiver_id"], result["content"])
    return jsonify({"data": result, "warnings": []}), 201


@conversations_bp.route("/<string:conversation_id>/messages", methods=["GET"])
@require_auth
def get_chat(conversation_id: str):
    messages = messaging_service.get_chat(
        conversation_id=conversation_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": messages, "warnings": []}), 200


@conversations_bp.route("/<string:conversation_id>/read", methods=["POST"])
@require_auth
def mark_as_read(conversation_id: str):
    _run(lambda: messaging_service.mark_as_read(
        conversation_id=conversation_id,
        user_id=g.user_id,
        session=db.session,
    ))
    return jsonify({"data": {"message": "Conversation marked as read."}, "warnings": []}), 200


@conversations_bp.route("/<string:conversation_id>", methods=["DELETE"])
@require_auth
def delete_conversation(conversation_id: str):
    _run(lambda: messaging_service.delete_conversation(
        conversation_id=conversation_id,
        caller_id=g.user_id,
        session=db.session,
    ))
    return jsonify({"data": {"message": "Conversation deleted."}, "warnings": []}), 200
