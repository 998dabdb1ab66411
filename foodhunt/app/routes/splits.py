"""
routes/splits.py — Meal-split route handlers.

Layer rules:
  - Parse, validate, call ONE service inside unit_of_work.run, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - Push notifications are sent after the transaction commits and never
    change the response.

Endpoints (url_prefix=/api/v1/splits):
  POST   /splits                 → 201  create split
  GET    /splits                 → 200  open splits (+ caller's closed ones)
  GET    /splits/:id             → 200  split detail
  POST   /splits/:id/requests    → 201  request to join
  POST   /splits/:id/leave       → 200  leave
  POST   /splits/:id/complete    → 200  mark complete (creator)
  DELETE /splits/:id             → 200  soft delete (creator or admin)
"""

from __future__ import annotations

from zoneinfo import ZoneInfo

from flask import Blueprint, current_app, g, jsonify, request

from foodhunt.app.extensions import db
from foodhunt.app.middleware.auth_middleware import optional_auth, require_auth
from foodhunt.app.models.types import utc_now
from foodhunt.app.schemas.split_schema import CreateSplitSchema
from foodhunt.app.services import messaging_service, push_service, split_service, unit_of_work

splits_bp = Blueprint("splits", __name__)


def _run(work):
    return unit_of_work.run(
        db.session,
        work,
        attempts=current_app.config.get("TRANSIENT_RETRY_ATTEMPTS", 3),
    )


def _rate_limit_tz():
    """Timezone of the rate-limit slots; None means the server's local time."""
    name = current_app.config.get("RATE_LIMIT_TIMEZONE") or ""
    return ZoneInfo(name) if name else None


@splits_bp.route("", methods=["POST"])
@require_auth
def create_split():
    """POST /splits — Create a split; the caller becomes creator and first member."""
    data = CreateSplitSchema().load(request.get_json(force=True) or {})
    result = _run(lambda: split_service.serialize_split(
        split_service.create_split(
            creator_id=g.user_id,
            data=data,
            session=db.session,
        )
    ))
    return jsonify({"data": result, "warnings": []}), 201


@splits_bp.route("", methods=["GET"])
@optional_auth
def list_splits():
    """
    GET /splits — Open splits, plus the caller's own closed splits when
    signed in. Open splits whose time has passed are hidden until the
    expiry sweep closes them.
    """
    now = utc_now()
    splits = split_service.list_splits(session=db.session, user_id=g.user_id)
    visible = [
        s for s in splits
        if s.is_closed or not split_service.is_expired(s, now)
    ]
    return jsonify({
        "data": [split_service.serialize_split(s) for s in visible],
        "warnings": [],
    }), 200


@splits_bp.route("/<int:split_id>", methods=["GET"])
@require_auth
def get_split(split_id: int):
    """GET /splits/:id"""
    split = split_service.get_split(split_id=split_id, session=db.session)
    return jsonify({"data": split_service.serialize_split(split), "warnings": []}), 200


@splits_bp.route("/<int:split_id>/requests", methods=["POST"])
@require_auth
def request_join(split_id: int):
    """
    POST /splits/:id/requests — File a join request. The request and the
    automated message to the creator commit together.
    """
    tz = _rate_limit_tz()

    def work():
        split_request, message = split_service.request_join(
            split_id=split_id,
            user_id=g.user_id,
            session=db.session,
            tz=tz,
        )
        return {
            "request": split_service.serialize_request(split_request),
            "message": messaging_service.serialize_message(message),
        }

    result = _run(work)

    push_service.send_push(
        result["message"]["receiver_id"],
        "New Join Request",
        push_service.preview(result["message"]["content"]),
    )
    return jsonify({"data": result, "warnings": []}), 201


@splits_bp.route("/<int:split_id>/leave", methods=["POST"])
@require_auth
def leave_split(split_id: int):
    """POST /splits/:id/leave — Succeeds even if the caller already left."""
    _run(lambda: split_service.leave_split(
        split_id=split_id,
        user_id=g.user_id,
        session=db.session,
    ))
    return jsonify({"data": {"message": "You left the split."}, "warnings": []}), 200


@splits_bp.route("/<int:split_id>/complete", methods=["POST"])
@require_auth
def mark_complete(split_id: int):
    """POST /splits/:id/complete — Close the split early (creator only)."""
    result = _run(lambda: split_service.serialize_split(
        split_service.mark_complete(
            split_id=split_id,
            caller_id=g.user_id,
            session=db.session,
        )
    ))
    return jsonify({"data": result, "warnings": []}), 200


@splits_bp.route("/<int:split_id>", methods=["DELETE"])
@require_auth
def delete_split(split_id: int):
    """DELETE /splits/:id — Soft delete (creator or admin)."""
    _run(lambda: split_service.delete_split(
        split_id=split_id,
        caller_id=g.user_id,
        session=db.session,
    ))
    return jsonify({"data": {"message": "Split deleted."}, "warnings": []}), 200
