"""
routes/split_requests.py — Join-request route handlers.

Endpoints (url_prefix=/api/v1/split-requests):
  GET    /split-requests              → 200  caller's requests, newest first
  POST   /split-requests/:id/respond  → 200  accept / reject (creator or admin)
  DELETE /split-requests/:id          → 200  cancel a pending request (requester)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from foodhunt.app.extensions import db
from foodhunt.app.middleware.auth_middleware import require_auth
from foodhunt.app.models.split_request import RequestStatus
from foodhunt.app.schemas.split_schema import RespondToRequestSchema
from foodhunt.app.services import push_service, split_service, unit_of_work

split_requests_bp = Blueprint("split_requests", __name__)


def _run(work):
    return unit_of_work.run(
        db.session,
        work,
        attempts=current_app.config.get("TRANSIENT_RETRY_ATTEMPTS", 3),
    )


@split_requests_bp.route("", methods=["GET"])
@require_auth
def list_my_requests():
    """GET /split-requests"""
    requests_ = split_service.list_my_requests(user_id=g.user_id, session=db.session)
    return jsonify({
        "data": [split_service.serialize_request(r) for r in requests_],
        "warnings": [],
    }), 200


@split_requests_bp.route("/<int:request_id>/respond", methods=["POST"])
@require_auth
def respond(request_id: int):
    """POST /split-requests/:id/respond — body: {"status": "accepted" | "rejected"}"""
    data = RespondToRequestSchema().load(request.get_json(force=True) or {})
    result = _run(lambda: split_service.serialize_request(
        split_service.respond_to_request(
            request_id=request_id,
            status=data["status"],
            caller_id=g.user_id,
            session=db.session,
        )
    ))

    verb = "accepted" if result["status"] == RequestStatus.ACCEPTED.value else "declined"
    push_service.send_push(
        result["requester_id"],
        "Join Request Update",
        f"Your request to join split #{result['split_id']} was {verb}.",
    )
    return jsonify({"data": result, "warnings": []}), 200


@split_requests_bp.route("/<int:request_id>", methods=["DELETE"])
@require_auth
def cancel(request_id: int):
    """DELETE /split-requests/:id — Also removes the automated message."""
    _run(lambda: split_service.cancel_request(
        request_id=request_id,
        caller_id=g.user_id,
        session=db.session,
    ))
    return jsonify({"data": {"message": "Request cancelled."}, "warnings": []}), 200
