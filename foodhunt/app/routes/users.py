# foodhunt/app/routes/users.py
from flask import Blueprint, g, jsonify

from foodhunt.app.extensions import db
from foodhunt.app.middleware.auth_middleware import require_auth
from foodhunt.app.services import auth_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me", methods=["GET"])
@require_auth
def me():
    # includes active_split_id, the caller's most recent split
    result = auth_service.get_current_user(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
