"""
middleware/auth_middleware.py — JWT authentication decorators.

@require_auth:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature (HS256) and expiry
  3. Attaches user_id (int) to flask.g for the duration of the request
  4. Raises the appropriate 401 error if any step fails

@optional_auth:
  Same as above when an Authorization header is present. Without one the
  request proceeds anonymously with g.user_id = None (GET /splits).

Strict responsibility boundary:
  - This middleware extracts the JWT and attaches user_id to flask.g ONLY.
  - It does NOT perform business authorization (split ownership, admin role).
    Middleware = authentication (401). Service = authorization (403).
  - Services receive user_id as a plain integer argument, with no knowledge
    of JWT or HTTP headers.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from foodhunt.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Attaches the authenticated user's ID to flask.g.user_id. Raises AppError
    for all auth failures; the global error handler converts these to JSON.

    Usage:
        @splits_bp.route("/<int:split_id>/leave", methods=["POST"])
        @require_auth
        def leave(split_id):
            user_id = g.user_id  # always an int when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def optional_auth(f: Callable) -> Callable:
    """Like require_auth, but a missing header leaves g.user_id = None."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if request.headers.get("Authorization"):
            _authenticate_request()
        else:
            g.user_id = None
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and sets flask.g.user_id.

    Kept apart from the decorators so tests can call it directly inside a
    request context.
    """
    raw_token = _bearer_token()
    g.user_id = _user_id_from_token(raw_token)


def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    return parts[1]


def _user_id_from_token(raw_token: str) -> int:
    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Log in again to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        # bad signature, malformed token, invalid claims
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid user ID.",
            401,
        )
