"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - User registration and credential validation
  - JWT access token creation (HS256)
  - Password hashing (bcrypt) and verification
  - Admin promotion (CLI only)

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - current_app.config is used ONLY to read the JWT secret, JWT expiry and
    bcrypt cost factor.

Token design:
  - Access token: JWT, HS256, TTL from JWT_ACCESS_TOKEN_EXPIRES, sub = user_id (str)
  - There are no refresh tokens; clients log in again when the token expires.

Password storage:
  - Hashed with bcrypt (cost factor from config BCRYPT_LOG_ROUNDS, default 12)
  - Raw password is never stored, never logged
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foodhunt.app.errors import AppError, ErrorCode, NotFoundError
from foodhunt.app.models.user import User, UserRole

log = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _create_access_token(user_id: int) -> str:
    """
    Creates a signed JWT access token.
    Payload: sub (user_id as str), iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expiry,
        # Keeps two tokens issued in the same second distinct.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def _normalise_email(email: str) -> str:
    return email.strip().lower()


def build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "pfp_url": user.pfp_url,
        "active_split_id": user.active_split_id,
        "created_at": user.created_at.isoformat(),
    }


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        name: str,
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new student account and issues an access token.

    Raises:
      AppError(DUPLICATE_EMAIL, 409) — email already registered

    Returns: {"user": {...}, "access_token": "..."}
    """
    email = _normalise_email(email)

    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    user = User(
        name=name.strip(),
        email=email,
        password_hash=_hash_password(password),
        role=UserRole.STUDENT.value,
        is_disabled=False,
    )
    session.add(user)
    try:
        session.flush()  # populate user.id before issuing the token
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email.
        session.rollback()
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    log.info("user %s registered", user.id)
    return {
        "user": build_user_dict(user),
        "access_token": _create_access_token(user.id),
    }


def login_user(
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and issues a new access token.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — unknown email, wrong password, or
      a disabled account. One error for all three so accounts cannot be
      enumerated.

    Returns: {"user": {...}, "access_token": "..."}
    """
    user = session.execute(
        select(User).where(User.email == _normalise_email(email))
    ).scalar_one_or_none()

    # bcrypt.checkpw compares in constant time.
    if (
            user is None
            or user.is_disabled
            or not bcrypt.checkpw(
                password.encode("utf-8"),
                user.password_hash.encode("utf-8"),
            )
    ):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )

    return {
        "user": build_user_dict(user),
        "access_token": _create_access_token(user.id),
    }


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user, including the
    active-split pointer.

    Raises:
      NotFoundError(USER_NOT_FOUND, 404) — user_id from JWT no longer exists.
    """
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
        )
    return build_user_dict(user)


def grant_admin(email: str, session: Session) -> User:
    """Promotes the user with this email to admin. Used by `flask grant-admin`."""
    user = session.execute(
        select(User).where(User.email == _normalise_email(email))
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"No user is registered with '{email}'.",
        )
    user.role = UserRole.ADMIN.value
    session.flush()
    log.info("user %s promoted to admin", user.id)
    return user
