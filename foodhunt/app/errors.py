"""
errors.py — AppError, its typed subclasses, and the error code registry.

Every error returned by the FoodHunt API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose shown to the user verbatim.
    They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Typed failures ─────────────────────────────────────────────────────────
#
# Each subclass fixes the HTTP status for its family so call sites only pick
# a code and a message. Callers may catch the family (e.g. ConflictError)
# without inspecting codes.
# ──────────────────────────────────────────────────────────────────────────

class InputError(AppError):
    """Input that passed schema validation but breaks a service-level rule."""

    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        super().__init__(code, message, 422, field=field)


class NotFoundError(AppError):

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 404)


class ConflictError(AppError):

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 409)


class AlreadyJoinedError(ConflictError):

    def __init__(self, message: str = "You have already joined this split.") -> None:
        super().__init__(ErrorCode.ALREADY_JOINED, message)


class DuplicateRequestError(ConflictError):

    def __init__(self, message: str = "Request already sent.") -> None:
        super().__init__(ErrorCode.DUPLICATE_REQUEST, message)


class RateLimitError(AppError):

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.RATE_LIMITED, message, 429)


class TransientError(AppError):
    """Store or notifier failure that is safe to retry."""

    def __init__(
            self,
            message: str = "The service is temporarily unavailable. Please try again.",
    ) -> None:
        super().__init__(ErrorCode.TRANSIENT_ERROR, message, 503)


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400, 422) ───────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"          # 400
    INVALID_FIELD              = "INVALID_FIELD"          # 400
    INVALID_PRICE_PRECISION    = "INVALID_PRICE_PRECISION"  # 400
    SPLIT_TIME_IN_PAST         = "SPLIT_TIME_IN_PAST"     # 422
    SELF_MESSAGE               = "SELF_MESSAGE"           # 422

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    SCHEDULE_CONFLICT          = "SCHEDULE_CONFLICT"
    ALREADY_JOINED             = "ALREADY_JOINED"
    DUPLICATE_REQUEST          = "DUPLICATE_REQUEST"
    SPLIT_CLOSED               = "SPLIT_CLOSED"
    REQUEST_NOT_PENDING        = "REQUEST_NOT_PENDING"

    # ── Rate Limiting (429) ────────────────────────────────────────────────
    RATE_LIMITED               = "RATE_LIMITED"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    SPLIT_NOT_FOUND            = "SPLIT_NOT_FOUND"
    REQUEST_NOT_FOUND          = "REQUEST_NOT_FOUND"
    CONVERSATION_NOT_FOUND     = "CONVERSATION_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (5xx) ────────────────────────────────────────────────
    TRANSIENT_ERROR            = "TRANSIENT_ERROR"        # 503
    INTERNAL_ERROR             = "INTERNAL_ERROR"         # 500
