"""
schemas/split_schema.py — Marshmallow schemas for meal-split endpoints.

Validation responsibility:
  - This file: field types, lengths, non-blank strings, price precision,
    people_needed >= 2, request status enum.
  - services/split_service.py:
      - SPLIT_TIME_IN_PAST (needs the service clock)
      - SCHEDULE_CONFLICT  (needs the creator's other open splits)
      - everything that needs a DB lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the explanation.
"""

from __future__ import annotations

from datetime import timezone
from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from foodhunt.app.errors import ErrorCode
from foodhunt.app.models.split_request import RequestStatus


def _validate_non_empty_after_trim(value: str) -> None:
    """Rejects blank and whitespace-only strings."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_price(value: Decimal) -> None:
    """
    Price must be strictly positive with at most 2 decimal places.
    Extra precision is rejected, never rounded.
    """
    if value <= Decimal("0"):
        raise ValidationError("Total price must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3 → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_PRICE_PRECISION)


class CreateSplitSchema(Schema):
    """
    POST /splits

    The creator is the authenticated caller; creator_id and creator_name are
    never read from the body. split_time is an ISO-8601 instant; a value
    without an offset is read as UTC.
    """

    vendor_id = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=64), _validate_non_empty_after_trim],
    )
    vendor_name = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=200), _validate_non_empty_after_trim],
    )
    dish_name = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=200), _validate_non_empty_after_trim],
    )

    total_price = fields.Decimal(
        required=True,
        validate=_validate_price,
    )

    people_needed = fields.Int(
        required=True,
        strict=True,  # reject floats like 2.0 — integers only
        validate=validate.Range(
            min=2,
            error="A split needs at least 2 people.",
        ),
    )

    time_note = fields.Str(
        load_default="",
        validate=validate.Length(max=200),
    )

    split_time = fields.AwareDateTime(
        required=True,
        default_timezone=timezone.utc,
    )


class RespondToRequestSchema(Schema):
    """POST /split-requests/:id/respond"""

    status = fields.Str(
        required=True,
        validate=validate.OneOf(
            [RequestStatus.ACCEPTED.value, RequestStatus.REJECTED.value],
            error="status must be 'accepted' or 'rejected'.",
        ),
    )
