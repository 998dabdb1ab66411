"""
schemas/message_schema.py — Marshmallow schema for direct messages.

Whether the receiver exists, and the no-self-message rule, are checked in
services/messaging_service.py.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("Message must not be blank.")


class SendMessageSchema(Schema):
    """POST /conversations/messages"""

    receiver_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            error="receiver_id must be a positive integer.",
        ),
    )

    content = fields.Str(
        required=True,
        validate=[
            validate.Length(max=2000, error="Message must be at most 2000 characters."),
            _validate_non_empty_after_trim,
        ],
    )
