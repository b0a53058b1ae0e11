"""
schemas/room_schema.py — Marshmallow schemas for room endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - CUSTOM_AMOUNTS_SENT_FOR_EQUAL (400) — request shape rule
      - custom_amounts required when split_type='custom'
      - DUPLICATE_PARTICIPANT (400)        — request shape rule
      - Non-empty-after-trim enforcement for name
  - services/room_service.py:
      - EMPTY_PARTICIPANTS, CREATOR_IN_PARTICIPANTS — need the caller id
      - CUSTOM_AMOUNTS_MISMATCH, CUSTOM_SUM_EXCEEDS_TOTAL — Decimal arithmetic
      - PARTICIPANT_NOT_EVENT_MEMBER, USER_NOT_FOUND — DB lookups

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from roomledger.app.errors import ErrorCode
from roomledger.app.models.room import SplitType
from roomledger.app.money import MAX_AMOUNT, has_precision


# ── Shared monetary amount validators ─────────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED with
# INVALID_AMOUNT_PRECISION, never rounded or truncated. Amounts above
# MAX_AMOUNT would overflow the NUMERIC(12, 2) columns.
# ──────────────────────────────────────────────────────────────────────────

def _validate_precision(value: Decimal) -> None:
    # Decimal("10.123") has three places → REJECT
    if not has_precision(value):
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


_amount_cap = validate.Range(
    max=MAX_AMOUNT,
    error=f"Amount must not exceed {MAX_AMOUNT}.",
)


def _validate_monetary_amount(value: Decimal) -> None:
    """Strictly positive, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    _validate_precision(value)


def _validate_share_amount(value: Decimal) -> None:
    """A custom share may be zero but never negative."""
    if value < Decimal("0"):
        raise ValidationError("Custom amounts must not be negative.")
    _validate_precision(value)


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(name)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


# ── Create room ────────────────────────────────────────────────────────────

class CreateRoomSchema(Schema):
    """
    POST /rooms

    The creator comes from the bearer token, never from the body, and is
    added to the room automatically with amount_owed = 0.

    Split type behaviour:
      - split_type='equal'  → client must NOT send custom_amounts.
      - split_type='custom' → client MUST send custom_amounts, one per
                              entry of participant_ids, in the same order.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(load_default=None, allow_none=True)

    total_amount = fields.Decimal(
        required=True,
        validate=[_validate_monetary_amount, _amount_cap],
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    participant_ids = fields.List(
        fields.Int(
            strict=True,
            validate=validate.Range(min=1, error="user_id must be a positive integer."),
        ),
        required=True,
    )

    custom_amounts = fields.List(
        fields.Decimal(validate=[_validate_share_amount, _amount_cap]),
        load_default=None,
    )

    event_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="event_id must be a positive integer."),
    )

    @validates_schema
    def validate_split_coherence(self, data: dict, **kwargs) -> None:
        """
        1. CUSTOM_AMOUNTS_SENT_FOR_EQUAL: custom_amounts with split_type='equal'.
        2. custom_amounts required with split_type='custom'.
        3. DUPLICATE_PARTICIPANT: a user_id listed twice.
        """
        split_type = data.get("split_type", SplitType.EQUAL)
        custom_amounts = data.get("custom_amounts")

        if split_type == SplitType.EQUAL and custom_amounts is not None:
            raise ValidationError(
                {"custom_amounts": [ErrorCode.CUSTOM_AMOUNTS_SENT_FOR_EQUAL]}
            )
        if split_type == SplitType.CUSTOM and custom_amounts is None:
            raise ValidationError(
                {"custom_amounts": ["custom_amounts is required when split_type is 'custom'."]}
            )

        participant_ids = data.get("participant_ids") or []
        if len(participant_ids) != len(set(participant_ids)):
            raise ValidationError(
                {"participant_ids": [ErrorCode.DUPLICATE_PARTICIPANT]}
            )


# ── Mark participant payment ───────────────────────────────────────────────

class MarkPaymentSchema(Schema):
    """POST /rooms/:id/participants/:uid/payment — creator override."""

    paid = fields.Bool(required=True)
