"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount, method enum.
  - services/settlement_service.py:
      - CREATOR_CANNOT_SETTLE (422)       — needs the room's creator
      - NO_OUTSTANDING_BALANCE (422)      — needs the payer's share
      - PENDING_SETTLEMENT_EXISTS (409)   — needs a DB lookup
      - OVERPAYMENT warning (201)         — needs the outstanding balance

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from roomledger.app.errors import ErrorCode
from roomledger.app.models.settlement import PaymentMethod
from roomledger.app.money import MAX_AMOUNT, has_precision


def _validate_monetary_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places and at most MAX_AMOUNT.
    More places are REJECTED (INVALID_AMOUNT_PRECISION), never rounded.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    if not has_precision(value):
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)

    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}.")


class SubmitSettlementSchema(Schema):
    """
    POST /rooms/:id/settlements

    The payer is the authenticated caller and the receiver is always the
    room creator; neither is taken from the body. Partial payments and
    overpayments are both accepted here.
    """

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    method = fields.Enum(
        PaymentMethod,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_PAYMENT_METHOD},
    )

    # Reference to an uploaded receipt; storage is external.
    proof = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500, error="proof must be at most 500 characters."),
    )

    notes = fields.Str(load_default=None, allow_none=True)


class ResolveSettlementSchema(Schema):
    """POST /settlements/:id/resolve — {"approved": true|false}."""

    approved = fields.Bool(required=True)


class HistoryQuerySchema(Schema):
    """Query string for GET /settlements/history."""

    limit = fields.Int(
        load_default=50,
        validate=validate.Range(min=1, max=200, error="limit must be between 1 and 200."),
    )
