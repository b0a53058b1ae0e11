"""
money.py — Shared monetary helpers.

All ledger amounts are Decimal with two decimal places. Float never appears
in ledger arithmetic. The tolerance is an absolute amount (one cent by
default, see LEDGER_TOLERANCE in config.py) and does not scale with the
size of the transaction.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_TOLERANCE = Decimal("0.01")
# Largest value a NUMERIC(12, 2) column holds.
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value) -> Decimal:
    """Quantises any numeric value to two decimal places (ROUND_HALF_EVEN)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


def floor_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_DOWN)


def remaining(amount_owed: Decimal, amount_paid: Decimal) -> Decimal:
    """Outstanding amount on a share, clamped at zero."""
    diff = to_money(amount_owed) - to_money(amount_paid)
    return diff if diff > ZERO else ZERO


def is_outstanding(
        amount_owed: Decimal,
        amount_paid: Decimal,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> bool:
    """True if the share still owes more than `tolerance`."""
    return to_money(amount_owed) - to_money(amount_paid) > tolerance


def has_precision(value: Decimal, places: int = 2) -> bool:
    """True if `value` has at most `places` decimal places."""
    exponent = value.as_tuple().exponent
    return isinstance(exponent, int) and exponent >= -places
