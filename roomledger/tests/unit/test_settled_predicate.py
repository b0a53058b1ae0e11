"""
tests/unit/test_settled_predicate.py — room_service.compute_is_settled / recompute_settled.

A room is settled iff no non-creator share owes more than the tolerance.
The creator's own share never counts, and overpayment counts as paid.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

from roomledger.app.services.room_service import compute_is_settled, recompute_settled


def _share(owed: str, paid: str, is_creator: bool = False):
    return SimpleNamespace(
        amount_owed=Decimal(owed),
        amount_paid=Decimal(paid),
        is_creator=is_creator,
    )


def test_all_paid_is_settled():
    shares = [_share("0.00", "0.00", is_creator=True), _share("30.00", "30.00"), _share("30.00", "30.00")]
    assert compute_is_settled(shares) is True


def test_partial_payment_is_not_settled():
    shares = [_share("30.00", "30.00"), _share("30.00", "20.00")]
    assert compute_is_settled(shares) is False


def test_one_cent_short_is_within_tolerance():
    assert compute_is_settled([_share("30.00", "29.99")]) is True


def test_two_cents_short_is_outstanding():
    assert compute_is_settled([_share("30.00", "29.98")]) is False


def test_overpaid_counts_as_settled():
    assert compute_is_settled([_share("30.00", "45.00")]) is True


def test_creator_share_is_ignored():
    shares = [_share("50.00", "0.00", is_creator=True), _share("10.00", "10.00")]
    assert compute_is_settled(shares) is True


def test_zero_owed_share_is_settled():
    assert compute_is_settled([_share("0.00", "0.00")]) is True


class TestRecomputeSettled:

    def test_reports_transition_once(self):
        room = SimpleNamespace(is_settled=False, updated_at=None, shares=[_share("10.00", "10.00")])

        assert recompute_settled(room) is True
        assert room.is_settled is True
        assert room.updated_at is not None

        assert recompute_settled(room) is False
        assert room.is_settled is True

    def test_unsettled_room_stays_unsettled(self):
        room = SimpleNamespace(is_settled=False, updated_at=None, shares=[_share("10.00", "5.00")])

        assert recompute_settled(room) is False
        assert room.is_settled is False

    def test_can_become_unsettled_again(self):
        room = SimpleNamespace(is_settled=True, updated_at=None, shares=[_share("10.00", "0.00")])

        assert recompute_settled(room) is False
        assert room.is_settled is False
