"""
Unit tests for balance_service data-access helpers and get_event_balance_response.

These tests avoid Flask and real DB access. Every DB interaction is mocked
through a fake SQLAlchemy session object.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from roomledger.app.errors import AppError, ErrorCode
from roomledger.app.services import balance_service


def _share(user_id: int, owed: str, paid: str = "0.00", is_creator: bool = False):
    return SimpleNamespace(
        user_id=user_id,
        amount_owed=Decimal(owed),
        amount_paid=Decimal(paid),
        is_creator=is_creator,
    )


def test_get_event_rooms_returns_all_rows():
    session = MagicMock()
    rows = [SimpleNamespace(id=1), SimpleNamespace(id=2)]
    session.execute.return_value.scalars.return_value.all.return_value = rows

    assert balance_service.get_event_rooms(event_id=3, session=session) == rows
    session.execute.assert_called_once()


def test_usernames_skips_query_for_empty_ids():
    session = MagicMock()

    assert balance_service._usernames([], session) == {}
    session.execute.assert_not_called()


def test_balance_response_shape():
    session = MagicMock()
    rooms = [
        SimpleNamespace(created_by_user_id=1, shares=[_share(1, "0.00", is_creator=True), _share(2, "20.00")]),
        SimpleNamespace(created_by_user_id=2, shares=[_share(2, "0.00", is_creator=True), _share(1, "15.00")]),
    ]

    with patch.object(balance_service.event_service, "get_event_for_member"), \
            patch.object(balance_service.event_service, "get_member_ids", return_value=[1, 2]), \
            patch.object(balance_service, "get_event_rooms", return_value=rooms), \
            patch.object(balance_service, "_usernames", return_value={1: "ann", 2: "ben"}):
        result = balance_service.get_event_balance_response(event_id=4, caller_id=1, session=session)

    assert result["event_id"] == 4
    assert [b["name"] for b in result["balances"]] == ["ann", "ben"]
    assert result["simplified_transfers"] == [{
        "from_user_id": 2, "from_name": "ben",
        "to_user_id": 1, "to_name": "ann",
        "amount": "5.00",
    }]
    assert result["original_obligation_count"] == 2
    assert result["simplified_transfer_count"] == 1
    assert result["balance_sum"] == "0.00"


def test_balance_response_requires_membership():
    session = MagicMock()
    denied = AppError(ErrorCode.FORBIDDEN, "nope", http_status=403)

    with patch.object(balance_service.event_service, "get_event_for_member", side_effect=denied):
        with pytest.raises(AppError) as exc_info:
            balance_service.get_event_balance_response(event_id=4, caller_id=9, session=session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


def test_compute_event_balances_uses_roster_order():
    session = MagicMock()
    rooms = [SimpleNamespace(created_by_user_id=5, shares=[_share(6, "4.00")])]

    with patch.object(balance_service.event_service, "get_member_ids", return_value=[6, 5]), \
            patch.object(balance_service, "get_event_rooms", return_value=rooms):
        balances = balance_service.compute_event_balances(event_id=1, session=session)

    assert list(balances) == [6, 5]
    assert balances[6]["net"] == Decimal("-4.00")
