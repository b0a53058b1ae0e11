"""
tests/integration/test_balances.py — Integration tests for GET /events/:id/balances.

Scenario: Room1 (creator U1, U2 owes 20), Room2 (creator U2, U1 owes 15)
  net[U1] = 20 - 15 = +5, net[U2] = 15 - 20 = -5
  → one transfer {U2 → U1, 5.00} replaces two obligations.
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import (
    add_event_member,
    auth_headers,
    make_event,
    make_room,
    make_user,
    resolve_settlement,
    submit_settlement,
    token_for,
)


def _two_room_event(client, app):
    u1 = make_user(app, "u1")
    u2 = make_user(app, "u2")
    t1, t2 = token_for(app, u1), token_for(app, u2)
    event = make_event(client, t1, "Weekend")
    add_event_member(client, t1, event["id"], u2)

    room1 = make_room(
        client, t1, [u2], total_amount="20.00", split_type="custom",
        custom_amounts=["20.00"], name="Room1", event_id=event["id"],
    ).get_json()["data"]
    room2 = make_room(
        client, t2, [u1], total_amount="15.00", split_type="custom",
        custom_amounts=["15.00"], name="Room2", event_id=event["id"],
    ).get_json()["data"]
    return event, (u1, t1), (u2, t2), room1, room2


def _balances(client, token, event_id):
    resp = client.get(f"/api/v1/events/{event_id}/balances", headers=auth_headers(token))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def test_two_rooms_collapse_into_one_transfer(app, client):
    event, (u1, t1), (u2, t2), _, _ = _two_room_event(client, app)

    data = _balances(client, t1, event["id"])

    by_user = {b["user_id"]: b for b in data["balances"]}
    assert by_user[u1]["owed_out"] == "15.00"
    assert by_user[u1]["owed_in"] == "20.00"
    assert by_user[u1]["net"] == "5.00"
    assert by_user[u2]["net"] == "-5.00"

    assert data["simplified_transfers"] == [{
        "from_user_id": u2,
        "from_name": "u2",
        "to_user_id": u1,
        "to_name": "u1",
        "amount": "5.00",
    }]
    assert data["original_obligation_count"] == 2
    assert data["simplified_transfer_count"] == 1
    assert Decimal(data["balance_sum"]) == Decimal("0")


def test_balances_reflect_approved_settlements(app, client):
    event, (u1, t1), (u2, t2), room1, _ = _two_room_event(client, app)
    s = submit_settlement(client, t2, room1["id"], "20.00").get_json()["data"]
    resolve_settlement(client, t1, s["id"])

    data = _balances(client, t2, event["id"])

    by_user = {b["user_id"]: b for b in data["balances"]}
    assert by_user[u1]["net"] == "-15.00"
    assert data["simplified_transfers"][0]["from_user_id"] == u1
    assert data["simplified_transfers"][0]["amount"] == "15.00"
    assert data["original_obligation_count"] == 1


def test_pending_settlements_do_not_move_balances(app, client):
    event, (u1, t1), (u2, t2), room1, _ = _two_room_event(client, app)
    submit_settlement(client, t2, room1["id"], "20.00")

    data = _balances(client, t1, event["id"])

    assert data["simplified_transfers"][0]["amount"] == "5.00"


def test_roster_member_without_rooms_has_zero_balance(app, client):
    event, (u1, t1), _, _, _ = _two_room_event(client, app)
    u3 = make_user(app, "u3")
    add_event_member(client, t1, event["id"], u3)

    data = _balances(client, t1, event["id"])

    by_user = {b["user_id"]: b for b in data["balances"]}
    assert by_user[u3] == {
        "user_id": u3, "name": "u3", "owed_out": "0.00", "owed_in": "0.00", "net": "0.00",
    }


def test_rooms_outside_event_are_ignored(app, client):
    event, (u1, t1), (u2, t2), _, _ = _two_room_event(client, app)
    make_room(client, t1, [u2], total_amount="500.00", name="Unrelated")

    data = _balances(client, t1, event["id"])

    assert data["simplified_transfers"][0]["amount"] == "5.00"


def test_non_member_gets_403(app, client):
    event, _, _, _, _ = _two_room_event(client, app)
    outsider = make_user(app, "outsider")

    resp = client.get(
        f"/api/v1/events/{event['id']}/balances",
        headers=auth_headers(token_for(app, outsider)),
    )

    assert resp.status_code == 403


def test_empty_event_has_no_transfers(app, client):
    u1 = make_user(app, "solo")
    t1 = token_for(app, u1)
    event = make_event(client, t1)

    data = _balances(client, t1, event["id"])

    assert data["simplified_transfers"] == []
    assert data["original_obligation_count"] == 0
