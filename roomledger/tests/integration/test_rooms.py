"""
tests/integration/test_rooms.py — Integration tests for room endpoints.

Endpoints covered:
  POST /rooms                                  → 201
  GET  /rooms                                  → 200
  GET  /rooms/:id                              → 200
  POST /rooms/:id/participants/:uid/payment    → 200

Rules verified:
  - Equal split: each of k participants owes total/(k+1), creator owes 0
  - Conservation: sum(owed) + creator_amount == total
  - Custom split: remainder absorbed by the creator
  - Creator-only payment override never touches settlements
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import (
    auth_headers,
    make_room,
    make_user,
    share_of,
    submit_settlement,
    token_for,
)


def _setup(app):
    """Creator + A + B, each with a token."""
    creator = make_user(app, "creator")
    a = make_user(app, "alice")
    b = make_user(app, "bob")
    return (
        (creator, token_for(app, creator)),
        (a, token_for(app, a)),
        (b, token_for(app, b)),
    )


def _conserved(room: dict) -> bool:
    owed = sum(Decimal(s["amount_owed"]) for s in room["shares"])
    return owed + Decimal(room["creator_amount"]) == Decimal(room["total_amount"])


# ═══════════════════════════════════════════════════════════════════════════
# createRoom
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateRoom:

    def test_equal_split_dinner_scenario(self, app, client):
        """total=90, creator + A + B → A owes 30, B owes 30, creator owes 0."""
        (creator, ctok), (a, _), (b, _) = _setup(app)

        resp = make_room(client, ctok, [a, b], total_amount="90.00")

        assert resp.status_code == 201
        room = resp.get_json()["data"]
        assert room["split_type"] == "equal"
        assert share_of(room, a)["amount_owed"] == "30.00"
        assert share_of(room, b)["amount_owed"] == "30.00"
        creator_share = share_of(room, creator)
        assert creator_share["amount_owed"] == "0.00"
        assert creator_share["is_creator"] is True
        assert room["is_settled"] is False
        assert _conserved(room)

    def test_equal_split_remainder_goes_to_creator(self, app, client):
        (creator, ctok), (a, _), (b, _) = _setup(app)

        room = make_room(client, ctok, [a, b], total_amount="100.00").get_json()["data"]

        assert share_of(room, a)["amount_owed"] == "33.33"
        assert share_of(room, b)["amount_owed"] == "33.33"
        assert room["creator_amount"] == "33.34"
        assert _conserved(room)

    def test_custom_split_remainder_absorbed_by_creator(self, app, client):
        (creator, ctok), (a, _), (b, _) = _setup(app)

        resp = make_room(
            client, ctok, [a, b],
            total_amount="100.00",
            split_type="custom",
            custom_amounts=["50.00", "20.00"],
        )

        assert resp.status_code == 201
        room = resp.get_json()["data"]
        assert share_of(room, a)["amount_owed"] == "50.00"
        assert share_of(room, b)["amount_owed"] == "20.00"
        assert room["creator_amount"] == "30.00"
        assert _conserved(room)

    def test_shares_keep_participant_order(self, app, client):
        (creator, ctok), (a, _), (b, _) = _setup(app)

        room = make_room(client, ctok, [b, a]).get_json()["data"]

        assert [s["user_id"] for s in room["shares"]] == [creator, b, a]

    def test_custom_sum_exceeds_total_returns_422(self, app, client):
        (creator, ctok), (a, _), (b, _) = _setup(app)

        resp = make_room(
            client, ctok, [a, b],
            total_amount="50.00",
            split_type="custom",
            custom_amounts=["30.00", "30.00"],
        )

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "CUSTOM_SUM_EXCEEDS_TOTAL"

    def test_custom_amounts_length_mismatch_returns_422(self, app, client):
        (creator, ctok), (a, _), (b, _) = _setup(app)

        resp = make_room(
            client, ctok, [a, b],
            total_amount="50.00",
            split_type="custom",
            custom_amounts=["10.00"],
        )

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "CUSTOM_AMOUNTS_MISMATCH"

    def test_empty_participants_returns_422(self, app, client):
        (creator, ctok), _, _ = _setup(app)

        resp = make_room(client, ctok, [])

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "EMPTY_PARTICIPANTS"

    def test_creator_listed_as_participant_returns_422(self, app, client):
        (creator, ctok), (a, _), _ = _setup(app)

        resp = make_room(client, ctok, [a, creator])

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "CREATOR_IN_PARTICIPANTS"

    def test_duplicate_participant_returns_400(self, app, client):
        (creator, ctok), (a, _), _ = _setup(app)

        resp = make_room(client, ctok, [a, a])

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "DUPLICATE_PARTICIPANT"

    def test_zero_total_returns_400(self, app, client):
        (creator, ctok), (a, _), _ = _setup(app)

        resp = make_room(client, ctok, [a], total_amount="0.00")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "total_amount"

    def test_total_beyond_column_range_returns_400(self, app, client):
        (creator, ctok), (a, _), _ = _setup(app)

        resp = make_room(client, ctok, [a], total_amount="10000000000.00")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "total_amount"

    def test_three_decimal_places_rejected(self, app, client):
        (creator, ctok), (a, _), _ = _setup(app)

        resp = make_room(client, ctok, [a], total_amount="10.005")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT_PRECISION"

    def test_unknown_participant_returns_404(self, app, client):
        (creator, ctok), (a, _), _ = _setup(app)

        resp = make_room(client, ctok, [a, 999999])

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"

    def test_missing_token_returns_401(self, app, client):
        resp = client.post("/api/v1/rooms", json={"name": "x"})

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_new_room_notifies_participants(self, app, client, sent_notifications):
        (creator, ctok), (a, _), (b, _) = _setup(app)

        make_room(client, ctok, [a, b], name="Groceries")

        assert sorted(n.user_id for n in sent_notifications) == sorted([a, b])
        assert all(n.kind == "expense_created" for n in sent_notifications)
        assert '"Groceries"' in sent_notifications[0].message


# ═══════════════════════════════════════════════════════════════════════════
# getRoomSummary / listRooms
# ═══════════════════════════════════════════════════════════════════════════

class TestReadRooms:

    def test_summary_shows_pending_settlement(self, app, client):
        (creator, ctok), (a, atok), (b, _) = _setup(app)
        room = make_room(client, ctok, [a, b]).get_json()["data"]
        submit_settlement(client, atok, room["id"], "30.00")

        resp = client.get(f"/api/v1/rooms/{room['id']}", headers=auth_headers(ctok))

        assert resp.status_code == 200
        summary = resp.get_json()["data"]
        pending = share_of(summary, a)["pending_settlement"]
        assert pending is not None
        assert pending["amount"] == "30.00"
        assert share_of(summary, b)["pending_settlement"] is None

    def test_participant_can_read_summary(self, app, client):
        (creator, ctok), (a, atok), _ = _setup(app)
        room = make_room(client, ctok, [a]).get_json()["data"]

        resp = client.get(f"/api/v1/rooms/{room['id']}", headers=auth_headers(atok))

        assert resp.status_code == 200

    def test_outsider_gets_403(self, app, client):
        (creator, ctok), (a, _), (b, btok) = _setup(app)
        room = make_room(client, ctok, [a]).get_json()["data"]

        resp = client.get(f"/api/v1/rooms/{room['id']}", headers=auth_headers(btok))

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_unknown_room_gets_404(self, app, client):
        (creator, ctok), _, _ = _setup(app)

        resp = client.get("/api/v1/rooms/424242", headers=auth_headers(ctok))

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "ROOM_NOT_FOUND"

    def test_list_rooms_includes_created_and_joined(self, app, client):
        (creator, ctok), (a, atok), (b, btok) = _setup(app)
        first = make_room(client, ctok, [a], name="First").get_json()["data"]
        second = make_room(client, atok, [b], name="Second").get_json()["data"]

        resp = client.get("/api/v1/rooms", headers=auth_headers(atok))

        ids = [r["id"] for r in resp.get_json()["data"]]
        assert set(ids) == {first["id"], second["id"]}

        creator_rooms = client.get("/api/v1/rooms", headers=auth_headers(ctok)).get_json()["data"]
        assert [r["id"] for r in creator_rooms] == [first["id"]]


# ═══════════════════════════════════════════════════════════════════════════
# markParticipantPayment
# ═══════════════════════════════════════════════════════════════════════════

class TestMarkParticipantPayment:

    def _mark(self, client, token, room_id, user_id, paid=True):
        return client.post(
            f"/api/v1/rooms/{room_id}/participants/{user_id}/payment",
            json={"paid": paid},
            headers=auth_headers(token),
        )

    def test_mark_paid_sets_paid_to_owed_without_settlement(self, app, client):
        """Creator marks B paid → B.amount_paid == B.amount_owed; no settlement rows."""
        (creator, ctok), (a, _), (b, _) = _setup(app)
        room = make_room(client, ctok, [a, b]).get_json()["data"]

        resp = self._mark(client, ctok, room["id"], b)

        assert resp.status_code == 200
        updated = resp.get_json()["data"]
        assert share_of(updated, b)["amount_paid"] == share_of(updated, b)["amount_owed"]
        assert updated["is_settled"] is False

        settlements = client.get(
            f"/api/v1/rooms/{room['id']}/settlements", headers=auth_headers(ctok)
        ).get_json()["data"]
        assert settlements == []

    def test_mark_all_paid_settles_room(self, app, client, sent_notifications):
        (creator, ctok), (a, _), (b, _) = _setup(app)
        room = make_room(client, ctok, [a, b]).get_json()["data"]

        self._mark(client, ctok, room["id"], a)
        resp = self._mark(client, ctok, room["id"], b)

        assert resp.get_json()["data"]["is_settled"] is True
        settled = [n for n in sent_notifications if n.kind == "expense_settled"]
        assert sorted(n.user_id for n in settled) == sorted([creator, a, b])

    def test_mark_unpaid_resets_and_unsettles(self, app, client):
        (creator, ctok), (a, _), _ = _setup(app)
        room = make_room(client, ctok, [a]).get_json()["data"]
        self._mark(client, ctok, room["id"], a, paid=True)

        resp = self._mark(client, ctok, room["id"], a, paid=False)

        updated = resp.get_json()["data"]
        assert share_of(updated, a)["amount_paid"] == "0.00"
        assert updated["is_settled"] is False

    def test_non_creator_gets_403(self, app, client):
        (creator, ctok), (a, atok), _ = _setup(app)
        room = make_room(client, ctok, [a]).get_json()["data"]

        resp = self._mark(client, atok, room["id"], a)

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "NOT_ROOM_CREATOR"

    def test_user_without_share_gets_404(self, app, client):
        (creator, ctok), (a, _), (b, _) = _setup(app)
        room = make_room(client, ctok, [a]).get_json()["data"]

        resp = self._mark(client, ctok, room["id"], b)

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "PARTICIPANT_NOT_FOUND"
