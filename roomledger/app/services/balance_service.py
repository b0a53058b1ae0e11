"""
services/balance_service.py — Event balance aggregation and debt simplification.

This file is the SINGLE SOURCE OF TRUTH for how cross-room balances are
computed. Room math itself lives in room_service.py; this module only reads
it.

Aggregation (per event):
  owed_out[m] += max(0, owed - paid)  for every non-creator share m holds
  owed_in[m]  += max(0, owed - paid)  for every non-creator share in a room
                                      m created
  net[m] = owed_in[m] - owed_out[m]

  Every roster member appears (in roster order) even with a zero balance.
  Users who hold shares in the event's rooms but are no longer on the
  roster are appended after the roster, in order of first appearance, so
  their debts still balance.

Simplification:
  Deterministic greedy min-cash-flow. Debtors (net < -tol) and creditors
  (net > tol) are each sorted by amount, largest first; ties keep input
  order because Python's sort is stable. Two cursors walk the lists; a
  transfer is emitted only when it exceeds the tolerance. For n members
  with nonzero net the result has at most n - 1 transfers. Not globally
  minimal.

  sum(net) must be zero within tolerance. Anything else means the rooms
  disagree with each other and raises NET_BALANCE_MISMATCH.

Layer rules:
  - No Flask imports. Returns plain dicts and lists.
  - Read-only. Nothing here flushes or commits.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from roomledger.app.errors import ErrorCode, LedgerArithmeticError
from roomledger.app.models.room import Room
from roomledger.app.models.user import User
from roomledger.app.money import DEFAULT_TOLERANCE, ZERO, is_outstanding, remaining
from roomledger.app.services import event_service


# ── Data access helpers ────────────────────────────────────────────────────

def get_event_rooms(event_id: int, session: Session) -> list[Room]:
    """Rooms tagged with event_id, oldest first."""
    stmt = (
        select(Room)
        .where(Room.event_id == event_id)
        .order_by(Room.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _usernames(user_ids: Iterable[int], session: Session) -> dict[int, str]:
    ids = list(user_ids)
    if not ids:
        return {}
    rows = session.execute(select(User.id, User.username).where(User.id.in_(ids))).all()
    return {uid: username for uid, username in rows}


# ── Core algorithms ────────────────────────────────────────────────────────

def aggregate_room_balances(
        rooms: Iterable[Room],
        roster_ids: Iterable[int] = (),
) -> dict[int, dict[str, Decimal]]:
    """
    Reduces many rooms to one {owed_out, owed_in, net} per person.

    Args:
        rooms:      Rooms with their shares loaded.
        roster_ids: Event member ids in roster order. Each gets an entry
                    even when all their amounts are zero.

    Returns:
        {user_id: {"owed_out": Decimal, "owed_in": Decimal, "net": Decimal}}
        in roster order, then first-appearance order.
    """
    balances: dict[int, dict[str, Decimal]] = {}

    def _entry(user_id: int) -> dict[str, Decimal]:
        if user_id not in balances:
            balances[user_id] = {"owed_out": ZERO, "owed_in": ZERO, "net": ZERO}
        return balances[user_id]

    for user_id in roster_ids:
        _entry(user_id)

    for room in rooms:
        creator_entry = _entry(room.created_by_user_id)
        for share in room.shares:
            if share.is_creator:
                continue
            outstanding = remaining(share.amount_owed, share.amount_paid)
            _entry(share.user_id)["owed_out"] += outstanding
            creator_entry["owed_in"] += outstanding

    for entry in balances.values():
        entry["net"] = entry["owed_in"] - entry["owed_out"]

    return balances


def check_net_sum(
        net_balances: Mapping[int, Decimal],
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> None:
    """Raises NET_BALANCE_MISMATCH unless the net balances cancel out."""
    total = sum(net_balances.values(), ZERO)
    if abs(total) > tolerance:
        raise LedgerArithmeticError(
            ErrorCode.NET_BALANCE_MISMATCH,
            f"Net balances sum to {total} (expected 0.00). "
            f"The underlying rooms are inconsistent.",
        )


def simplify(
        net_balances: Mapping[int, Decimal],
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> list[dict]:
    """
    Greedy minimum cash flow debt simplification.

    Args:
        net_balances: {user_id: net} in a stable order (roster order).
                      Must sum to zero within tolerance.

    Returns:
        Ordered list of {"from_user_id", "to_user_id", "amount"}.
        An empty list means nobody owes anybody more than the tolerance.
    """
    check_net_sum(net_balances, tolerance)

    debtors = sorted(
        [[uid, -amt] for uid, amt in net_balances.items() if amt < -tolerance],
        key=lambda x: x[1],
        reverse=True,
    )
    creditors = sorted(
        [[uid, amt] for uid, amt in net_balances.items() if amt > tolerance],
        key=lambda x: x[1],
        reverse=True,
    )

    transfers: list[dict] = []
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        did, debt = debtors[i]
        cid, credit = creditors[j]

        transfer = min(debt, credit)
        if transfer > tolerance:
            transfers.append({
                "from_user_id": did,
                "to_user_id": cid,
                "amount": transfer,
            })

        debtors[i][1] = debt - transfer
        creditors[j][1] = credit - transfer

        if debtors[i][1] <= tolerance:
            i += 1
        if creditors[j][1] <= tolerance:
            j += 1

    return transfers


def compute_event_balances(event_id: int, session: Session) -> dict[int, dict[str, Decimal]]:
    """Aggregator output for one event. Pure read."""
    roster_ids = event_service.get_member_ids(event_id, session)
    return aggregate_room_balances(get_event_rooms(event_id, session), roster_ids)


def get_event_balance_response(
        event_id: int,
        caller_id: int,
        session: Session,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> dict:
    """
    Builds the payload for GET /events/:id/balances.

    Raises:
        NotFoundError(EVENT_NOT_FOUND)             — event does not exist
        AuthorizationError(FORBIDDEN)              — caller not on the roster
        LedgerArithmeticError(NET_BALANCE_MISMATCH) — rooms disagree
    """
    event_service.get_event_for_member(event_id, caller_id, session)

    rooms = get_event_rooms(event_id, session)
    roster_ids = event_service.get_member_ids(event_id, session)
    balances = aggregate_room_balances(rooms, roster_ids)

    net_balances = {uid: entry["net"] for uid, entry in balances.items()}
    transfers = simplify(net_balances, tolerance)

    obligation_count = sum(
        1
        for room in rooms
        for share in room.shares
        if not share.is_creator and is_outstanding(share.amount_owed, share.amount_paid, tolerance)
    )

    names = _usernames(balances.keys(), session)

    return {
        "event_id": event_id,
        "balances": [
            {
                "user_id": uid,
                "name": names.get(uid, f"user_{uid}"),
                "owed_out": str(entry["owed_out"]),
                "owed_in": str(entry["owed_in"]),
                "net": str(entry["net"]),
            }
            for uid, entry in balances.items()
        ],
        "simplified_transfers": [
            {
                "from_user_id": t["from_user_id"],
                "from_name": names.get(t["from_user_id"], f"user_{t['from_user_id']}"),
                "to_user_id": t["to_user_id"],
                "to_name": names.get(t["to_user_id"], f"user_{t['to_user_id']}"),
                "amount": str(t["amount"]),
            }
            for t in transfers
        ],
        "original_obligation_count": obligation_count,
        "simplified_transfer_count": len(transfers),
        "balance_sum": str(sum(net_balances.values(), ZERO)),
    }
