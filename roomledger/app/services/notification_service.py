"""
services/notification_service.py — Fire-and-forget ledger notifications.

Notifications are sent AFTER the ledger transaction commits. A failing
sender is logged and swallowed: a lost notification must never undo a
settlement approval or a room creation.

Kinds:
  expense_created       → every non-creator participant of a new room
  settlement_requested  → the room creator
  settlement_approved   → the payer
  settlement_rejected   → the payer
  expense_settled       → everyone in the room, once it becomes settled

Layer rules:
  - No Flask request knowledge. init_app() only reads configuration.
  - Receives ORM objects (or anything with the same attributes).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

logger = logging.getLogger(__name__)


EXPENSE_CREATED      = "expense_created"
SETTLEMENT_REQUESTED = "settlement_requested"
SETTLEMENT_APPROVED  = "settlement_approved"
SETTLEMENT_REJECTED  = "settlement_rejected"
EXPENSE_SETTLED      = "expense_settled"

_TITLES = {
    EXPENSE_CREATED:      "New Expense Room",
    SETTLEMENT_REQUESTED: "Payment Submitted",
    SETTLEMENT_APPROVED:  "Payment Approved",
    SETTLEMENT_REJECTED:  "Payment Rejected",
    EXPENSE_SETTLED:      "Expense Settled",
}


@dataclass
class Notification:
    user_id: int
    kind: str
    title: str
    message: str
    data: dict = field(default_factory=dict)


def build_message(kind: str, data: dict) -> str:
    name = data.get("room_name", "")
    amount = data.get("amount")
    if kind == EXPENSE_CREATED:
        return f'You\'ve been added to "{name}" expense room'
    if kind == SETTLEMENT_REQUESTED:
        return f'Someone submitted a ${amount} payment for "{name}"'
    if kind == SETTLEMENT_APPROVED:
        return f'Your ${amount} payment for "{name}" was approved'
    if kind == SETTLEMENT_REJECTED:
        return f'Your ${amount} payment for "{name}" was rejected'
    if kind == EXPENSE_SETTLED:
        return f'"{name}" has been fully settled'
    return "You have an expense update"


def _log_sender(notification: Notification) -> None:
    logger.info(
        "notification kind=%s user_id=%s message=%s",
        notification.kind,
        notification.user_id,
        notification.message,
    )


class NotificationDispatcher:
    """
    Delivers notifications through a pluggable `sender` callable.

    The default sender writes to the log. A real deployment replaces it
    with a push / email / in-app client via set_sender().
    """

    def __init__(self, sender: Callable[[Notification], None] | None = None) -> None:
        self.sender = sender or _log_sender
        self.enabled = True

    def init_app(self, app) -> None:
        self.enabled = bool(app.config.get("NOTIFICATIONS_ENABLED", True))
        app.extensions["roomledger_notifications"] = self

    def set_sender(self, sender: Callable[[Notification], None] | None) -> None:
        self.sender = sender or _log_sender

    def dispatch(self, kind: str, user_ids: Iterable[int], data: dict) -> int:
        """
        Sends one notification per recipient. Returns how many were delivered.

        Never raises: each failure is logged and the next recipient is tried.
        """
        if not self.enabled:
            return 0

        delivered = 0
        for user_id in dict.fromkeys(user_ids):
            notification = Notification(
                user_id=user_id,
                kind=kind,
                title=_TITLES.get(kind, "Expense Update"),
                message=build_message(kind, data),
                data={**data, "notification_type": kind},
            )
            try:
                self.sender(notification)
            except Exception:
                logger.exception(
                    "Notification %s to user %s failed; ledger state is unaffected.",
                    kind,
                    user_id,
                )
                continue
            delivered += 1
        return delivered

    # ── Ledger hooks ───────────────────────────────────────────────────────

    def room_created(self, room) -> int:
        recipients = [s.user_id for s in room.shares if not s.is_creator]
        return self.dispatch(
            EXPENSE_CREATED,
            recipients,
            {"room_id": room.id, "room_name": room.name},
        )

    def settlement_requested(self, settlement, room) -> int:
        return self.dispatch(
            SETTLEMENT_REQUESTED,
            [room.created_by_user_id],
            {
                "room_id": room.id,
                "room_name": room.name,
                "settlement_id": settlement.id,
                "amount": str(settlement.amount),
            },
        )

    def settlement_resolved(self, settlement, room, newly_settled: bool = False) -> int:
        from roomledger.app.models.settlement import SettlementStatus  # local import to avoid circular dep

        kind = (
            SETTLEMENT_APPROVED
            if settlement.status == SettlementStatus.APPROVED
            else SETTLEMENT_REJECTED
        )
        data = {
            "room_id": room.id,
            "room_name": room.name,
            "settlement_id": settlement.id,
            "amount": str(settlement.amount),
        }
        delivered = self.dispatch(kind, [settlement.payer_user_id], data)

        if newly_settled:
            delivered += self.room_settled(room)
        return delivered

    def room_settled(self, room) -> int:
        return self.dispatch(
            EXPENSE_SETTLED,
            [s.user_id for s in room.shares],
            {"room_id": room.id, "room_name": room.name},
        )
