"""
services/dashboard_service.py — Per-user summary across all rooms.

total_owed       = sum of the caller's own outstanding shares
total_to_receive = sum of outstanding non-creator shares in rooms the
                   caller created
Outstanding amounts are clamped at zero, so an overpaid share never
offsets another debt.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from roomledger.app.errors import ErrorCode, NotFoundError
from roomledger.app.models.participant_share import ParticipantShare
from roomledger.app.models.room import Room
from roomledger.app.models.user import User
from roomledger.app.money import ZERO
from roomledger.app.services import settlement_service


def get_user_dashboard(caller_id: int, session: Session) -> dict:
    user = session.get(User, caller_id)
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {caller_id} does not exist.",
        )

    stmt = (
        select(Room, ParticipantShare)
        .join(ParticipantShare, ParticipantShare.room_id == Room.id)
        .where(ParticipantShare.user_id == caller_id)
        .order_by(Room.created_at.desc(), Room.id.desc())
    )
    rows = session.execute(stmt).all()

    total_owed = ZERO
    total_to_receive = ZERO
    rooms = []
    for room, share in rows:
        if share.is_creator:
            receivable = sum(
                (s.outstanding for s in room.shares if not s.is_creator),
                ZERO,
            )
            total_to_receive += receivable
        else:
            receivable = ZERO
            total_owed += share.outstanding

        rooms.append({
            "id": room.id,
            "name": room.name,
            "event_id": room.event_id,
            "total_amount": str(room.total_amount),
            "is_creator": share.is_creator,
            "amount_owed": str(share.amount_owed),
            "amount_paid": str(share.amount_paid),
            "outstanding": str(share.outstanding),
            "to_receive": str(receivable),
            "is_settled": room.is_settled,
        })

    pending = settlement_service.list_pending_for_approver(caller_id, session)

    return {
        "user": {"id": user.id, "username": user.username},
        "rooms": rooms,
        "total_owed": str(total_owed),
        "total_to_receive": str(total_to_receive),
        "pending_approvals": [
            settlement_service.build_settlement_dict(s) for s in pending
        ],
    }
