"""
services/settlement_service.py — Settlement workflow.

State machine (per settlement):

    (none) --submit-->  PENDING
    PENDING --approve--> APPROVED   terminal; payer's amount_paid += amount
    PENDING --reject-->  REJECTED   terminal; no ledger change

Rules enforced here:
  - payer is a non-creator participant          CREATOR_CANNOT_SETTLE (422)
                                                FORBIDDEN (403)
  - payer has an outstanding balance            NO_OUTSTANDING_BALANCE (422)
  - at most one PENDING settlement per payer    PENDING_SETTLEMENT_EXISTS (409)
    and room (also a partial unique index)
  - only the room creator resolves              NOT_ROOM_CREATOR (403)
  - only a PENDING settlement resolves          SETTLEMENT_ALREADY_RESOLVED (409)
  - overpayment is recorded with a warning      OVERPAYMENT (warning)

Exactly-once resolution:
  The status change is a conditional UPDATE ... WHERE status = 'pending'.
  Of two concurrent resolutions only one sees rowcount == 1; the other gets
  SETTLEMENT_ALREADY_RESOLVED. The amount_paid increment runs in the same
  transaction as a SQL-side `amount_paid = amount_paid + :amount`, and the
  room row is locked first so is_settled is recomputed from current shares.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roomledger.app.errors import (
    AuthorizationError,
    ConflictError,
    ErrorCode,
    NotFoundError,
    ValidationError,
    WarningCode,
)
from roomledger.app.models.participant_share import ParticipantShare
from roomledger.app.models.room import Room
from roomledger.app.models.settlement import Settlement, SettlementStatus
from roomledger.app.money import DEFAULT_TOLERANCE, is_outstanding
from roomledger.app.services import room_service

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


# ── Private helpers ────────────────────────────────────────────────────────

def _get_settlement_or_404(settlement_id: int, session: Session) -> Settlement:
    """Returns the Settlement or raises SETTLEMENT_NOT_FOUND (404)."""
    settlement = session.get(Settlement, settlement_id)
    if settlement is None:
        raise NotFoundError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist.",
        )
    return settlement


def _find_pending(room_id: int, payer_id: int, session: Session) -> Settlement | None:
    return session.execute(
        select(Settlement).where(
            Settlement.room_id == room_id,
            Settlement.payer_user_id == payer_id,
            Settlement.status == SettlementStatus.PENDING,
        )
    ).scalar_one_or_none()


def _overpayment_warning(amount: Decimal, outstanding: Decimal, payer_id: int) -> dict:
    return {
        "code": WarningCode.OVERPAYMENT,
        "message": (
            f"Payment of {amount} exceeds the outstanding balance of "
            f"{outstanding} for user {payer_id}. Recording anyway."
        ),
    }


def build_settlement_dict(settlement: Settlement) -> dict:
    return {
        "id": settlement.id,
        "room_id": settlement.room_id,
        "payer_user_id": settlement.payer_user_id,
        "receiver_user_id": settlement.receiver_user_id,
        "amount": str(settlement.amount),
        "method": settlement.method.value,
        "status": settlement.status.value,
        "proof": settlement.proof,
        "notes": settlement.notes,
        "created_at": settlement.created_at.isoformat() if settlement.created_at else None,
        "resolved_at": settlement.resolved_at.isoformat() if settlement.resolved_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def submit_settlement(
        room_id: int,
        payer_id: int,
        data: dict,
        session: Session,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> tuple[Settlement, list[dict]]:
    """
    Records a PENDING settlement from payer_id to the room creator.

    Args:
        room_id:  The room being paid into.
        payer_id: The authenticated caller.
        data:     Validated dict from SubmitSettlementSchema.
                  Keys: amount (Decimal), method (PaymentMethod), proof?, notes?.

    Returns:
        (Settlement, warnings). Partial payments carry no warning; an
        amount above the outstanding balance carries OVERPAYMENT.
    """
    room = room_service.get_room_or_404(room_id, session)

    if room.created_by_user_id == payer_id:
        raise ValidationError(
            ErrorCode.CREATOR_CANNOT_SETTLE,
            "The room creator does not owe anything in their own room.",
        )

    share = room.share_for(payer_id)
    if share is None:
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            f"You are not a participant of room {room_id}.",
        )

    if not is_outstanding(share.amount_owed, share.amount_paid, tolerance):
        raise ValidationError(
            ErrorCode.NO_OUTSTANDING_BALANCE,
            f"You have no outstanding balance in room {room_id}.",
        )

    if _find_pending(room_id, payer_id, session) is not None:
        raise ConflictError(
            ErrorCode.PENDING_SETTLEMENT_EXISTS,
            "You already have a pending settlement in this room. "
            "Wait for the creator to resolve it before submitting another.",
        )

    amount: Decimal = data["amount"]
    warnings: list[dict] = []
    outstanding = share.outstanding
    if amount > outstanding:
        warnings.append(_overpayment_warning(amount, outstanding, payer_id))

    settlement = Settlement(
        room_id=room_id,
        payer_user_id=payer_id,
        receiver_user_id=room.created_by_user_id,
        amount=amount,
        method=data["method"],
        proof=data.get("proof"),
        notes=data.get("notes"),
        status=SettlementStatus.PENDING,
    )
    session.add(settlement)
    try:
        session.flush()
    except IntegrityError as exc:
        # A concurrent submission won the partial unique index.
        session.rollback()
        raise ConflictError(
            ErrorCode.PENDING_SETTLEMENT_EXISTS,
            "You already have a pending settlement in this room.",
        ) from exc

    logger.info(
        "settlement submitted id=%s room=%s payer=%s amount=%s",
        settlement.id, room_id, payer_id, amount,
    )
    return settlement, warnings


def approve_settlement(
        settlement_id: int,
        caller_id: int,
        approved: bool,
        session: Session,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> tuple[Settlement, Room, bool, list[dict]]:
    """
    Resolves a PENDING settlement. Only the room creator may call this.

    approved=True  → APPROVED; payer's amount_paid += settlement.amount;
                     room.is_settled recomputed.
    approved=False → REJECTED; no ledger change; the payer may resubmit.

    Returns:
        (settlement, room, newly_settled, warnings)
    """
    settlement = _get_settlement_or_404(settlement_id, session)
    room = room_service.get_room_for_update(settlement.room_id, session)
    room_service.require_creator(room, caller_id)

    new_status = SettlementStatus.APPROVED if approved else SettlementStatus.REJECTED
    result = session.execute(
        update(Settlement)
        .where(
            Settlement.id == settlement_id,
            Settlement.status == SettlementStatus.PENDING,
        )
        .values(status=new_status, resolved_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            ErrorCode.SETTLEMENT_ALREADY_RESOLVED,
            f"Settlement {settlement_id} has already been resolved.",
        )

    warnings: list[dict] = []
    newly_settled = False

    if approved:
        share = room.share_for(settlement.payer_user_id)
        if share is None:
            raise NotFoundError(
                ErrorCode.PARTICIPANT_NOT_FOUND,
                f"User {settlement.payer_user_id} has no share in room {room.id}.",
            )

        outstanding = share.outstanding
        if settlement.amount > outstanding:
            warnings.append(
                _overpayment_warning(settlement.amount, outstanding, settlement.payer_user_id)
            )

        session.execute(
            update(ParticipantShare)
            .where(ParticipantShare.id == share.id)
            .values(amount_paid=ParticipantShare.amount_paid + settlement.amount)
            .execution_options(synchronize_session=False)
        )
        session.refresh(share)
        newly_settled = room_service.recompute_settled(room, tolerance)

    session.flush()
    session.refresh(settlement)

    logger.info(
        "settlement resolved id=%s room=%s status=%s by=%s settled=%s",
        settlement_id, room.id, new_status.value, caller_id, room.is_settled,
    )
    return settlement, room, newly_settled, warnings


def list_room_settlements(room_id: int, caller_id: int, session: Session) -> list[Settlement]:
    """All settlements of a room, newest first. Creator and participants only."""
    room = room_service.get_room_or_404(room_id, session)
    room_service.require_room_member(room, caller_id)

    stmt = (
        select(Settlement)
        .where(Settlement.room_id == room_id)
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def list_pending_for_approver(caller_id: int, session: Session) -> list[Settlement]:
    """PENDING settlements in rooms the caller created, oldest first."""
    stmt = (
        select(Settlement)
        .join(Room, Settlement.room_id == Room.id)
        .where(
            Room.created_by_user_id == caller_id,
            Settlement.status == SettlementStatus.PENDING,
        )
        .order_by(Settlement.created_at.asc(), Settlement.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_settlement_history(
        caller_id: int,
        session: Session,
        limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[Settlement]:
    """Settlements where the caller is payer or receiver, newest first."""
    stmt = (
        select(Settlement)
        .where(
            or_(
                Settlement.payer_user_id == caller_id,
                Settlement.receiver_user_id == caller_id,
            )
        )
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars().all())
