"""
services/room_service.py — Room ledger business logic.

A room is one shared expense: a creator fronts `total_amount` and every
other participant owes a fixed share of it. Shares are fixed at creation;
afterwards only `amount_paid` moves, through an approved settlement
(settlement_service.py) or a creator override (mark_participant_payment).

Rules enforced here:
  - total_amount > 0                              NON_POSITIVE_AMOUNT (422)
  - at least one non-creator participant          EMPTY_PARTICIPANTS (422)
  - creator not listed as a participant           CREATOR_IN_PARTICIPANTS (422)
  - no participant listed twice                   DUPLICATE_PARTICIPANT (422)
  - custom amounts aligned with participants      CUSTOM_AMOUNTS_MISMATCH (422)
  - sum(custom amounts) <= total_amount           CUSTOM_SUM_EXCEEDS_TOTAL (422)
  - rooms inside an event: creator and participants are event members
  - conservation: sum(amount_owed) + creator_amount == total_amount
                                                  SHARE_SUM_MISMATCH (500)

Equal split:
  With k non-creator participants each owes floor(total / (k + 1)) to the
  cent. The creator counts as one of the k + 1 shares but is charged 0; the
  creator's own portion plus the rounding remainder is stored as
  creator_amount and never assigned to a participant.

Custom split:
  Each participant owes exactly their custom amount. The unallocated
  remainder (total - sum) is absorbed by the creator as creator_amount.

Settled predicate:
  room.is_settled is True iff every non-creator share has
  amount_owed - amount_paid <= tolerance.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from roomledger.app.errors import (
    AuthorizationError,
    ErrorCode,
    LedgerArithmeticError,
    NotFoundError,
    ValidationError,
)
from roomledger.app.models.participant_share import ParticipantShare
from roomledger.app.models.room import Room, SplitType
from roomledger.app.models.settlement import Settlement, SettlementStatus
from roomledger.app.models.user import User
from roomledger.app.money import (
    DEFAULT_TOLERANCE,
    ZERO,
    floor_money,
    is_outstanding,
    to_money,
)
from roomledger.app.services import event_service

logger = logging.getLogger(__name__)


# ── Split arithmetic (pure) ────────────────────────────────────────────────

def compute_equal_shares(total: Decimal, participant_count: int) -> tuple[Decimal, Decimal]:
    """
    Splits `total` equally between `participant_count` participants and the
    creator.

    Returns:
        (per_participant, creator_amount) where
        per_participant * participant_count + creator_amount == total.

    Example:
        compute_equal_shares(Decimal("100.00"), 2) → (Decimal("33.33"), Decimal("33.34"))
    """
    if participant_count < 1:
        raise ValidationError(
            ErrorCode.EMPTY_PARTICIPANTS,
            "A room needs at least one participant besides the creator.",
            field="participant_ids",
        )
    total = to_money(total)
    per_participant = floor_money(total / Decimal(participant_count + 1))
    creator_amount = total - per_participant * participant_count
    return per_participant, creator_amount


def compute_custom_shares(total: Decimal, custom_amounts: list[Decimal]) -> Decimal:
    """
    Validates custom amounts against `total` and returns the creator's
    absorbed remainder.
    """
    total = to_money(total)
    allocated = sum((to_money(a) for a in custom_amounts), ZERO)
    if allocated > total:
        raise ValidationError(
            ErrorCode.CUSTOM_SUM_EXCEEDS_TOTAL,
            f"Custom amounts sum to {allocated}, which exceeds the total of {total}.",
            field="custom_amounts",
        )
    return total - allocated


def check_conservation(
        total: Decimal,
        owed_amounts: Iterable[Decimal],
        creator_amount: Decimal,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> None:
    """Raises LedgerArithmeticError unless sum(owed) + creator_amount == total within tolerance."""
    owed_sum = sum((to_money(a) for a in owed_amounts), ZERO)
    drift = abs(owed_sum + to_money(creator_amount) - to_money(total))
    if drift > tolerance:
        raise LedgerArithmeticError(
            ErrorCode.SHARE_SUM_MISMATCH,
            f"Shares sum to {owed_sum} plus creator portion {creator_amount}, "
            f"but the room total is {total}.",
        )


def compute_is_settled(
        shares: Iterable[ParticipantShare],
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> bool:
    """True iff no non-creator share owes more than `tolerance`."""
    return not any(
        is_outstanding(s.amount_owed, s.amount_paid, tolerance)
        for s in shares
        if not s.is_creator
    )


def recompute_settled(room: Room, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    """
    Refreshes room.is_settled from its shares.

    Returns True only when this call moved the room from unsettled to settled.
    """
    was_settled = room.is_settled
    room.is_settled = compute_is_settled(room.shares, tolerance)
    room.updated_at = datetime.now(timezone.utc)
    return room.is_settled and not was_settled


# ── Lookup and access helpers ──────────────────────────────────────────────

def get_room_or_404(room_id: int, session: Session) -> Room:
    """Returns the Room or raises ROOM_NOT_FOUND (404)."""
    room = session.get(Room, room_id)
    if room is None:
        raise NotFoundError(
            ErrorCode.ROOM_NOT_FOUND,
            f"Room {room_id} does not exist.",
        )
    return room


def get_room_for_update(room_id: int, session: Session) -> Room:
    """
    Returns the Room with its row locked for the rest of the transaction
    (SELECT ... FOR UPDATE; a no-op on SQLite). Raises ROOM_NOT_FOUND (404).
    """
    room = session.execute(
        select(Room).where(Room.id == room_id).with_for_update()
    ).scalar_one_or_none()
    if room is None:
        raise NotFoundError(
            ErrorCode.ROOM_NOT_FOUND,
            f"Room {room_id} does not exist.",
        )
    return room


def require_creator(room: Room, user_id: int) -> None:
    """Raises NOT_ROOM_CREATOR (403) unless user_id created the room."""
    if room.created_by_user_id != user_id:
        raise AuthorizationError(
            ErrorCode.NOT_ROOM_CREATOR,
            f"Only the creator of room {room.id} may do this.",
        )


def require_room_member(room: Room, user_id: int) -> None:
    """Raises FORBIDDEN (403) unless user_id holds a share in the room."""
    if room.share_for(user_id) is None:
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            f"You are not a participant of room {room.id}.",
        )


def _validate_participants(creator_id: int, participant_ids: list[int]) -> None:
    if not participant_ids:
        raise ValidationError(
            ErrorCode.EMPTY_PARTICIPANTS,
            "A room needs at least one participant besides the creator.",
            field="participant_ids",
        )
    if creator_id in participant_ids:
        raise ValidationError(
            ErrorCode.CREATOR_IN_PARTICIPANTS,
            "The creator is added automatically and must not be listed as a participant.",
            field="participant_ids",
        )
    if len(set(participant_ids)) != len(participant_ids):
        raise ValidationError(
            ErrorCode.DUPLICATE_PARTICIPANT,
            "The same user_id appears more than once in participant_ids.",
            field="participant_ids",
        )


def _validate_users_exist(user_ids: list[int], session: Session) -> None:
    found = set(
        session.execute(select(User.id).where(User.id.in_(user_ids))).scalars().all()
    )
    for user_id in user_ids:
        if user_id not in found:
            raise NotFoundError(
                ErrorCode.USER_NOT_FOUND,
                f"User {user_id} does not exist.",
            )


def _validate_event_membership(
        event_id: int,
        creator_id: int,
        participant_ids: list[int],
        session: Session,
) -> None:
    """Creator and every participant must be on the event roster."""
    event_service.get_event_for_member(event_id, creator_id, session)
    member_set = set(event_service.get_member_ids(event_id, session))
    for user_id in participant_ids:
        if user_id not in member_set:
            raise ValidationError(
                ErrorCode.PARTICIPANT_NOT_EVENT_MEMBER,
                f"User {user_id} is not a member of event {event_id}.",
                field="participant_ids",
            )


def _pending_by_payer(room_id: int, session: Session) -> dict[int, Settlement]:
    stmt = select(Settlement).where(
        Settlement.room_id == room_id,
        Settlement.status == SettlementStatus.PENDING,
    )
    return {s.payer_user_id: s for s in session.execute(stmt).scalars().all()}


def build_share_dict(share: ParticipantShare, pending: Settlement | None = None) -> dict:
    return {
        "user_id": share.user_id,
        "username": share.user.username if share.user is not None else None,
        "is_creator": share.is_creator,
        "amount_owed": str(share.amount_owed),
        "amount_paid": str(share.amount_paid),
        "outstanding": str(share.outstanding),
        "pending_settlement": (
            {
                "id": pending.id,
                "amount": str(pending.amount),
                "method": pending.method.value,
                "created_at": pending.created_at.isoformat() if pending.created_at else None,
            }
            if pending is not None else None
        ),
    }


def build_room_dict(room: Room, pending_by_payer: dict[int, Settlement] | None = None) -> dict:
    """Serialises a room and its shares. Amounts are strings."""
    pending_by_payer = pending_by_payer or {}
    return {
        "id": room.id,
        "name": room.name,
        "description": room.description,
        "created_by_user_id": room.created_by_user_id,
        "event_id": room.event_id,
        "total_amount": str(room.total_amount),
        "split_type": room.split_type.value,
        "creator_amount": str(room.creator_amount),
        "is_settled": room.is_settled,
        "created_at": room.created_at.isoformat() if room.created_at else None,
        "updated_at": room.updated_at.isoformat() if room.updated_at else None,
        "shares": [
            build_share_dict(s, pending_by_payer.get(s.user_id))
            for s in room.shares
        ],
    }


# ── Public service functions ───────────────────────────────────────────────

def create_room(
        creator_id: int,
        data: dict,
        session: Session,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> Room:
    """
    Creates a room with one share per participant plus the creator's share.

    Args:
        creator_id: The authenticated caller; becomes the room creator.
        data:       Validated dict from CreateRoomSchema.
                    Keys: name, description?, total_amount, split_type,
                    participant_ids, custom_amounts?, event_id?.

    Returns:
        The flushed Room with shares loaded. Shares keep the order of
        participant_ids, the creator's share first.
    """
    total: Decimal = data["total_amount"]
    split_type: SplitType = data["split_type"]
    participant_ids: list[int] = list(data["participant_ids"])
    custom_amounts: list[Decimal] | None = data.get("custom_amounts")
    event_id: int | None = data.get("event_id")

    if total <= ZERO:
        raise ValidationError(
            ErrorCode.NON_POSITIVE_AMOUNT,
            "total_amount must be greater than zero.",
            field="total_amount",
        )

    _validate_participants(creator_id, participant_ids)
    _validate_users_exist([creator_id, *participant_ids], session)

    if event_id is not None:
        _validate_event_membership(event_id, creator_id, participant_ids, session)

    if split_type == SplitType.EQUAL:
        per_participant, creator_amount = compute_equal_shares(total, len(participant_ids))
        owed = [per_participant] * len(participant_ids)
    else:
        if custom_amounts is None or len(custom_amounts) != len(participant_ids):
            raise ValidationError(
                ErrorCode.CUSTOM_AMOUNTS_MISMATCH,
                "custom_amounts must have exactly one amount per participant.",
                field="custom_amounts",
            )
        creator_amount = compute_custom_shares(total, custom_amounts)
        owed = [to_money(a) for a in custom_amounts]

    check_conservation(total, owed, creator_amount, tolerance)

    room = Room(
        name=data["name"].strip(),
        description=data.get("description"),
        created_by_user_id=creator_id,
        event_id=event_id,
        total_amount=to_money(total),
        split_type=split_type,
        creator_amount=creator_amount,
    )
    room.shares.append(
        ParticipantShare(
            user_id=creator_id,
            position=0,
            amount_owed=ZERO,
            amount_paid=ZERO,
            is_creator=True,
        )
    )
    for position, (user_id, amount) in enumerate(zip(participant_ids, owed), start=1):
        room.shares.append(
            ParticipantShare(
                user_id=user_id,
                position=position,
                amount_owed=amount,
                amount_paid=ZERO,
                is_creator=False,
            )
        )
    room.is_settled = compute_is_settled(room.shares, tolerance)

    session.add(room)
    session.flush()

    logger.info(
        "room created id=%s creator=%s total=%s split=%s participants=%d",
        room.id, creator_id, room.total_amount, split_type.value, len(participant_ids),
    )
    return room


def list_rooms(caller_id: int, session: Session) -> list[Room]:
    """Rooms the caller created or holds a share in, newest first."""
    stmt = (
        select(Room)
        .outerjoin(ParticipantShare, ParticipantShare.room_id == Room.id)
        .where(
            or_(
                Room.created_by_user_id == caller_id,
                ParticipantShare.user_id == caller_id,
            )
        )
        .distinct()
        .order_by(Room.created_at.desc(), Room.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_room_summary(
        room_id: int,
        caller_id: int,
        session: Session,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> dict:
    """
    Returns the room, its shares and any Pending settlement per participant.

    Read-only. Re-checks conservation so that drifted stored amounts surface
    as SHARE_SUM_MISMATCH instead of being served silently.
    """
    room = get_room_or_404(room_id, session)
    require_room_member(room, caller_id)

    check_conservation(
        room.total_amount,
        (s.amount_owed for s in room.shares),
        room.creator_amount,
        tolerance,
    )
    return build_room_dict(room, _pending_by_payer(room.id, session))


def mark_participant_payment(
        room_id: int,
        caller_id: int,
        user_id: int,
        paid: bool,
        session: Session,
        tolerance: Decimal = DEFAULT_TOLERANCE,
) -> tuple[Room, bool]:
    """
    Creator-only override: sets a share's amount_paid to amount_owed (paid)
    or to zero (unpaid). Settlements are neither created nor touched.

    Returns:
        (room, newly_settled) where newly_settled is True when this call
        moved the room to settled.
    """
    room = get_room_for_update(room_id, session)
    require_creator(room, caller_id)

    share = room.share_for(user_id)
    if share is None:
        raise NotFoundError(
            ErrorCode.PARTICIPANT_NOT_FOUND,
            f"User {user_id} has no share in room {room_id}.",
        )

    share.amount_paid = share.amount_owed if paid else ZERO
    newly_settled = recompute_settled(room, tolerance)
    session.flush()

    logger.info(
        "payment override room=%s user=%s paid=%s by=%s settled=%s",
        room_id, user_id, paid, caller_id, room.is_settled,
    )
    return room, newly_settled
