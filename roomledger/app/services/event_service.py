"""
services/event_service.py — Event and roster business logic.

An event scopes the balance aggregator and the simplification engine. It
has no financial state; deleting one detaches its rooms (event_id → NULL)
and leaves every amount exactly as it was.

Authorization rules:
  - Read (get, balances): any event member
  - Update, add member, delete: owner only
  - Remove member: owner removes anyone (but never the last owner);
                   a member may remove themself

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from roomledger.app.errors import (
    AuthorizationError,
    ConflictError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from roomledger.app.models.event import Event, EventMember, EventRole
from roomledger.app.models.room import Room
from roomledger.app.models.user import User
from roomledger.app.money import ZERO

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_event_or_404(event_id: int, session: Session) -> Event:
    """Returns the Event or raises EVENT_NOT_FOUND (404)."""
    event = session.get(Event, event_id)
    if event is None:
        raise NotFoundError(
            ErrorCode.EVENT_NOT_FOUND,
            f"Event {event_id} does not exist.",
        )
    return event


def _get_membership(event_id: int, user_id: int, session: Session) -> EventMember | None:
    return session.execute(
        select(EventMember).where(
            EventMember.event_id == event_id,
            EventMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def _require_member(event_id: int, user_id: int, session: Session) -> EventMember:
    """Raises FORBIDDEN (403) if user_id is not on the event roster."""
    membership = _get_membership(event_id, user_id, session)
    if membership is None:
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of event {event_id}.",
        )
    return membership


def _require_owner(event_id: int, user_id: int, session: Session) -> EventMember:
    """Raises NOT_EVENT_OWNER (403) unless user_id is an owner of the event."""
    membership = _get_membership(event_id, user_id, session)
    if membership is None or membership.role != EventRole.OWNER:
        raise AuthorizationError(
            ErrorCode.NOT_EVENT_OWNER,
            f"Only an owner of event {event_id} may do this.",
        )
    return membership


def _validate_date_range(start_date, end_date) -> None:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError(
            ErrorCode.INVALID_DATE_RANGE,
            "end_date must not be before start_date.",
            field="end_date",
        )


def _build_member_dict(m: EventMember) -> dict:
    return {
        "user_id": m.user_id,
        "username": m.user.username if m.user is not None else None,
        "role": m.role.value,
        "joined_at": m.joined_at.isoformat() if m.joined_at else None,
    }


def _build_event_dict(event: Event, include_details: bool = False) -> dict:
    payload = {
        "id": event.id,
        "name": event.name,
        "description": event.description,
        "created_by_user_id": event.created_by_user_id,
        "start_date": event.start_date.isoformat() if event.start_date else None,
        "end_date": event.end_date.isoformat() if event.end_date else None,
        "created_at": event.created_at.isoformat() if event.created_at else None,
        "updated_at": event.updated_at.isoformat() if event.updated_at else None,
    }
    if include_details:
        payload["members"] = [_build_member_dict(m) for m in event.members]
        payload["rooms"] = [
            {
                "id": r.id,
                "name": r.name,
                "total_amount": str(r.total_amount),
                "created_by_user_id": r.created_by_user_id,
                "is_settled": r.is_settled,
            }
            for r in event.rooms
        ]
        payload["stats"] = {
            "member_count": len(event.members),
            "room_count": len(event.rooms),
            "total_amount": str(sum((r.total_amount for r in event.rooms), ZERO)),
        }
    return payload


# ── Roster queries (used by room_service and balance_service) ──────────────

def get_member_ids(event_id: int, session: Session) -> list[int]:
    """Returns roster user_ids in roster order (the order members joined)."""
    stmt = (
        select(EventMember.user_id)
        .where(EventMember.event_id == event_id)
        .order_by(EventMember.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_event_for_member(event_id: int, caller_id: int, session: Session) -> Event:
    """Returns the event after checking it exists and the caller is on its roster."""
    event = _get_event_or_404(event_id, session)
    _require_member(event_id, caller_id, session)
    return event


# ── Public service functions ───────────────────────────────────────────────

def create_event(creator_id: int, data: dict, session: Session) -> dict:
    """
    Creates an event. The creator becomes its first member with role owner.

    Args:
        creator_id: The authenticated caller.
        data:       Validated dict from CreateEventSchema.
    """
    _validate_date_range(data.get("start_date"), data.get("end_date"))

    event = Event(
        name=data["name"].strip(),
        description=data.get("description"),
        created_by_user_id=creator_id,
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
    )
    session.add(event)
    session.flush()  # populate event.id before the roster row

    session.add(EventMember(event_id=event.id, user_id=creator_id, role=EventRole.OWNER))
    session.flush()
    session.refresh(event)

    logger.info("event created id=%s creator=%s", event.id, creator_id)
    return _build_event_dict(event, include_details=True)


def list_user_events(user_id: int, session: Session) -> list[dict]:
    """Returns every event the user is on the roster of, oldest first, with their role."""
    stmt = (
        select(Event, EventMember.role)
        .join(EventMember, Event.id == EventMember.event_id)
        .where(EventMember.user_id == user_id)
        .order_by(Event.created_at.asc(), Event.id.asc())
    )
    rows = session.execute(stmt).all()

    room_counts = dict(
        session.execute(
            select(Room.event_id, func.count(Room.id))
            .where(Room.event_id.in_([event.id for event, _ in rows]))
            .group_by(Room.event_id)
        ).all()
    ) if rows else {}

    result = []
    for event, role in rows:
        payload = _build_event_dict(event)
        payload["role"] = role.value
        payload["room_count"] = room_counts.get(event.id, 0)
        result.append(payload)
    return result


def get_event(event_id: int, caller_id: int, session: Session) -> dict:
    """Returns the event with its roster and rooms. Caller must be a member."""
    event = get_event_for_member(event_id, caller_id, session)
    return _build_event_dict(event, include_details=True)


def update_event(event_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """Partially updates name, description and dates. Owner only."""
    event = _get_event_or_404(event_id, session)
    _require_owner(event_id, caller_id, session)

    start_date = data.get("start_date", event.start_date)
    end_date = data.get("end_date", event.end_date)
    _validate_date_range(start_date, end_date)

    if "name" in data:
        event.name = data["name"].strip()
    if "description" in data:
        event.description = data["description"]
    if "start_date" in data:
        event.start_date = data["start_date"]
    if "end_date" in data:
        event.end_date = data["end_date"]

    event.updated_at = datetime.now(timezone.utc)
    session.flush()
    return _build_event_dict(event, include_details=True)


def add_member(
        event_id: int,
        caller_id: int,
        target_user_id: int,
        role: EventRole,
        session: Session,
) -> dict:
    """
    Adds a user to the event roster. Owner only.

    Raises:
      NotFoundError(EVENT_NOT_FOUND)      — event does not exist
      AuthorizationError(NOT_EVENT_OWNER) — caller is not an owner
      NotFoundError(USER_NOT_FOUND)       — target user does not exist
      ConflictError(ALREADY_EVENT_MEMBER) — user is already on the roster
    """
    _get_event_or_404(event_id, session)
    _require_owner(event_id, caller_id, session)

    target_user = session.get(User, target_user_id)
    if target_user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} does not exist.",
        )

    if _get_membership(event_id, target_user_id, session) is not None:
        raise ConflictError(
            ErrorCode.ALREADY_EVENT_MEMBER,
            f"User {target_user_id} is already a member of event {event_id}.",
        )

    membership = EventMember(event_id=event_id, user_id=target_user_id, role=role)
    session.add(membership)
    session.flush()

    return {
        "event_id": event_id,
        "user_id": target_user_id,
        "username": target_user.username,
        "role": role.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


def remove_member(
        event_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Removes a user from the roster. Their rooms keep every amount; the
    aggregator still counts anyone who appears in the event's rooms.

    Raises:
      AuthorizationError(FORBIDDEN)      — non-owner removing someone else
      NotFoundError(USER_NOT_FOUND)      — target is not on the roster
      ValidationError(LAST_EVENT_OWNER)  — removing the only owner
    """
    _get_event_or_404(event_id, session)
    caller_membership = _require_member(event_id, caller_id, session)

    is_owner = caller_membership.role == EventRole.OWNER
    is_self = caller_id == target_user_id
    if not (is_owner or is_self):
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from an event unless you are an owner.",
        )

    membership = _get_membership(event_id, target_user_id, session)
    if membership is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of event {event_id}.",
        )

    if membership.role == EventRole.OWNER:
        owner_count = session.execute(
            select(func.count(EventMember.id)).where(
                EventMember.event_id == event_id,
                EventMember.role == EventRole.OWNER,
            )
        ).scalar_one()
        if owner_count <= 1:
            raise ValidationError(
                ErrorCode.LAST_EVENT_OWNER,
                "An event must keep at least one owner.",
            )

    session.delete(membership)
    session.flush()


def delete_event(event_id: int, caller_id: int, session: Session) -> None:
    """
    Deletes the event and its roster. Owner only.

    Rooms are detached (event_id set to NULL), never deleted or altered.
    """
    event = _get_event_or_404(event_id, session)
    _require_owner(event_id, caller_id, session)

    for room in list(event.rooms):
        room.event_id = None
    session.flush()

    session.delete(event)
    session.flush()
    logger.info("event deleted id=%s by=%s", event_id, caller_id)
