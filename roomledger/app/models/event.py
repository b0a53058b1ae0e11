"""
models/event.py — Event and EventMember table definitions.

An Event is a named collection of rooms sharing a member roster. It carries
no financial state of its own; every amount lives in its rooms.

FK policy:
  event_members.event_id → CASCADE   (roster entries are owned by the event)
  event_members.user_id  → RESTRICT
  rooms.event_id         → SET NULL  (deleting an event detaches its rooms;
                                      room math is untouched)
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomledger.app.extensions import db


class EventRole(str, enum.Enum):
    OWNER  = "owner"
    MEMBER = "member"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'owner'), not names ('OWNER')."""
    return [member.value for member in enum_cls]


class Event(db.Model):
    __tablename__ = "events"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_events_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    # Roster order (insertion order) is the tie-break key for simplification.
    members: Mapped[list["EventMember"]] = relationship(
        "EventMember",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventMember.id",
    )

    rooms: Mapped[list["Room"]] = relationship(  # noqa: F821
        "Room",
        back_populates="event",
        order_by="Room.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Event id={self.id} name={self.name!r}>"


class EventMember(db.Model):
    __tablename__ = "event_members"

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_members_event_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    role: Mapped[EventRole] = mapped_column(
        Enum(
            EventRole,
            name="event_role_enum",
            create_type=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=EventRole.MEMBER,
        server_default=EventRole.MEMBER.value,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    event: Mapped["Event"] = relationship(
        "Event",
        back_populates="members",
    )

    user: Mapped["User"] = relationship("User")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<EventMember id={self.id} "
            f"event_id={self.event_id} "
            f"user_id={self.user_id} "
            f"role={self.role.value}>"
        )
