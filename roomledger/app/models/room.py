"""
models/room.py — Room (expense group) table definition.

Columns and constraints only. No business logic. No imports from services
or routes.

Key design points:
  - `total_amount` and `creator_amount` use Numeric(12, 2) — never Float.
  - `creator_amount` is the creator's absorbed, untracked portion of the
    total (equal-split rounding remainder plus their own share, or the
    unallocated remainder of a custom split). It makes the conservation
    rule checkable:  sum(shares.amount_owed) + creator_amount == total_amount.
  - `is_settled` is derived state, recomputed by room_service whenever a
    share's amount_paid changes.
  - `event_id` is ON DELETE SET NULL: deleting an event detaches its rooms.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomledger.app.extensions import db


class SplitType(str, enum.Enum):
    EQUAL  = "equal"
    CUSTOM = "custom"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'custom'), not names ('CUSTOM')."""
    return [member.value for member in enum_cls]


class Room(db.Model):
    __tablename__ = "rooms"

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_rooms_total_positive"),
        CheckConstraint("creator_amount >= 0", name="ck_rooms_creator_amount_nonneg"),
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_rooms_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    event_id: Mapped[int | None] = mapped_column(
        ForeignKey("events.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type_enum",
            create_type=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SplitType.EQUAL,
        server_default=SplitType.EQUAL.value,
    )

    creator_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default="0",
    )

    is_settled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

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

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by_user_id],
    )

    event: Mapped["Event"] = relationship(  # noqa: F821
        "Event",
        back_populates="rooms",
    )

    # Ordered by position: the order participants were given at creation.
    shares: Mapped[list["ParticipantShare"]] = relationship(  # noqa: F821
        "ParticipantShare",
        back_populates="room",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ParticipantShare.position",
    )

    settlements: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="room",
        order_by="Settlement.id",
    )

    def share_for(self, user_id: int):
        """Returns this room's share for `user_id`, or None."""
        return next((s for s in self.shares if s.user_id == user_id), None)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Room id={self.id} "
            f"total={self.total_amount} "
            f"split={self.split_type.value} "
            f"settled={self.is_settled}>"
        )
