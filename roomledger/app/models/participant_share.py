"""
models/participant_share.py — ParticipantShare table definition.

One person's portion of a room's total. No business logic.

Key design points:
  - `amount_owed` and `amount_paid` use Numeric(12, 2) — never Float.
  - `amount_owed` is fixed at room creation. `amount_paid` changes only
    through an approved settlement or a creator override.
  - The creator's own share always has amount_owed == 0.
  - UNIQUE(room_id, user_id): a person appears at most once per room.
  - `amount_paid` may exceed `amount_owed` after an overpayment; readers
    clamp the outstanding amount at zero (see `outstanding`).
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomledger.app.extensions import db
from roomledger.app.money import remaining


class ParticipantShare(db.Model):
    __tablename__ = "participant_shares"

    __table_args__ = (
        UniqueConstraint("room_id", "user_id", name="uq_participant_shares_room_user"),
        CheckConstraint("amount_owed >= 0", name="ck_participant_shares_owed_nonneg"),
        CheckConstraint("amount_paid >= 0", name="ck_participant_shares_paid_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE CASCADE: shares are owned by their room.
    room_id: Mapped[int] = mapped_column(
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    amount_owed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default="0",
    )

    is_creator: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    room: Mapped["Room"] = relationship(  # noqa: F821
        "Room",
        back_populates="shares",
    )

    user: Mapped["User"] = relationship("User")  # noqa: F821

    @property
    def outstanding(self) -> Decimal:
        """max(0, amount_owed - amount_paid)."""
        return remaining(self.amount_owed, self.amount_paid)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ParticipantShare id={self.id} "
            f"room_id={self.room_id} "
            f"user_id={self.user_id} "
            f"owed={self.amount_owed} "
            f"paid={self.amount_paid}>"
        )
