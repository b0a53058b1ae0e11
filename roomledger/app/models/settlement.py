"""
models/settlement.py — Settlement table definition.

A payer's claim of having paid (part of) their share, adjudicated once by
the room creator. Columns and constraints only; the state machine lives in
services/settlement_service.py.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - `status` is a closed enum. APPROVED and REJECTED are terminal.
  - `receiver_user_id` is always the room creator at submission time.
  - CHECK(payer_user_id <> receiver_user_id): the creator never settles
    with themself.
  - Partial unique index uq_settlements_one_pending: at most one PENDING
    settlement per (room, payer). The service checks first; the index is
    the final guard against two concurrent submissions.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomledger.app.extensions import db


class SettlementStatus(str, enum.Enum):
    PENDING  = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentMethod(str, enum.Enum):
    CASH          = "cash"
    ZELLE         = "zelle"
    VENMO         = "venmo"
    PAYPAL        = "paypal"
    BANK_TRANSFER = "bank_transfer"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'pending'), not names ('PENDING')."""
    return [member.value for member in enum_cls]


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "payer_user_id <> receiver_user_id",
            name="ck_settlements_no_self_settlement",
        ),
        Index(
            "uq_settlements_one_pending",
            "room_id",
            "payer_user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    room_id: Mapped[int] = mapped_column(
        ForeignKey("rooms.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    payer_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    receiver_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    method: Mapped[PaymentMethod] = mapped_column(
        Enum(
            PaymentMethod,
            name="payment_method_enum",
            create_type=False,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    status: Mapped[SettlementStatus] = mapped_column(
        Enum(
            SettlementStatus,
            name="settlement_status_enum",
            create_type=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SettlementStatus.PENDING,
        server_default=SettlementStatus.PENDING.value,
    )

    # Reference to an uploaded receipt or screenshot. Storage is external.
    proof: Mapped[str | None] = mapped_column(String(500), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    room: Mapped["Room"] = relationship(  # noqa: F821
        "Room",
        back_populates="settlements",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[payer_user_id],
    )

    receiver: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[receiver_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"room_id={self.room_id} "
            f"payer={self.payer_user_id} "
            f"amount={self.amount} "
            f"status={self.status.value}>"
        )
