"""Initial schema — all tables, enums, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-18

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. PostgreSQL enum types (must exist before tables that reference them)
  2. Tables in FK dependency order (users → events → event_members → rooms
     → participant_shares → settlements)
  3. Indexes (including the partial unique index uq_settlements_one_pending)

ON DELETE policies:
  event_members.event_id       → CASCADE   (roster owned by event)
  rooms.event_id               → SET NULL  (deleting an event detaches rooms)
  participant_shares.room_id   → CASCADE   (shares owned by room)
  everything referencing users → RESTRICT
  settlements.room_id          → RESTRICT  (cannot delete a room with settlements)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    """
    Apply the full initial schema.

    Enum types are created via op.execute() so the exact SQL is explicit;
    models use Enum(..., create_type=False) and expect the types to exist.
    """

    # ── Step 1: PostgreSQL enum types ─────────────────────────────────────

    op.execute("CREATE TYPE split_type_enum AS ENUM ('equal', 'custom')")
    op.execute("CREATE TYPE event_role_enum AS ENUM ('owner', 'member')")
    op.execute(
        "CREATE TYPE settlement_status_enum AS ENUM ('pending', 'approved', 'rejected')"
    )
    op.execute("""
        CREATE TYPE payment_method_enum AS ENUM (
            'cash',
            'zelle',
            'venmo',
            'paypal',
            'bank_transfer'
        )
    """)

    # ── Step 2: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
    )

    # ── Step 3: events ─────────────────────────────────────────────────────

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_events_creator"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_events"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_events_name_nonempty"),
    )

    # ── Step 4: event_members ──────────────────────────────────────────────
    # The serial id is the roster order used to break simplification ties.

    op.create_table(
        "event_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE", name="fk_event_members_event"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_event_members_user"),
            nullable=False,
        ),
        sa.Column(
            "role",
            postgresql.ENUM("owner", "member", name="event_role_enum", create_type=False),
            nullable=False,
            server_default="member",
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_event_members"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_members_event_user"),
    )

    # ── Step 5: rooms ──────────────────────────────────────────────────────

    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_rooms_creator"),
            nullable=False,
        ),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="SET NULL", name="fk_rooms_event"),
            nullable=True,
        ),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "split_type",
            postgresql.ENUM("equal", "custom", name="split_type_enum", create_type=False),
            nullable=False,
            server_default="equal",
        ),
        sa.Column("creator_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("is_settled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_rooms"),
        sa.CheckConstraint("total_amount > 0", name="ck_rooms_total_positive"),
        sa.CheckConstraint("creator_amount >= 0", name="ck_rooms_creator_amount_nonneg"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_rooms_name_nonempty"),
    )

    # ── Step 6: participant_shares ─────────────────────────────────────────

    op.create_table(
        "participant_shares",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "room_id",
            sa.Integer(),
            sa.ForeignKey("rooms.id", ondelete="CASCADE", name="fk_participant_shares_room"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_participant_shares_user"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amount_owed", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("is_creator", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id", name="pk_participant_shares"),
        sa.UniqueConstraint("room_id", "user_id", name="uq_participant_shares_room_user"),
        sa.CheckConstraint("amount_owed >= 0", name="ck_participant_shares_owed_nonneg"),
        sa.CheckConstraint("amount_paid >= 0", name="ck_participant_shares_paid_nonneg"),
    )

    # ── Step 7: settlements ────────────────────────────────────────────────

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "room_id",
            sa.Integer(),
            sa.ForeignKey("rooms.id", ondelete="RESTRICT", name="fk_settlements_room"),
            nullable=False,
        ),
        sa.Column(
            "payer_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_payer"),
            nullable=False,
        ),
        sa.Column(
            "receiver_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_receiver"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "method",
            postgresql.ENUM(
                "cash", "zelle", "venmo", "paypal", "bank_transfer",
                name="payment_method_enum",
                create_type=False,
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            postgresql.ENUM(
                "pending", "approved", "rejected",
                name="settlement_status_enum",
                create_type=False,
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("proof", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint(
            "payer_user_id <> receiver_user_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    # ── Step 8: indexes ────────────────────────────────────────────────────

    op.create_index("ix_event_members_event_id", "event_members", ["event_id"])
    op.create_index("ix_event_members_user_id", "event_members", ["user_id"])
    op.create_index("ix_rooms_created_by_user_id", "rooms", ["created_by_user_id"])
    op.create_index("ix_rooms_event_id", "rooms", ["event_id"])
    op.create_index("ix_participant_shares_room_id", "participant_shares", ["room_id"])
    op.create_index("ix_participant_shares_user_id", "participant_shares", ["user_id"])
    op.create_index("ix_settlements_room_id", "settlements", ["room_id"])
    op.create_index("ix_settlements_payer_user_id", "settlements", ["payer_user_id"])
    op.create_index("ix_settlements_receiver_user_id", "settlements", ["receiver_user_id"])

    # At most one PENDING settlement per (room, payer).
    op.create_index(
        "uq_settlements_one_pending",
        "settlements",
        ["room_id", "payer_user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    """Drops everything in reverse dependency order."""
    op.drop_index("uq_settlements_one_pending", table_name="settlements")
    op.drop_table("settlements")
    op.drop_table("participant_shares")
    op.drop_table("rooms")
    op.drop_table("event_members")
    op.drop_table("events")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS payment_method_enum")
    op.execute("DROP TYPE IF EXISTS settlement_status_enum")
    op.execute("DROP TYPE IF EXISTS event_role_enum")
    op.execute("DROP TYPE IF EXISTS split_type_enum")
