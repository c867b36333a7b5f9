"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all initial tables for the hold reservation service:
- Users
- Show requests and bids
- Holds (one ACTIVE hold per show request)
- Notifications
"""

from typing import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

HOLD_STATUSES = ("PENDING", "ACTIVE", "EXPIRED", "DECLINED", "CANCELLED")
BID_STATUSES = ("PENDING", "ACCEPTED", "REJECTED", "WITHDRAWN", "CANCELLED", "ON_HOLD")
BID_HOLD_STATES = ("AVAILABLE", "FROZEN", "HELD", "ACCEPTED_HELD")


def upgrade() -> None:
    """Create all database tables."""

    # ==================== USERS ====================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("display_name", sa.String(150)),
        sa.Column("role", sa.String(20), nullable=False, server_default="artist"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== SHOW REQUESTS ====================
    op.create_table(
        "show_requests",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("initiator_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("requested_date", sa.Date, nullable=False, index=True),
        sa.Column("status", sa.String(20), server_default="open", index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== BIDS ====================
    op.create_table(
        "bids",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "show_request_id",
            sa.Uuid,
            sa.ForeignKey("show_requests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("bidder_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("proposed_fee", sa.Integer, server_default="0"),
        sa.Column("message", sa.Text),
        sa.Column(
            "status",
            sa.Enum(*BID_STATUSES, name="bidstatus", native_enum=False, length=20),
            nullable=False,
            server_default="PENDING",
            index=True,
        ),
        sa.Column(
            "hold_state",
            sa.Enum(*BID_HOLD_STATES, name="bidholdstate", native_enum=False, length=20),
            nullable=False,
            server_default="AVAILABLE",
        ),
        sa.Column("held_by_hold_id", sa.Uuid, index=True),  # FK added after holds exists
        sa.Column("frozen_at", sa.DateTime(timezone=True)),
        sa.Column("unfrozen_at", sa.DateTime(timezone=True)),
        sa.Column("accepted_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(hold_state = 'AVAILABLE' AND held_by_hold_id IS NULL) OR "
            "(hold_state <> 'AVAILABLE' AND held_by_hold_id IS NOT NULL)",
            name="ck_bids_reservation_phase",
        ),
    )
    op.create_index("ix_bids_request_hold_state", "bids", ["show_request_id", "hold_state"])

    # ==================== HOLDS ====================
    op.create_table(
        "holds",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "show_request_id",
            sa.Uuid,
            sa.ForeignKey("show_requests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("bid_id", sa.Uuid, sa.ForeignKey("bids.id"), nullable=False, index=True),
        sa.Column("requested_by_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("responded_by_id", sa.Uuid, sa.ForeignKey("users.id")),
        sa.Column(
            "status",
            sa.Enum(*HOLD_STATUSES, name="holdstatus", native_enum=False, length=20),
            nullable=False,
            server_default="PENDING",
            index=True,
        ),
        sa.Column("resolution", sa.String(20)),
        sa.Column("duration_hours", sa.Integer, nullable=False),
        sa.Column("reason", sa.String(100), nullable=False),
        sa.Column("custom_message", sa.Text),
        sa.Column("frozen_bid_ids", sa.JSON),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("responded_at", sa.DateTime(timezone=True)),
        sa.Column("starts_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # At most one ACTIVE hold per show request
    op.create_index(
        "uq_holds_one_active_per_request",
        "holds",
        ["show_request_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )
    op.create_index("ix_holds_status_expires_at", "holds", ["status", "expires_at"])

    op.create_foreign_key(
        "fk_bids_held_by_hold_id", "bids", "holds", ["held_by_hold_id"], ["id"]
    )

    # ==================== NOTIFICATIONS ====================
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON),
        sa.Column("hold_id", sa.Uuid, sa.ForeignKey("holds.id", ondelete="SET NULL")),
        sa.Column("bid_id", sa.Uuid, sa.ForeignKey("bids.id", ondelete="SET NULL")),
        sa.Column("is_read", sa.Boolean, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("notifications")
    op.drop_constraint("fk_bids_held_by_hold_id", "bids", type_="foreignkey")
    op.drop_index("ix_holds_status_expires_at", table_name="holds")
    op.drop_index("uq_holds_one_active_per_request", table_name="holds")
    op.drop_table("holds")
    op.drop_index("ix_bids_request_hold_state", table_name="bids")
    op.drop_table("bids")
    op.drop_table("show_requests")
    op.drop_table("users")
