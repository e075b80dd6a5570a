"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all initial tables for the Tripzeo platform:
- Users and experiences
- Bookings
- Ledger and platform settings
- Notifications
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create all database tables."""

    # ==================== USERS ====================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("full_name", sa.String(200)),
        sa.Column("role", sa.String(20), nullable=False, server_default="guest"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("referral_code", sa.String(32), unique=True, index=True),
        sa.Column("bank_name", sa.String(100)),
        sa.Column("account_holder", sa.String(200)),
        sa.Column("iban", sa.String(64)),
        sa.Column("routing_number", sa.String(32)),
        sa.Column("account_number", sa.String(64)),
        sa.Column("payout_account_id", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== EXPERIENCES ====================
    op.create_table(
        "experiences",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("host_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("price", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("duration_minutes", sa.Integer),
        sa.Column("start_time", sa.Time),
        sa.Column("end_time", sa.Time),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("price > 0", name="ck_experiences_price_positive"),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("booking_number", sa.String(20), unique=True, nullable=False, index=True),
        sa.Column("experience_id", sa.Uuid, sa.ForeignKey("experiences.id"), nullable=False, index=True),
        sa.Column("guest_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("host_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("partner_id", sa.Uuid, sa.ForeignKey("users.id"), index=True),
        # Schedule
        sa.Column("booking_date", sa.Date, nullable=False),
        sa.Column("start_time", sa.Time),
        sa.Column("end_time", sa.Time),
        sa.Column("duration_minutes", sa.Integer),
        sa.Column("scheduled_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("attendees_count", sa.Integer, nullable=False, server_default="1"),
        # Pricing
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("base_price", sa.Integer, nullable=False),
        sa.Column("service_fee", sa.Integer, nullable=False),
        sa.Column("total_amount", sa.Integer, nullable=False),
        sa.Column("service_fee_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2)),
        sa.Column("rates_version", sa.Integer),
        sa.Column("commission_amount", sa.Integer),
        sa.Column("host_earnings", sa.Integer),
        # Gateway references
        sa.Column("payment_id", sa.String(100)),
        sa.Column("payment_transaction_id", sa.String(100)),
        sa.Column("checkout_token", sa.String(255), index=True),
        sa.Column("payout_reference", sa.String(100)),
        # Status
        sa.Column("status", sa.String(30), nullable=False, server_default="pending_payment", index=True),
        sa.Column("payout_eligible_at", sa.DateTime(timezone=True)),
        # Timestamps
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("paid_out_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("attendees_count >= 1", name="ck_bookings_attendees_positive"),
        sa.CheckConstraint("total_amount = base_price + service_fee", name="ck_bookings_total"),
    )

    # ==================== LEDGER ====================
    op.create_table(
        "financial_transactions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("booking_id", sa.Uuid, sa.ForeignKey("bookings.id"), index=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("description", sa.Text),
        sa.Column("metadata", JSONType),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_financial_transactions_user_status",
        "financial_transactions",
        ["user_id", "status"],
    )

    op.create_table(
        "platform_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("updated_by", sa.Uuid, sa.ForeignKey("users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== NOTIFICATIONS ====================
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("link", sa.Text),
        sa.Column("booking_id", sa.Uuid, sa.ForeignKey("bookings.id")),
        sa.Column("is_read", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("notifications")
    op.drop_table("platform_settings")
    op.drop_index("ix_financial_transactions_user_status", table_name="financial_transactions")
    op.drop_table("financial_transactions")
    op.drop_table("bookings")
    op.drop_table("experiences")
    op.drop_table("users")
