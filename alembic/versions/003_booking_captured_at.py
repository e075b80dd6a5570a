"""Add bookings.captured_at.

Revision ID: 003_booking_captured_at
Revises: 002_seed_platform_settings
Create Date: 2026-10-20

Marks bookings whose payment was captured at the gateway so reconciliation
can find captures that never reached the ledger.
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "003_booking_captured_at"
down_revision: str = "002_seed_platform_settings"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("bookings", sa.Column("captured_at", sa.DateTime(timezone=True)))
    # Everything already past approval was captured when it was confirmed
    op.execute(
        "UPDATE bookings SET captured_at = confirmed_at "
        "WHERE confirmed_at IS NOT NULL AND commission_amount IS NOT NULL"
    )


def downgrade() -> None:
    op.drop_column("bookings", "captured_at")
