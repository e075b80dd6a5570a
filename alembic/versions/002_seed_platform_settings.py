"""Seed platform settings.

Revision ID: 002_seed_platform_settings
Revises: 001_initial
Create Date: 2026-10-19

Seeds the rate table with the launch defaults. Later edits go through the
admin settings endpoint, which bumps ``version``.
"""

from typing import Sequence

from alembic import op
from sqlalchemy import Integer, Numeric, String, Text, column, table

# revision identifiers
revision: str = "002_seed_platform_settings"
down_revision: str = "001_initial"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PLATFORM_SETTINGS = [
    {
        "key": "commission_percent",
        "value": "15.00",
        "description": "Platform commission on the experience price (%)",
    },
    {
        "key": "service_fee_percent",
        "value": "5.00",
        "description": "Guest service fee on the experience price (%)",
    },
    {
        "key": "partner_commission_percent",
        "value": "10.00",
        "description": "Referral partner commission on the experience price (%)",
    },
    {
        "key": "partner_payout_threshold",
        "value": "15000",
        "description": "Minimum partner balance for a payout (minor units)",
    },
]


def upgrade() -> None:
    """Insert the default rate table."""
    settings_table = table(
        "platform_settings",
        column("key", String),
        column("value", Numeric),
        column("description", Text),
        column("version", Integer),
    )

    op.bulk_insert(
        settings_table,
        [{**row, "version": 1} for row in PLATFORM_SETTINGS],
    )


def downgrade() -> None:
    """Remove seeded settings."""
    keys = [row["key"] for row in PLATFORM_SETTINGS]
    settings_table = table("platform_settings", column("key", String))

    op.execute(settings_table.delete().where(settings_table.c.key.in_(keys)))
