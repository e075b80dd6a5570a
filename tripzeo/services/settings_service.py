"""Platform rate settings.

Rows in ``platform_settings`` override the defaults from configuration. The
table is read as one immutable ``RateSnapshot`` per transition.
"""

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.config import settings
from tripzeo.core.exceptions import AuthorizationError, ValidationError
from tripzeo.domain.ledger import validate_amount, validate_rate
from tripzeo.domain.rates import (
    COMMISSION_PERCENT,
    PARTNER_COMMISSION_PERCENT,
    PARTNER_PAYOUT_THRESHOLD,
    RATE_KEYS,
    SERVICE_FEE_PERCENT,
    RateSnapshot,
)
from tripzeo.models.financial import PlatformSetting
from tripzeo.models.user import User

logger = logging.getLogger(__name__)

SETTING_DESCRIPTIONS = {
    COMMISSION_PERCENT: "Platform commission on the experience price (%)",
    SERVICE_FEE_PERCENT: "Guest service fee on the experience price (%)",
    PARTNER_COMMISSION_PERCENT: "Referral partner commission on the experience price (%)",
    PARTNER_PAYOUT_THRESHOLD: "Minimum partner balance for a payout (minor units)",
}


def default_values() -> dict[str, Decimal]:
    return {
        COMMISSION_PERCENT: settings.commission_percent,
        SERVICE_FEE_PERCENT: settings.service_fee_percent,
        PARTNER_COMMISSION_PERCENT: settings.partner_commission_percent,
        PARTNER_PAYOUT_THRESHOLD: Decimal(settings.partner_payout_threshold),
    }


def _validate_value(key: str, value) -> Decimal:
    if key not in RATE_KEYS:
        raise ValidationError(f"Unknown platform setting '{key}'")
    if key == PARTNER_PAYOUT_THRESHOLD:
        return Decimal(validate_amount(value, "Payout threshold"))
    return validate_rate(value, key)


class SettingsService:
    """Service for reading and editing the platform rate table."""

    async def list_settings(self, db: AsyncSession) -> list[dict]:
        """All rate keys with their effective value and version (0 = default)."""
        result = await db.execute(select(PlatformSetting))
        rows = {row.key: row for row in result.scalars().all()}

        items = []
        for key, default in default_values().items():
            row = rows.get(key)
            items.append(
                {
                    "key": key,
                    "value": row.value if row else default,
                    "description": (row.description if row else None) or SETTING_DESCRIPTIONS[key],
                    "version": row.version if row else 0,
                    "updated_at": row.updated_at if row else None,
                }
            )
        return items

    async def get_rate_snapshot(self, db: AsyncSession) -> RateSnapshot:
        """Read the rate table as it stands now."""
        result = await db.execute(select(PlatformSetting))
        rows = result.scalars().all()

        values = default_values()
        version = 0
        for row in rows:
            if row.key in values:
                values[row.key] = Decimal(row.value)
                version = max(version, row.version)

        return RateSnapshot(
            version=version,
            commission_percent=values[COMMISSION_PERCENT],
            service_fee_percent=values[SERVICE_FEE_PERCENT],
            partner_commission_percent=values[PARTNER_COMMISSION_PERCENT],
            partner_payout_threshold=int(values[PARTNER_PAYOUT_THRESHOLD]),
        )

    async def update_setting(
        self,
        db: AsyncSession,
        actor: User,
        key: str,
        value,
        description: str | None = None,
    ) -> PlatformSetting:
        """Set one rate, bumping the table version. Admin only.

        Raises:
            AuthorizationError: If the actor is not an admin
            ValidationError: If the key is unknown
            InvalidAmount: If the value is out of range
        """
        if not actor.is_admin:
            raise AuthorizationError("Only admins can change platform settings")

        normalized = _validate_value(key, value)

        current_version = await db.scalar(select(func.max(PlatformSetting.version)))
        next_version = (current_version or 0) + 1

        setting = await db.get(PlatformSetting, key)
        if setting is None:
            setting = PlatformSetting(
                key=key,
                description=description or SETTING_DESCRIPTIONS[key],
            )
            db.add(setting)
        elif description:
            setting.description = description

        setting.value = normalized
        setting.version = next_version
        setting.updated_by = actor.id

        await db.commit()
        await db.refresh(setting)

        logger.info(f"Platform setting {key} set to {normalized} by {actor.id} (version {next_version})")
        return setting


# Singleton instance
settings_service = SettingsService()
