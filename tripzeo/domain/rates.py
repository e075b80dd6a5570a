"""Versioned rate table snapshot injected into transitions."""

from dataclasses import dataclass
from decimal import Decimal

from tripzeo.domain.ledger import PARTNER_COMMISSION_RATE

COMMISSION_PERCENT = "commission_percent"
SERVICE_FEE_PERCENT = "service_fee_percent"
PARTNER_COMMISSION_PERCENT = "partner_commission_percent"
PARTNER_PAYOUT_THRESHOLD = "partner_payout_threshold"

RATE_KEYS = (
    COMMISSION_PERCENT,
    SERVICE_FEE_PERCENT,
    PARTNER_COMMISSION_PERCENT,
    PARTNER_PAYOUT_THRESHOLD,
)


@dataclass(frozen=True)
class RateSnapshot:
    """Rates in force at one instant.

    ``version`` increases on every platform setting edit, so a booking that
    stores it can always be traced back to the table it was priced with.
    """

    version: int
    commission_percent: Decimal
    service_fee_percent: Decimal
    partner_commission_percent: Decimal = PARTNER_COMMISSION_RATE
    partner_payout_threshold: int = 15000
