"""Ledger primitives.

Pure money arithmetic shared by every place that derives an amount:

- Amounts are integers in the currency's minor unit (cents).
- Rates are Decimal percentages, ``Decimal("15.00")`` meaning 15%.
- Every percentage is rounded ROUND_HALF_UP to a whole minor unit by
  ``percent_of``; nothing else rounds, so the guest charge and the sum of the
  splits can never drift apart.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from tripzeo.core.exceptions import InvalidAmount

# Referral partners earn a flat share of the experience price.
PARTNER_COMMISSION_RATE = Decimal("10.00")

_HUNDRED = Decimal("100")
_ONE = Decimal("1")


@dataclass(frozen=True)
class BookingSplit:
    """Monetary breakdown of one booking."""

    base_price: int
    total_amount: int
    commission_amount: int
    service_fee: int
    host_earnings: int


def validate_amount(amount: int | Decimal, context: str = "Amount") -> int:
    """Return ``amount`` as int minor units or raise InvalidAmount."""
    if isinstance(amount, bool):
        raise InvalidAmount(f"{context}: expected a number, got {amount!r}")
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{context}: expected a number, got {amount!r}")
    if not value.is_finite():
        raise InvalidAmount(f"{context}: amount must be finite, got {amount}")
    if value < 0:
        raise InvalidAmount(f"{context}: amount must not be negative, got {amount}")
    if value != value.to_integral_value():
        raise InvalidAmount(f"{context}: amount must be whole minor units, got {amount}")
    return int(value)


def validate_rate(rate: Decimal | int | str, context: str = "Rate") -> Decimal:
    """Return ``rate`` as a Decimal percentage in [0, 100] or raise InvalidAmount."""
    if isinstance(rate, bool):
        raise InvalidAmount(f"{context}: expected a percentage, got {rate!r}")
    try:
        value = Decimal(str(rate))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{context}: expected a percentage, got {rate!r}")
    if not value.is_finite() or value < 0 or value > _HUNDRED:
        raise InvalidAmount(f"{context}: must be between 0 and 100, got {rate}")
    return value


def percent_of(amount: int, rate: Decimal) -> int:
    """Round ``amount * rate%`` half-up to a whole minor unit."""
    return int((Decimal(amount) * rate / _HUNDRED).quantize(_ONE, rounding=ROUND_HALF_UP))


def compute_split(
    base_price: int | Decimal,
    platform_commission_rate: Decimal | int | str,
    service_fee_rate: Decimal | int | str,
) -> BookingSplit:
    """Split an experience price into guest charge, fee, commission and host share.

    Args:
        base_price: Experience price component in minor units
        platform_commission_rate: Platform commission percentage
        service_fee_rate: Guest service fee percentage

    Returns:
        BookingSplit with ``total_amount = base + service_fee`` and
        ``host_earnings = base - commission_amount``
    """
    base = validate_amount(base_price, "Base price")
    commission_rate = validate_rate(platform_commission_rate, "Commission rate")
    fee_rate = validate_rate(service_fee_rate, "Service fee rate")

    service_fee = percent_of(base, fee_rate)
    commission_amount = percent_of(base, commission_rate)

    return BookingSplit(
        base_price=base,
        total_amount=base + service_fee,
        commission_amount=commission_amount,
        service_fee=service_fee,
        host_earnings=base - commission_amount,
    )


def compute_partner_commission(
    base_price: int | Decimal,
    partner_rate: Decimal | int | str = PARTNER_COMMISSION_RATE,
) -> int:
    """Referral partner's share of the base price, independent of platform commission."""
    base = validate_amount(base_price, "Base price")
    rate = validate_rate(partner_rate, "Partner rate")
    return percent_of(base, rate)


def format_minor_units(amount: int, currency: str) -> str:
    """Render ``10500, "USD"`` as ``"USD 105.00"`` for notifications and receipts."""
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(amount), 100)
    return f"{currency} {sign}{whole:,}.{cents:02d}"
