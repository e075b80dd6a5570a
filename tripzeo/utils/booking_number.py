"""Booking number and reference generation utilities."""

import random
import string
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

_ALPHABET = string.ascii_uppercase + string.digits


async def generate_booking_number(db: AsyncSession) -> str:
    """Generate a unique booking number in format TRZ-XXXXXX.

    Args:
        db: Database session for uniqueness check

    Returns:
        str: Unique booking number like 'TRZ-A3B7K9'
    """
    from tripzeo.models.booking import Booking

    while True:
        booking_number = f"TRZ-{''.join(random.choices(_ALPHABET, k=6))}"

        result = await db.execute(
            select(Booking.id).where(Booking.booking_number == booking_number)
        )
        if result.scalar_one_or_none() is None:
            return booking_number


def generate_payout_reference(prefix: str = "PAY") -> str:
    """Generate a payout reference number.

    Returns:
        str: Payout reference like 'PAY-20240115-K9M2Q7'
    """
    date_part = datetime.now(UTC).strftime("%Y%m%d")
    random_part = "".join(random.choices(_ALPHABET, k=6))
    return f"{prefix}-{date_part}-{random_part}"
