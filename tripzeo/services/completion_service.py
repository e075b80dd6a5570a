"""Scheduled completion sweep.

Completes every confirmed booking whose scheduled end has passed. Each
booking gets its own session and guarded update, so a booking completed
concurrently (or by a previous sweep) is simply skipped.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripzeo.config import settings
from tripzeo.core.exceptions import ConcurrentModification
from tripzeo.database import async_session_maker
from tripzeo.domain.booking_state import BookingStatus
from tripzeo.models.booking import Booking
from tripzeo.services.booking_service import BookingService, booking_service

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0

    @property
    def message(self) -> str:
        if self.total == 0:
            return "No bookings to process"
        return "Bookings processed"


class CompletionService:
    """Runs the completion sweep with bounded concurrency."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        bookings: BookingService | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.session_factory = session_factory or async_session_maker
        self.bookings = bookings or booking_service
        self.concurrency = concurrency or settings.sweep_concurrency

    async def find_elapsed(self, now: datetime) -> list[UUID]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Booking.id)
                .where(
                    Booking.status == BookingStatus.CONFIRMED.value,
                    Booking.scheduled_end_at <= now,
                )
                .order_by(Booking.scheduled_end_at)
            )
            return list(result.scalars().all())

    async def sweep_elapsed_bookings(self, now: datetime | None = None) -> SweepResult:
        """Complete all confirmed bookings that ended at or before ``now``."""
        now = now or datetime.now(UTC)
        booking_ids = await self.find_elapsed(now)
        result = SweepResult(total=len(booking_ids))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def complete_one(booking_id: UUID) -> None:
            async with semaphore, self.session_factory() as db:
                booking = await db.get(Booking, booking_id)
                if booking is None or booking.status != BookingStatus.CONFIRMED.value:
                    result.skipped += 1
                    return
                try:
                    await self.bookings.complete_elapsed(db, booking, now)
                except ConcurrentModification:
                    result.skipped += 1
                    return
                except Exception:
                    logger.exception(f"Failed to complete booking {booking_id}")
                    result.failed += 1
                    return
                result.processed += 1

        await asyncio.gather(*(complete_one(booking_id) for booking_id in booking_ids))

        logger.info(
            f"Completion sweep at {now.isoformat()}: {result.processed} completed, "
            f"{result.skipped} skipped, {result.failed} failed of {result.total}"
        )
        return result


# Singleton instance
completion_service = CompletionService()
