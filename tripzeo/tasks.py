"""Celery background tasks.

Thin synchronous wrappers around the async services; all logic lives in
``tripzeo.services``.
"""

import asyncio
import logging

from celery import shared_task

from tripzeo.core.immutability import register_immutability_enforcement
from tripzeo.database import get_db_context
from tripzeo.services.booking_service import booking_service
from tripzeo.services.completion_service import completion_service

logger = logging.getLogger(__name__)

# The engine's pool is bound to one loop, so the worker process reuses it.
_loop: asyncio.AbstractEventLoop | None = None


def run_async(coro):
    """Run async function in sync context."""
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        register_immutability_enforcement()
    return _loop.run_until_complete(coro)


# ==================== BOOKING LIFECYCLE ====================


@shared_task(bind=True, max_retries=3)
def complete_elapsed_bookings(self):
    """Complete confirmed bookings whose scheduled end has passed."""
    try:
        result = run_async(completion_service.sweep_elapsed_bookings())
    except Exception as exc:
        logger.exception("Completion sweep failed")
        raise self.retry(exc=exc, countdown=120)

    return {
        "status": "success",
        "processed": result.processed,
        "skipped": result.skipped,
        "failed": result.failed,
        "total": result.total,
    }


# ==================== LEDGER ====================


async def _reconcile_ledger() -> int:
    async with get_db_context() as db:
        return await booking_service.reconcile_missing_commissions(db)


@shared_task(bind=True, max_retries=3)
def reconcile_ledger(self):
    """Create missing commission rows for captured bookings."""
    try:
        created = run_async(_reconcile_ledger())
    except Exception as exc:
        logger.exception("Ledger reconciliation failed")
        raise self.retry(exc=exc, countdown=600)

    if created:
        logger.warning(f"Ledger reconciliation created {created} row(s)")
    return {"status": "success", "created": created}
