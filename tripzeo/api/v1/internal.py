"""Internal endpoints called by the scheduler."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.api.deps import (
    get_booking_service,
    get_completion_service,
    get_db,
    require_cron_secret,
)
from tripzeo.schemas.booking import ReconcileResponse, SweepResponse
from tripzeo.services.booking_service import BookingService
from tripzeo.services.completion_service import CompletionService

router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post("/cron/process-bookings", response_model=SweepResponse)
async def process_bookings(
    service: Annotated[CompletionService, Depends(get_completion_service)],
) -> SweepResponse:
    """Complete every confirmed booking whose scheduled end has passed."""
    result = await service.sweep_elapsed_bookings()
    return SweepResponse(
        message=result.message,
        processed=result.processed,
        skipped=result.skipped,
        failed=result.failed,
        total=result.total,
    )


@router.post("/cron/reconcile-ledger", response_model=ReconcileResponse)
async def reconcile_ledger(
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> ReconcileResponse:
    """Write commission rows for captured bookings that are missing them."""
    created = await service.reconcile_missing_commissions(db)
    return ReconcileResponse(message="Ledger reconciled", created=created)
