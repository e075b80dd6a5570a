"""Payout endpoints for partners and hosts."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.api.deps import get_current_admin, get_current_user, get_db, get_payout_service
from tripzeo.models.user import User
from tripzeo.schemas.booking import BookingResponse
from tripzeo.schemas.payment import TransactionResponse
from tripzeo.schemas.payout import (
    HostPayoutRequest,
    PartnerBalanceResponse,
    PartnerSummaryResponse,
)
from tripzeo.services.payout_service import PayoutService

router = APIRouter()


@router.get("/partners", response_model=list[PartnerBalanceResponse])
async def list_partner_balances(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[PayoutService, Depends(get_payout_service)],
) -> list[PartnerBalanceResponse]:
    """Partners with pending commission, largest balance first (admin only)."""
    balances = await service.list_partner_balances(db)
    return [PartnerBalanceResponse(**balance) for balance in balances]


@router.post("/partners/{partner_id}", response_model=TransactionResponse)
async def payout_partner(
    partner_id: UUID,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[PayoutService, Depends(get_payout_service)],
) -> TransactionResponse:
    """Pay out a partner's whole pending balance (admin only)."""
    payout = await service.payout_partner(db, current_user, partner_id)
    return TransactionResponse.model_validate(payout)


@router.get("/partners/me/summary", response_model=PartnerSummaryResponse)
async def my_partner_summary(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[PayoutService, Depends(get_payout_service)],
) -> PartnerSummaryResponse:
    summary = await service.get_partner_summary(db, current_user)
    return PartnerSummaryResponse(**summary)


@router.get("/partners/{partner_id}/summary", response_model=PartnerSummaryResponse)
async def partner_summary(
    partner_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[PayoutService, Depends(get_payout_service)],
) -> PartnerSummaryResponse:
    summary = await service.get_partner_summary(db, current_user, partner_id)
    return PartnerSummaryResponse(**summary)


@router.post("/hosts/{booking_id}", response_model=BookingResponse)
async def payout_host(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[PayoutService, Depends(get_payout_service)],
    request: HostPayoutRequest | None = None,
) -> BookingResponse:
    """Release a completed booking's host earnings (admin only)."""
    booking = await service.payout_host(
        db,
        current_user,
        booking_id,
        payout_reference=request.payout_reference if request else None,
    )
    return BookingResponse.model_validate(booking)
