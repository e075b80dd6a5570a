"""Payment endpoints: hosted checkout return and ledger history."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.api.deps import (
    get_booking_service,
    get_current_admin,
    get_current_user,
    get_db,
    get_payout_service,
)
from tripzeo.config import settings
from tripzeo.core.exceptions import NotFoundError, ValidationError
from tripzeo.gateways.manual import ManualGateway
from tripzeo.models.user import User
from tripzeo.schemas.booking import BookingResponse
from tripzeo.schemas.payment import ManualCheckoutSettle, PaymentCallback, TransactionResponse
from tripzeo.schemas.payout import ReceiptResponse
from tripzeo.services.booking_service import BookingService
from tripzeo.services.payout_service import PayoutService
from tripzeo.services.settlement_service import settlement_service

router = APIRouter()


@router.post("/callback", response_model=BookingResponse)
async def payment_callback(
    request: PaymentCallback,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Apply the result of a hosted checkout.

    The token is resolved against the gateway, so the caller needs no
    credentials.
    """
    booking = await service.confirm_payment(db, request.token)
    return BookingResponse.model_validate(booking)


@router.get("/callback", response_model=BookingResponse)
async def payment_return(
    token: Annotated[str, Query(min_length=1, max_length=255)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Redirect flavour of the callback for gateways that return via GET."""
    booking = await service.confirm_payment(db, token)
    return BookingResponse.model_validate(booking)


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_my_transactions(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=200)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[TransactionResponse]:
    """The current user's ledger rows, newest first."""
    rows = await settlement_service.list_transactions(
        db, current_user.id, limit=limit, offset=offset
    )
    return [TransactionResponse.model_validate(row) for row in rows]


@router.get("/transactions/{transaction_id}/receipt", response_model=ReceiptResponse)
async def get_receipt(
    transaction_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[PayoutService, Depends(get_payout_service)],
) -> ReceiptResponse:
    receipt = await service.get_receipt(db, current_user, transaction_id)
    return ReceiptResponse(**receipt)


@router.post("/manual/{token}/settle", response_model=BookingResponse)
async def settle_manual_checkout(
    token: str,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    request: ManualCheckoutSettle | None = None,
) -> BookingResponse:
    """Settle a sandbox checkout by hand and apply the callback.

    Only available with the manual gateway outside production.
    """
    gateway = service.gateway.gateway
    if settings.environment == "production" or not isinstance(gateway, ManualGateway):
        raise ValidationError("Manual settlement requires the manual gateway")
    if token not in gateway.checkouts:
        raise NotFoundError("Checkout", token)

    request = request or ManualCheckoutSettle()
    gateway.complete_checkout(token, success=request.success, error_message=request.error_message)
    booking = await service.confirm_payment(db, token)
    return BookingResponse.model_validate(booking)
