"""Booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.api.deps import get_booking_service, get_current_host, get_current_user, get_db
from tripzeo.domain.booking_state import BookingStatus
from tripzeo.models.user import User
from tripzeo.schemas.booking import BookingCancel, BookingCreate, BookingResponse
from tripzeo.schemas.payment import CheckoutResponse
from tripzeo.services.booking_service import BookingService

router = APIRouter()


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Create a booking awaiting payment."""
    booking = await service.create_booking(
        db,
        current_user,
        experience_id=request.experience_id,
        booking_date=request.booking_date,
        attendees_count=request.attendees_count,
        referral_code=request.referral_code,
    )
    return BookingResponse.model_validate(booking)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    booking_status: Annotated[BookingStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[BookingResponse]:
    """List bookings the current user is a party to."""
    bookings = await service.list_bookings(
        db, current_user, status=booking_status, limit=limit, offset=offset
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    booking = await service.get_booking_for(db, current_user, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/checkout", response_model=CheckoutResponse)
async def initialize_checkout(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> CheckoutResponse:
    """Open the hosted payment form for a booking."""
    handle = await service.initialize_checkout(db, current_user, booking_id)
    booking = await service.get_booking(db, booking_id)
    return CheckoutResponse(
        booking_id=booking.id,
        token=handle.token,
        redirect_url=handle.redirect_url,
        amount=booking.total_amount,
        currency=booking.currency,
    )


@router.post("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_host)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Host approves: the held payment is captured."""
    booking = await service.approve_booking(db, current_user, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_host)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Host declines: the held payment is released."""
    booking = await service.reject_booking(db, current_user, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    request: BookingCancel | None = None,
) -> BookingResponse:
    """Cancel a booking, voiding the hold or refunding the charge."""
    booking = await service.refund_booking(
        db, current_user, booking_id, reason=request.reason if request else None
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_host)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Mark a finished booking completed ahead of the scheduled sweep."""
    booking = await service.complete_booking(db, current_user, booking_id)
    return BookingResponse.model_validate(booking)
