"""Booking-related Pydantic schemas."""

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    experience_id: UUID
    booking_date: date
    attendees_count: int = Field(default=1, ge=1, le=50)
    referral_code: str | None = Field(None, max_length=32)

    @field_validator("referral_code")
    @classmethod
    def normalize_referral_code(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


class BookingCancel(BaseModel):
    """Schema for cancelling (and refunding) a booking."""

    reason: str | None = Field(None, max_length=500)


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_number: str
    experience_id: UUID
    guest_id: UUID
    host_id: UUID
    partner_id: UUID | None

    # Schedule
    booking_date: date
    start_time: time | None
    end_time: time | None
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    attendees_count: int

    # Pricing
    currency: str
    base_price: int
    service_fee: int
    total_amount: int
    service_fee_rate: Decimal
    commission_rate: Decimal | None
    commission_amount: int | None
    host_earnings: int | None
    rates_version: int | None

    # Status
    status: str
    payout_reference: str | None
    payout_eligible_at: datetime | None

    created_at: datetime
    confirmed_at: datetime | None
    captured_at: datetime | None = None
    completed_at: datetime | None
    cancelled_at: datetime | None
    paid_out_at: datetime | None


class SweepResponse(BaseModel):
    """Result of a completion sweep."""

    message: str
    processed: int
    skipped: int
    failed: int
    total: int


class ReconcileResponse(BaseModel):
    message: str
    created: int
