"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Time, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from tripzeo.database import Base
from tripzeo.domain.booking_state import BookingStatus


class Booking(Base):
    """One reservation of one experience slot by one guest."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # TRZ-XXXXXX
    experience_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("experiences.id"), nullable=False, index=True
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    partner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), index=True
    )

    # Schedule
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time)
    end_time: Mapped[time | None] = mapped_column(Time)
    duration_minutes: Mapped[int | None] = mapped_column(Integer)
    scheduled_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scheduled_end_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    attendees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Pricing (in cents)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)  # unit price * attendees
    service_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)  # base_price + service_fee

    # Rate snapshot: fee rate at creation, commission rate at host approval
    service_fee_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    rates_version: Mapped[int | None] = mapped_column(Integer)

    # Set once, when the host approves
    commission_amount: Mapped[int | None] = mapped_column(Integer)
    host_earnings: Mapped[int | None] = mapped_column(Integer)  # base_price - commission_amount

    # Gateway references
    payment_id: Mapped[str | None] = mapped_column(String(100))
    payment_transaction_id: Mapped[str | None] = mapped_column(String(100))
    checkout_token: Mapped[str | None] = mapped_column(String(255), index=True)
    payout_reference: Mapped[str | None] = mapped_column(String(100))

    # Status
    status: Mapped[str] = mapped_column(
        String(30), default=BookingStatus.PENDING_PAYMENT.value, nullable=False, index=True
    )
    payout_eligible_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # Set when the gateway capture succeeds, even if the ledger write then fails
    captured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)
