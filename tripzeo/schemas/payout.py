"""Payout and partner Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class PartnerBalanceResponse(BaseModel):
    partner_id: UUID
    full_name: str | None
    email: str
    transaction_count: int
    total_amount: int
    currency: str
    has_complete_bank_info: bool
    eligible: bool


class HostPayoutRequest(BaseModel):
    """Bank transfer reference when the admin paid the host outside the platform."""

    payout_reference: str | None = Field(None, min_length=3, max_length=100)


class PartnerSummaryResponse(BaseModel):
    partner_id: UUID
    referral_code: str | None
    total_earnings: int
    pending_balance: int
    paid_out: int
    conversion_count: int
    payout_threshold: int
    eligible_for_payout: bool
    has_complete_bank_info: bool


class ReceiptResponse(BaseModel):
    receipt_number: str
    transaction_id: UUID
    type: str
    status: str
    amount: int
    currency: str
    formatted_amount: str
    description: str | None
    issued_to: str
    issued_at: datetime | None
    booking_number: str | None
    experience_title: str | None
    payout_reference: str | None
