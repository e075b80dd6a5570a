"""Payment-related Pydantic schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CheckoutResponse(BaseModel):
    """Hosted checkout the guest is redirected to."""

    booking_id: UUID
    token: str
    redirect_url: str | None
    amount: int
    currency: str


class PaymentCallback(BaseModel):
    """Token posted back when the guest returns from the hosted form."""

    token: str = Field(..., min_length=1, max_length=255)


class TransactionResponse(BaseModel):
    """Schema for a ledger row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    booking_id: UUID | None
    type: str
    amount: int
    currency: str
    status: str
    description: str | None
    details: dict[str, Any] | None
    created_at: datetime


class ManualCheckoutSettle(BaseModel):
    """Outcome to apply to an open manual-gateway checkout."""

    success: bool = True
    error_message: str | None = Field(None, max_length=255)
