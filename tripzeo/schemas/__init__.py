"""Pydantic schemas for API validation."""

from tripzeo.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    ReconcileResponse,
    SweepResponse,
)
from tripzeo.schemas.payment import (
    CheckoutResponse,
    ManualCheckoutSettle,
    PaymentCallback,
    TransactionResponse,
)
from tripzeo.schemas.payout import (
    HostPayoutRequest,
    PartnerBalanceResponse,
    PartnerSummaryResponse,
    ReceiptResponse,
)
from tripzeo.schemas.settings import PlatformSettingResponse, PlatformSettingUpdate

__all__ = [
    "BookingCancel",
    "BookingCreate",
    "BookingResponse",
    "CheckoutResponse",
    "HostPayoutRequest",
    "ManualCheckoutSettle",
    "PartnerBalanceResponse",
    "PartnerSummaryResponse",
    "PaymentCallback",
    "PlatformSettingResponse",
    "PlatformSettingUpdate",
    "ReceiptResponse",
    "ReconcileResponse",
    "SweepResponse",
    "TransactionResponse",
]
