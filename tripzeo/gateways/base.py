"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
Every operation must be idempotent: repeating a capture, void, refund or
transfer that already went through returns success without moving money twice.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from tripzeo.core.exceptions import GatewayPermanentError


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    MANUAL = "manual"


@dataclass
class BuyerInfo:
    """Guest details the hosted checkout form needs."""

    id: str
    email: str
    full_name: str | None = None


@dataclass
class CheckoutHandle:
    """Hosted checkout form created for one booking."""

    token: str
    redirect_url: str | None = None


@dataclass
class OperationResult:
    """Result of a capture, void, refund or transfer."""

    success: bool
    reference: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class CheckoutConfirmation(BaseModel):
    """Validated outcome of a hosted checkout.

    Adapters build this from the provider response; anything that does not
    fit the schema is rejected rather than partially trusted.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, strict=True)

    success: bool
    basket_id: str = Field(min_length=1)
    gateway_payment_id: str | None = Field(default=None, min_length=1)
    gateway_transaction_id: str | None = Field(default=None, min_length=1)
    error_message: str | None = None


def parse_confirmation(payload: dict) -> CheckoutConfirmation:
    """Validate a provider callback payload, failing closed.

    Raises:
        GatewayPermanentError: On malformed payloads, or a success without ids
    """
    try:
        confirmation = CheckoutConfirmation.model_validate(payload)
    except PydanticValidationError as e:
        raise GatewayPermanentError(f"Malformed gateway response: {e.error_count()} invalid field(s)")

    if confirmation.success and not (
        confirmation.gateway_payment_id and confirmation.gateway_transaction_id
    ):
        raise GatewayPermanentError("Gateway reported success without payment references")
    return confirmation


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
    async def initialize_checkout(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        buyer: BuyerInfo,
        description: str,
    ) -> CheckoutHandle:
        """Create a hosted checkout that only authorizes (holds) the amount.

        Args:
            booking_id: Internal booking reference, echoed back as basket id
            amount: Amount in smallest currency unit
            currency: Currency code
            buyer: Guest details
            description: Line item description

        Returns:
            CheckoutHandle with the token the callback will carry
        """
        pass

    @abstractmethod
    async def confirm_callback(self, token: str) -> CheckoutConfirmation:
        """Resolve a checkout token into a validated confirmation."""
        pass

    @abstractmethod
    async def capture_held_authorization(self, transaction_id: str) -> OperationResult:
        """Turn a held authorization into a charge."""
        pass

    @abstractmethod
    async def void_authorization(self, transaction_id: str) -> OperationResult:
        """Release a held authorization that was never captured."""
        pass

    @abstractmethod
    async def refund_captured_payment(self, payment_id: str, amount: int) -> OperationResult:
        """Refund a captured charge.

        Args:
            payment_id: Gateway payment (charge) ID
            amount: Refund amount in smallest currency unit
        """
        pass

    @abstractmethod
    async def send_transfer(
        self,
        destination: str | None,
        amount: int,
        currency: str,
        reference: str,
    ) -> OperationResult:
        """Disburse money to a host or partner.

        Args:
            destination: Gateway payout account, None for manual bank transfer
            amount: Amount in smallest currency unit
            currency: Currency code
            reference: Our payout reference, also used as idempotency key
        """
        pass
