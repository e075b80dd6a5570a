"""Payment gateway service.

Routes payment operations to the configured gateway adapter.
No business logic here - only gateway coordination, timeouts and the
translation of failed operations into gateway errors.
"""

import asyncio
import logging

from tripzeo.config import settings
from tripzeo.core.exceptions import GatewayPermanentError, GatewayRetryableError
from tripzeo.gateways.base import (
    BuyerInfo,
    CheckoutConfirmation,
    CheckoutHandle,
    GatewayType,
    OperationResult,
    PaymentGateway,
)
from tripzeo.gateways.manual import ManualGateway
from tripzeo.gateways.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_production_for_real_gateway(gateway_type: GatewayType) -> None:
    """Block live gateway operations in non-production environments.

    Stripe test-mode keys are allowed anywhere.

    Raises:
        RuntimeError: If attempting live gateway operation outside production
    """
    if gateway_type != GatewayType.STRIPE or _is_production():
        return
    if (settings.stripe_secret_key or "").startswith("sk_test_"):
        return
    raise RuntimeError(
        f"Cannot execute live {gateway_type.value} gateway operations "
        f"in {settings.environment} environment. Set ENVIRONMENT=production or use test keys."
    )


def build_gateway(gateway_type: str | GatewayType) -> PaymentGateway:
    """Create a gateway adapter by name."""
    if isinstance(gateway_type, str):
        gateway_type = GatewayType(gateway_type)
    if gateway_type == GatewayType.STRIPE:
        return StripeGateway()
    return ManualGateway()


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self, gateway: PaymentGateway | None = None, timeout: float | None = None):
        self._gateway = gateway
        self.timeout = timeout if timeout is not None else settings.gateway_timeout_seconds

    @property
    def gateway(self) -> PaymentGateway:
        if self._gateway is None:
            self._gateway = build_gateway(settings.payment_gateway)
        return self._gateway

    async def _run(self, operation: str, coro):
        try:
            _assert_production_for_real_gateway(self.gateway.gateway_type)
        except RuntimeError:
            coro.close()
            raise
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Gateway {self.gateway.gateway_type.value} {operation} timed out after {self.timeout}s"
            )
            raise GatewayRetryableError(f"Gateway {operation} timed out")

    @staticmethod
    def _require_success(operation: str, result: OperationResult) -> OperationResult:
        if not result.success:
            logger.error(f"Gateway {operation} failed: {result.error_message}")
            raise GatewayPermanentError(result.error_message or f"Gateway {operation} failed")
        return result

    async def initialize_checkout(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        buyer: BuyerInfo,
        description: str,
    ) -> CheckoutHandle:
        return await self._run(
            "checkout",
            self.gateway.initialize_checkout(
                booking_id=booking_id,
                amount=amount,
                currency=currency,
                buyer=buyer,
                description=description,
            ),
        )

    async def confirm_callback(self, token: str) -> CheckoutConfirmation:
        return await self._run("callback", self.gateway.confirm_callback(token))

    async def capture(self, transaction_id: str) -> OperationResult:
        result = await self._run("capture", self.gateway.capture_held_authorization(transaction_id))
        return self._require_success("capture", result)

    async def void(self, transaction_id: str) -> OperationResult:
        result = await self._run("void", self.gateway.void_authorization(transaction_id))
        return self._require_success("void", result)

    async def refund(self, payment_id: str, amount: int) -> OperationResult:
        result = await self._run(
            "refund", self.gateway.refund_captured_payment(payment_id, amount)
        )
        return self._require_success("refund", result)

    async def transfer(
        self,
        destination: str | None,
        amount: int,
        currency: str,
        reference: str,
    ) -> OperationResult:
        result = await self._run(
            "transfer",
            self.gateway.send_transfer(
                destination=destination,
                amount=amount,
                currency=currency,
                reference=reference,
            ),
        )
        return self._require_success("transfer", result)


# Singleton instance
gateway_service = GatewayService()
