"""Stripe payment gateway adapter.

Checkout runs through a hosted Checkout Session whose PaymentIntent uses
``capture_method=manual``, so completing the form only places a hold.
"""

import asyncio
import logging

import stripe

from tripzeo.config import settings
from tripzeo.core.exceptions import GatewayPermanentError, GatewayRetryableError
from tripzeo.gateways.base import (
    BuyerInfo,
    CheckoutConfirmation,
    CheckoutHandle,
    GatewayType,
    OperationResult,
    PaymentGateway,
    parse_confirmation,
)

logger = logging.getLogger(__name__)

UNEXPECTED_STATE = "payment_intent_unexpected_state"


class StripeGateway(PaymentGateway):
    """Stripe payment gateway implementation."""

    def __init__(self):
        self.secret_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def _call(self, fn, *args, **kwargs):
        """Run a blocking SDK call off the event loop and classify failures."""
        if not self.secret_key:
            raise GatewayPermanentError("Stripe not configured")

        stripe.api_key = self.secret_key
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.warning(f"Stripe transient failure: {e}")
            raise GatewayRetryableError(f"Stripe unavailable: {e.user_message or e}")

    async def initialize_checkout(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        buyer: BuyerInfo,
        description: str,
    ) -> CheckoutHandle:
        """Create a Checkout Session that authorizes without capturing."""
        try:
            session = await self._call(
                stripe.checkout.Session.create,
                mode="payment",
                client_reference_id=booking_id,
                customer_email=buyer.email,
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "unit_amount": amount,
                            "product_data": {"name": description[:250]},
                        },
                        "quantity": 1,
                    }
                ],
                payment_intent_data={
                    "capture_method": "manual",
                    "metadata": {"booking_id": booking_id, "guest_id": buyer.id},
                },
                success_url=settings.checkout_success_url.replace("{booking_id}", booking_id),
                cancel_url=settings.checkout_cancel_url.replace("{booking_id}", booking_id),
                idempotency_key=f"checkout-{booking_id}",
            )
        except stripe.StripeError as e:
            raise GatewayPermanentError(f"Stripe checkout failed: {e.user_message or e}")

        return CheckoutHandle(token=session.id, redirect_url=session.url)

    async def confirm_callback(self, token: str) -> CheckoutConfirmation:
        """Resolve a Checkout Session id into a confirmation."""
        try:
            session = await self._call(
                stripe.checkout.Session.retrieve,
                token,
                expand=["payment_intent"],
            )
        except stripe.StripeError as e:
            raise GatewayPermanentError(f"Stripe session lookup failed: {e.user_message or e}")

        intent = session.payment_intent
        held = intent is not None and intent.status in ("requires_capture", "succeeded")

        payload = {
            "success": held,
            "basket_id": session.client_reference_id or "",
        }
        if held:
            payload["gateway_payment_id"] = intent.latest_charge
            payload["gateway_transaction_id"] = intent.id
        else:
            payload["error_message"] = (
                f"Payment not authorized (status: {intent.status if intent else session.status})"
            )
        return parse_confirmation(payload)

    async def _intent_status(self, transaction_id: str) -> str:
        try:
            intent = await self._call(stripe.PaymentIntent.retrieve, transaction_id)
        except stripe.StripeError as e:
            logger.warning(f"Could not re-read PaymentIntent {transaction_id}: {e}")
            return "unknown"
        return intent.status

    async def capture_held_authorization(self, transaction_id: str) -> OperationResult:
        """Capture a held PaymentIntent. A second capture is reported as success."""
        try:
            intent = await self._call(stripe.PaymentIntent.capture, transaction_id)
            return OperationResult(
                success=intent.status == "succeeded",
                reference=intent.id,
                raw_response={"status": intent.status},
            )
        except stripe.InvalidRequestError as e:
            if e.code != UNEXPECTED_STATE:
                return OperationResult(success=False, error_message=str(e))
            status = await self._intent_status(transaction_id)
            return OperationResult(
                success=status == "succeeded",
                reference=transaction_id,
                error_message=None if status == "succeeded" else f"PaymentIntent is {status}",
                raw_response={"status": status},
            )
        except stripe.StripeError as e:
            return OperationResult(success=False, error_message=str(e))

    async def void_authorization(self, transaction_id: str) -> OperationResult:
        """Cancel a held PaymentIntent. A second cancel is reported as success."""
        try:
            intent = await self._call(stripe.PaymentIntent.cancel, transaction_id)
            return OperationResult(
                success=intent.status == "canceled",
                reference=intent.id,
                raw_response={"status": intent.status},
            )
        except stripe.InvalidRequestError as e:
            if e.code != UNEXPECTED_STATE:
                return OperationResult(success=False, error_message=str(e))
            status = await self._intent_status(transaction_id)
            return OperationResult(
                success=status == "canceled",
                reference=transaction_id,
                error_message=None if status == "canceled" else f"PaymentIntent is {status}",
                raw_response={"status": status},
            )
        except stripe.StripeError as e:
            return OperationResult(success=False, error_message=str(e))

    async def refund_captured_payment(self, payment_id: str, amount: int) -> OperationResult:
        """Refund a captured charge."""
        try:
            refund = await self._call(
                stripe.Refund.create,
                charge=payment_id,
                amount=amount,
                reason="requested_by_customer",
                idempotency_key=f"refund-{payment_id}",
            )
        except stripe.StripeError as e:
            return OperationResult(success=False, error_message=str(e))

        return OperationResult(
            success=refund.status in ("succeeded", "pending"),
            reference=refund.id,
            error_message=None if refund.status in ("succeeded", "pending") else f"Refund {refund.status}",
            raw_response={"status": refund.status, "id": refund.id},
        )

    async def send_transfer(
        self,
        destination: str | None,
        amount: int,
        currency: str,
        reference: str,
    ) -> OperationResult:
        """Transfer funds to a connected account."""
        if not destination:
            return OperationResult(success=False, error_message="No Stripe payout account on file")

        try:
            transfer = await self._call(
                stripe.Transfer.create,
                amount=amount,
                currency=currency.lower(),
                destination=destination,
                transfer_group=reference,
                metadata={"payout_reference": reference},
                idempotency_key=f"transfer-{reference}",
            )
        except stripe.StripeError as e:
            return OperationResult(success=False, error_message=str(e))

        return OperationResult(
            success=True,
            reference=transfer.id,
            raw_response={"id": transfer.id, "amount": transfer.amount},
        )

    def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> dict | None:
        """Verify Stripe webhook signature."""
        if not self.webhook_secret:
            return None

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected Stripe webhook: {e}")
            return None
