"""Manual payment gateway adapter.

Keeps authorizations in process memory. Used for development, for bank
transfer payouts settled by an admin outside the platform, and as the
sandbox the test-suite drives. Honors the same idempotency contract as the
real adapters.
"""

import uuid

from tripzeo.gateways.base import (
    BuyerInfo,
    CheckoutConfirmation,
    CheckoutHandle,
    GatewayType,
    OperationResult,
    PaymentGateway,
    parse_confirmation,
)

OPEN = "open"
DECLINED = "declined"
AUTHORIZED = "authorized"
CAPTURED = "captured"
VOIDED = "voided"
REFUNDED = "refunded"


class ManualGateway(PaymentGateway):
    """In-memory gateway with hooks to settle checkouts by hand."""

    def __init__(self) -> None:
        self.checkouts: dict[str, dict] = {}
        self.transfers: dict[str, OperationResult] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[str, list[Exception]] = {}

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

    # ==================== SANDBOX HOOKS ====================

    def complete_checkout(self, token: str, success: bool = True, error_message: str | None = None) -> None:
        """Settle an open checkout as if the guest had submitted the form."""
        checkout = self.checkouts[token]
        if checkout["state"] != OPEN:
            return
        if success:
            checkout["state"] = AUTHORIZED
            checkout["payment_id"] = f"manual_pay_{uuid.uuid4().hex[:12]}"
            checkout["transaction_id"] = f"manual_txn_{uuid.uuid4().hex[:12]}"
        else:
            checkout["state"] = DECLINED
            checkout["error_message"] = error_message or "Card declined"

    def fail_next(self, operation: str, error: Exception) -> None:
        """Raise ``error`` from the next call to ``operation``."""
        self._failures.setdefault(operation, []).append(error)

    def state_of(self, booking_id: str) -> str | None:
        for checkout in self.checkouts.values():
            if checkout["booking_id"] == booking_id:
                return checkout["state"]
        return None

    def _enter(self, operation: str, reference: str) -> None:
        self.calls.append((operation, reference))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _by_key(self, key: str, value: str) -> dict | None:
        for checkout in self.checkouts.values():
            if checkout.get(key) == value:
                return checkout
        return None

    # ==================== GATEWAY OPERATIONS ====================

    async def initialize_checkout(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        buyer: BuyerInfo,
        description: str,
    ) -> CheckoutHandle:
        """Create (or return the existing) checkout for a booking."""
        self._enter("initialize_checkout", booking_id)
        token = f"manual_chk_{booking_id}"
        if token not in self.checkouts:
            self.checkouts[token] = {
                "booking_id": booking_id,
                "amount": amount,
                "currency": currency,
                "buyer_id": buyer.id,
                "state": OPEN,
            }
        return CheckoutHandle(token=token, redirect_url=None)

    async def confirm_callback(self, token: str) -> CheckoutConfirmation:
        self._enter("confirm_callback", token)
        checkout = self.checkouts.get(token)
        if checkout is None:
            return parse_confirmation({"success": False, "basket_id": ""})

        if checkout["state"] in (AUTHORIZED, CAPTURED, VOIDED, REFUNDED):
            payload = {
                "success": True,
                "basket_id": checkout["booking_id"],
                "gateway_payment_id": checkout["payment_id"],
                "gateway_transaction_id": checkout["transaction_id"],
            }
        else:
            payload = {
                "success": False,
                "basket_id": checkout["booking_id"],
                "error_message": checkout.get("error_message", "Checkout not completed"),
            }
        return parse_confirmation(payload)

    async def capture_held_authorization(self, transaction_id: str) -> OperationResult:
        self._enter("capture", transaction_id)
        checkout = self._by_key("transaction_id", transaction_id)
        if checkout is None:
            return OperationResult(success=False, error_message="Unknown authorization")
        if checkout["state"] == AUTHORIZED:
            checkout["state"] = CAPTURED
        if checkout["state"] != CAPTURED:
            return OperationResult(
                success=False,
                error_message=f"Cannot capture an authorization that is {checkout['state']}",
            )
        return OperationResult(success=True, reference=transaction_id)

    async def void_authorization(self, transaction_id: str) -> OperationResult:
        self._enter("void", transaction_id)
        checkout = self._by_key("transaction_id", transaction_id)
        if checkout is None:
            return OperationResult(success=False, error_message="Unknown authorization")
        if checkout["state"] == AUTHORIZED:
            checkout["state"] = VOIDED
        if checkout["state"] != VOIDED:
            return OperationResult(
                success=False,
                error_message=f"Cannot void an authorization that is {checkout['state']}",
            )
        return OperationResult(success=True, reference=transaction_id)

    async def refund_captured_payment(self, payment_id: str, amount: int) -> OperationResult:
        self._enter("refund", payment_id)
        checkout = self._by_key("payment_id", payment_id)
        if checkout is None:
            return OperationResult(success=False, error_message="Unknown payment")
        if checkout["state"] == CAPTURED:
            checkout["state"] = REFUNDED
            checkout["refunded_amount"] = amount
        if checkout["state"] != REFUNDED:
            return OperationResult(
                success=False,
                error_message=f"Cannot refund a payment that is {checkout['state']}",
            )
        return OperationResult(success=True, reference=f"refund_{payment_id}")

    async def send_transfer(
        self,
        destination: str | None,
        amount: int,
        currency: str,
        reference: str,
    ) -> OperationResult:
        """Record a bank transfer an admin settles by hand."""
        self._enter("transfer", reference)
        if reference not in self.transfers:
            self.transfers[reference] = OperationResult(
                success=True,
                reference=f"manual_{reference}",
                raw_response={
                    "type": "bank_transfer",
                    "destination": destination,
                    "amount": amount,
                    "currency": currency,
                },
            )
        return self.transfers[reference]
