"""Financial transaction state machine.

States:
- pending: Earned but not yet disbursed; counts towards the owner's balance
- completed: Disbursed (or, for payout and refund rows, executed)
- reversed: Voided because the underlying booking was refunded
"""

from enum import Enum

from tripzeo.core.exceptions import ValidationError
from tripzeo.domain.booking_state import BookingStatus


class TransactionType(str, Enum):
    COMMISSION = "commission"
    PAYOUT = "payout"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REVERSED = "reversed"


TRANSACTION_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.COMPLETED, TransactionStatus.REVERSED},
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.REVERSED: set(),
}


def assert_transaction_transition(current: str, target: str) -> None:
    """Validate a ledger row status flip.

    Args:
        current: Current transaction status
        target: Target transaction status

    Raises:
        ValidationError: If transition is not allowed
    """
    allowed = TRANSACTION_TRANSITIONS.get(TransactionStatus(current), set())
    if TransactionStatus(target) not in allowed:
        raise ValidationError(
            f"Invalid transaction transition: {current} → {target}"
        )


def can_pay_out_host(booking_status: str, payout_eligible_at) -> tuple[bool, str | None]:
    """Check if a host payout may be released for a booking.

    Args:
        booking_status: Current booking status
        payout_eligible_at: When the completion sweep marked the booking eligible

    Returns:
        Tuple of (can_pay_out, error_message)
    """
    if booking_status == BookingStatus.PAID_OUT.value:
        return False, "Booking has already been paid out"

    if booking_status != BookingStatus.COMPLETED.value:
        return False, f"Cannot pay out host - booking status is {booking_status}"

    if payout_eligible_at is None:
        return False, "Cannot pay out host - booking is not yet eligible for payout"

    return True, None
