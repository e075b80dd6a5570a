"""Booking state machine.

The transition table is the single authority on which edges exist. Services
resolve the target status through ``next_status`` and never assign a status
string by hand.
"""

from enum import Enum

from tripzeo.core.exceptions import IllegalTransition


class BookingStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PENDING_HOST_APPROVAL = "pending_host_approval"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    PAID_OUT = "paid_out"
    PAYMENT_FAILED = "payment_failed"
    REJECTED = "rejected"
    CANCELLED_BY_HOST = "cancelled_by_host"
    CANCELLED_BY_USER = "cancelled_by_user"


class BookingEvent(str, Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    HOST_APPROVED = "host_approved"
    HOST_REJECTED = "host_rejected"
    CANCELLED_BY_GUEST = "cancelled_by_guest"
    CANCELLED_BY_HOST = "cancelled_by_host"
    SCHEDULE_ELAPSED = "schedule_elapsed"
    PAID_OUT = "paid_out"


S = BookingStatus
E = BookingEvent

BOOKING_TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (S.PENDING_PAYMENT, E.PAYMENT_SUCCEEDED): S.PENDING_HOST_APPROVAL,
    (S.PENDING_PAYMENT, E.PAYMENT_FAILED): S.PAYMENT_FAILED,
    (S.PENDING_HOST_APPROVAL, E.HOST_APPROVED): S.CONFIRMED,
    (S.PENDING_HOST_APPROVAL, E.HOST_REJECTED): S.REJECTED,
    # Funds are only authorized here: cancelling voids, never refunds.
    (S.PENDING_HOST_APPROVAL, E.CANCELLED_BY_GUEST): S.CANCELLED_BY_USER,
    (S.PENDING_HOST_APPROVAL, E.CANCELLED_BY_HOST): S.CANCELLED_BY_HOST,
    (S.CONFIRMED, E.CANCELLED_BY_GUEST): S.CANCELLED_BY_USER,
    (S.CONFIRMED, E.CANCELLED_BY_HOST): S.CANCELLED_BY_HOST,
    (S.CONFIRMED, E.SCHEDULE_ELAPSED): S.COMPLETED,
    (S.COMPLETED, E.CANCELLED_BY_GUEST): S.CANCELLED_BY_USER,
    (S.COMPLETED, E.CANCELLED_BY_HOST): S.CANCELLED_BY_HOST,
    (S.COMPLETED, E.PAID_OUT): S.PAID_OUT,
}

TERMINAL_STATUSES = frozenset(
    {
        S.PAID_OUT,
        S.PAYMENT_FAILED,
        S.REJECTED,
        S.CANCELLED_BY_HOST,
        S.CANCELLED_BY_USER,
    }
)

# Statuses in which the guest's money has been captured by the platform.
CAPTURED_STATUSES = frozenset({S.CONFIRMED, S.COMPLETED, S.PAID_OUT})


def next_status(current: str | BookingStatus, event: BookingEvent) -> BookingStatus:
    """Resolve the target of ``event`` from ``current`` or raise IllegalTransition."""
    try:
        status = BookingStatus(current)
    except ValueError:
        raise IllegalTransition(str(current), event.value, f"Unknown booking status '{current}'")

    target = BOOKING_TRANSITIONS.get((status, event))
    if target is None:
        raise IllegalTransition(status.value, event.value)
    return target


def allowed_events(current: str | BookingStatus) -> set[BookingEvent]:
    """Events that may be applied from ``current``."""
    status = BookingStatus(current)
    return {event for (source, event) in BOOKING_TRANSITIONS if source == status}


def is_terminal(current: str | BookingStatus) -> bool:
    return BookingStatus(current) in TERMINAL_STATUSES
