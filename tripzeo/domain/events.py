"""Domain events raised by booking and payout transitions.

Events are collected while a transition runs and handed to the dispatcher
only after the unit of work has committed. A failing dispatcher is logged
and never undoes the transition.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    PAYMENT_AUTHORIZED = "booking.payment_authorized"
    PAYMENT_FAILED = "booking.payment_failed"
    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_REJECTED = "booking.rejected"
    BOOKING_CANCELLED = "booking.cancelled"
    REVIEW_REQUESTED = "booking.review_requested"
    HOST_PAID_OUT = "booking.paid_out"
    PARTNER_PAID_OUT = "partner.paid_out"


@dataclass(frozen=True)
class DomainEvent:
    name: EventName
    recipients: tuple[UUID, ...]
    booking_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventDispatcher(Protocol):
    async def dispatch(self, events: Sequence[DomainEvent]) -> None: ...


async def publish(dispatcher: EventDispatcher | None, events: Sequence[DomainEvent]) -> None:
    """Hand committed events to the dispatcher, logging any failure."""
    if dispatcher is None or not events:
        return
    try:
        await dispatcher.dispatch(events)
    except Exception:
        logger.exception(
            f"Event dispatch failed for {', '.join(event.name.value for event in events)}"
        )
