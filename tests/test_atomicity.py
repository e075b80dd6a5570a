"""Transitions either fully happen or leave no trace."""

import asyncio

import pytest

from tripzeo.core.exceptions import (
    ConcurrentModification,
    GatewayPermanentError,
    GatewayRetryableError,
)
from tripzeo.domain.booking_state import BookingStatus
from tripzeo.domain.events import DomainEvent, EventName, publish
from tripzeo.gateways.manual import ManualGateway
from tripzeo.models.user import User
from tripzeo.services.booking_service import BookingService
from tripzeo.services.gateway_service import GatewayService
from tripzeo.services.settlement_service import SettlementService


class SlowGateway(ManualGateway):
    async def capture_held_authorization(self, transaction_id: str):
        await asyncio.sleep(1)
        return await super().capture_held_authorization(transaction_id)


class BrokenDispatcher:
    async def dispatch(self, events):
        raise RuntimeError("mail server down")


class FlakySettlement(SettlementService):
    """Fails the first host commission write, then behaves."""

    def __init__(self, failures: int = 1) -> None:
        self.failures = failures

    async def record_host_commission(self, db, booking, reconciled=False):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("ledger write failed")
        return await super().record_host_commission(db, booking, reconciled=reconciled)


async def test_capture_failure_rolls_back_approval(
    db, users, make_booking, booking_service, gateway, ledger, reload_booking
):
    booking = await make_booking("pending_host_approval")
    booking_id, host_id = booking.id, users["host"].id
    gateway.fail_next("capture", GatewayRetryableError("connection reset"))

    with pytest.raises(GatewayRetryableError):
        await booking_service.approve_booking(db, users["host"], booking_id)

    stored = await reload_booking(booking_id)
    assert stored.status == BookingStatus.PENDING_HOST_APPROVAL.value
    assert stored.commission_amount is None
    assert await ledger(booking_id=booking_id) == []

    # The same approval succeeds once the gateway recovers
    host = await db.get(User, host_id)
    approved = await booking_service.approve_booking(db, host, booking_id)
    assert approved.status == BookingStatus.CONFIRMED.value
    assert len(await ledger(booking_id=booking_id)) == 1


async def test_declined_capture_rolls_back(db, users, make_booking, booking_service, gateway, reload_booking):
    booking = await make_booking("pending_host_approval")
    booking_id = booking.id
    # Voiding behind the platform's back makes the capture fail permanently
    gateway.checkouts[booking.checkout_token]["state"] = "voided"

    with pytest.raises(GatewayPermanentError):
        await booking_service.approve_booking(db, users["host"], booking_id)

    stored = await reload_booking(booking_id)
    assert stored.status == BookingStatus.PENDING_HOST_APPROVAL.value


async def test_gateway_timeout_is_retryable_and_rolls_back(
    db, users, experience, booking_date, dispatcher, ledger, reload_booking
):
    gateway = SlowGateway()
    service = BookingService(gateway=GatewayService(gateway, timeout=0.05), dispatcher=dispatcher)

    booking = await service.create_booking(
        db, users["guest"], experience_id=experience.id, booking_date=booking_date
    )
    handle = await service.initialize_checkout(db, users["guest"], booking.id)
    gateway.complete_checkout(handle.token)
    await service.confirm_payment(db, handle.token)
    booking_id = booking.id

    with pytest.raises(GatewayRetryableError):
        await service.approve_booking(db, users["host"], booking_id)

    stored = await reload_booking(booking_id)
    assert stored.status == BookingStatus.PENDING_HOST_APPROVAL.value
    assert await ledger(booking_id=booking_id) == []


async def test_refund_failure_keeps_booking_confirmed(
    db, users, make_booking, booking_service, gateway, ledger, reload_booking
):
    booking = await make_booking("confirmed")
    booking_id = booking.id
    gateway.fail_next("refund", GatewayRetryableError())

    with pytest.raises(GatewayRetryableError):
        await booking_service.refund_booking(db, users["guest"], booking_id)

    stored = await reload_booking(booking_id)
    assert stored.status == BookingStatus.CONFIRMED.value
    rows = await ledger(booking_id=booking_id)
    assert [(r.type, r.status) for r in rows] == [("commission", "pending")]


async def test_stale_writer_gets_concurrent_modification(
    session_factory, users, make_booking, booking_service, ledger
):
    booking = await make_booking("pending_host_approval")

    async with session_factory() as first, session_factory() as second:
        # Both sessions read the booking while it awaits approval
        await first.get(type(booking), booking.id)
        await second.get(type(booking), booking.id)

        await booking_service.approve_booking(first, users["host"], booking.id)

        with pytest.raises(ConcurrentModification):
            await booking_service.approve_booking(second, users["host"], booking.id)

    assert len(await ledger(booking_id=booking.id)) == 1


async def test_dispatcher_failure_does_not_undo_transition(
    db, users, make_booking, gateway_service, reload_booking
):
    booking = await make_booking("pending_host_approval")
    service = BookingService(gateway=gateway_service, dispatcher=BrokenDispatcher())

    approved = await service.approve_booking(db, users["host"], booking.id)

    assert approved.status == BookingStatus.CONFIRMED.value
    stored = await reload_booking(booking.id)
    assert stored.status == BookingStatus.CONFIRMED.value


async def test_publish_swallows_and_logs_dispatch_errors(caplog):
    event = DomainEvent(name=EventName.BOOKING_CONFIRMED, recipients=())

    await publish(BrokenDispatcher(), [event])

    assert "Event dispatch failed for booking.confirmed" in caplog.text


async def test_publish_without_dispatcher_is_a_no_op():
    await publish(None, [DomainEvent(name=EventName.BOOKING_CONFIRMED, recipients=())])


# ==================== CAPTURE WITHOUT LEDGER ====================


async def test_capture_is_kept_when_ledger_write_fails(
    db, users, make_booking, gateway_service, gateway, dispatcher, ledger, reload_booking
):
    booking = await make_booking("pending_host_approval", referral_code="PARTNER10")
    booking_id = booking.id
    service = BookingService(
        gateway=gateway_service, dispatcher=dispatcher, settlement=FlakySettlement()
    )

    with pytest.raises(RuntimeError):
        await service.approve_booking(db, users["host"], booking_id)

    stored = await reload_booking(booking_id)
    assert stored.status == BookingStatus.PENDING_HOST_APPROVAL.value
    assert stored.captured_at is not None
    assert gateway.state_of(str(booking_id)) == "captured"
    assert await ledger(booking_id=booking_id) == []

    assert await service.reconcile_missing_commissions(db) == 2

    stored = await reload_booking(booking_id)
    assert stored.status == BookingStatus.CONFIRMED.value
    assert stored.confirmed_at is not None
    assert (stored.commission_amount, stored.host_earnings) == (1500, 8500)
    rows = await ledger(booking_id=booking_id)
    assert sorted(r.amount for r in rows) == [1000, 8500]
    assert all(r.details["reconciled"] for r in rows)
    assert await service.reconcile_missing_commissions(db) == 0


async def test_cancelling_unrecorded_capture_refunds(
    db, users, make_booking, gateway_service, gateway, dispatcher, ledger, reload_booking
):
    booking = await make_booking("pending_host_approval")
    booking_id, guest_id = booking.id, users["guest"].id
    service = BookingService(
        gateway=gateway_service, dispatcher=dispatcher, settlement=FlakySettlement()
    )
    with pytest.raises(RuntimeError):
        await service.approve_booking(db, users["host"], booking_id)

    guest = await db.get(User, guest_id)
    cancelled = await service.refund_booking(db, guest, booking_id)

    assert cancelled.status == BookingStatus.CANCELLED_BY_USER.value
    assert gateway.state_of(str(booking_id)) == "refunded"
    rows = await ledger(booking_id=booking_id)
    assert [(r.type, r.amount, r.status) for r in rows] == [("refund", 10500, "completed")]
    assert await service.reconcile_missing_commissions(db) == 0


async def test_rejecting_unrecorded_capture_refunds(
    db, users, make_booking, gateway_service, gateway, dispatcher, ledger
):
    booking = await make_booking("pending_host_approval")
    booking_id, host_id = booking.id, users["host"].id
    service = BookingService(
        gateway=gateway_service, dispatcher=dispatcher, settlement=FlakySettlement()
    )
    with pytest.raises(RuntimeError):
        await service.approve_booking(db, users["host"], booking_id)

    host = await db.get(User, host_id)
    rejected = await service.reject_booking(db, host, booking_id)

    assert rejected.status == BookingStatus.REJECTED.value
    assert gateway.state_of(str(booking_id)) == "refunded"
    assert [r.type for r in await ledger(booking_id=booking_id)] == ["refund"]
