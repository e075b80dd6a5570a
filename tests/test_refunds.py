"""Cancellation: void before capture, refund and ledger reversal after."""

import pytest

from tripzeo.core.exceptions import AuthorizationError, IllegalTransition
from tripzeo.domain.booking_state import BookingStatus
from tripzeo.domain.events import EventName


async def test_guest_cancel_before_approval_voids_hold(
    db, users, make_booking, booking_service, gateway, ledger, dispatcher
):
    booking = await make_booking("pending_host_approval")

    booking = await booking_service.refund_booking(db, users["guest"], booking.id, reason="Sick")

    assert booking.status == BookingStatus.CANCELLED_BY_USER.value
    assert booking.cancelled_at is not None
    assert gateway.state_of(str(booking.id)) == "voided"
    assert ("refund", booking.payment_id) not in gateway.calls
    assert await ledger(booking_id=booking.id) == []

    event = dispatcher.events[-1]
    assert event.name == EventName.BOOKING_CANCELLED
    assert set(event.recipients) == {booking.guest_id, booking.host_id}
    assert event.data["reason"] == "Sick"


async def test_host_cancel_after_approval_refunds_and_reverses(
    db, users, make_booking, booking_service, gateway, ledger
):
    booking = await make_booking("confirmed", referral_code="PARTNER10")

    booking = await booking_service.refund_booking(db, users["host"], booking.id)

    assert booking.status == BookingStatus.CANCELLED_BY_HOST.value
    assert gateway.state_of(str(booking.id)) == "refunded"
    assert gateway.checkouts[booking.checkout_token]["refunded_amount"] == 10500

    rows = await ledger(booking_id=booking.id)
    commissions = [r for r in rows if r.type == "commission"]
    refunds = [r for r in rows if r.type == "refund"]
    assert len(commissions) == 2
    assert all(r.status == "reversed" for r in commissions)
    assert len(refunds) == 1
    assert refunds[0].user_id == booking.guest_id
    assert refunds[0].amount == 10500
    assert refunds[0].status == "completed"
    assert refunds[0].details["gateway_refund_id"] == f"refund_{booking.payment_id}"


async def test_admin_cancel_counts_as_host_cancellation(db, users, make_booking, booking_service):
    booking = await make_booking("confirmed")
    booking = await booking_service.refund_booking(db, users["admin"], booking.id)
    assert booking.status == BookingStatus.CANCELLED_BY_HOST.value


async def test_outsider_cannot_cancel(db, users, make_booking, booking_service):
    booking = await make_booking("confirmed", referral_code="PARTNER10")
    with pytest.raises(AuthorizationError):
        await booking_service.refund_booking(db, users["partner"], booking.id)


async def test_cancel_completed_booking_refunds(
    db, users, make_booking, booking_service, after_end, ledger
):
    booking = await make_booking("confirmed")
    booking = await booking_service.complete_booking(db, users["host"], booking.id, now=after_end(booking))

    booking = await booking_service.refund_booking(db, users["guest"], booking.id)

    assert booking.status == BookingStatus.CANCELLED_BY_USER.value
    statuses = sorted((r.type, r.status) for r in await ledger(booking_id=booking.id))
    assert statuses == [("commission", "reversed"), ("refund", "completed")]


async def test_cannot_cancel_unpaid_or_cancelled_booking(db, users, make_booking, booking_service):
    unpaid = await make_booking("pending_payment")
    with pytest.raises(IllegalTransition):
        await booking_service.refund_booking(db, users["guest"], unpaid.id)

    cancelled = await make_booking("confirmed")
    await booking_service.refund_booking(db, users["guest"], cancelled.id)
    with pytest.raises(IllegalTransition):
        await booking_service.refund_booking(db, users["guest"], cancelled.id)


async def test_refund_after_partner_payout_adds_offset(
    db, users, make_booking, booking_service, payout_service, ledger, session_factory
):
    await booking_service.rates.update_setting(db, users["admin"], "partner_payout_threshold", 500)
    booking = await make_booking("confirmed", referral_code="PARTNER10")
    await payout_service.payout_partner(db, users["admin"], users["partner"].id)

    await booking_service.refund_booking(db, users["guest"], booking.id)

    partner_rows = await ledger(booking_id=booking.id, user_id=users["partner"].id)
    by_status = sorted((r.amount, r.status) for r in partner_rows)
    assert by_status == [(-1000, "pending"), (1000, "completed")]

    async with session_factory() as session:
        balance = await booking_service.settlement.get_pending_balance(session, users["partner"].id)
    assert balance == -1000
