"""Booking lifecycle: creation, checkout, host decision and completion."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from tripzeo.core.exceptions import (
    AuthorizationError,
    GatewayPermanentError,
    IllegalTransition,
    NotFoundError,
    ValidationError,
)
from tripzeo.domain.booking_state import BookingStatus
from tripzeo.domain.events import EventName
from tripzeo.models.booking import Booking


# ==================== CREATION ====================


async def test_create_booking_quotes_guest_total(db, users, experience, booking_service, booking_date):
    booking = await booking_service.create_booking(
        db, users["guest"], experience_id=experience.id, booking_date=booking_date, attendees_count=2
    )

    assert booking.status == BookingStatus.PENDING_PAYMENT.value
    assert booking.booking_number.startswith("TRZ-")
    assert booking.base_price == 20000
    assert booking.service_fee == 1000
    assert booking.total_amount == 21000
    assert booking.service_fee_rate == Decimal("5.00")
    assert booking.commission_amount is None
    assert booking.host_earnings is None
    assert booking.host_id == users["host"].id
    assert booking.partner_id is None


async def test_create_booking_resolves_referral_code(db, users, experience, booking_service, booking_date):
    booking = await booking_service.create_booking(
        db, users["guest"], experience_id=experience.id, booking_date=booking_date, referral_code=" partner10 "
    )
    assert booking.partner_id == users["partner"].id


async def test_unknown_referral_code_is_ignored(db, users, experience, booking_service, booking_date):
    booking = await booking_service.create_booking(
        db, users["guest"], experience_id=experience.id, booking_date=booking_date, referral_code="NOPE"
    )
    assert booking.partner_id is None


async def test_partner_cannot_refer_themselves(db, users, experience, booking_service, booking_date):
    booking = await booking_service.create_booking(
        db, users["partner"], experience_id=experience.id, booking_date=booking_date, referral_code="PARTNER10"
    )
    assert booking.partner_id is None


async def test_create_booking_validation(db, users, experience, booking_service, booking_date):
    with pytest.raises(ValidationError):
        await booking_service.create_booking(
            db, users["host"], experience_id=experience.id, booking_date=booking_date
        )
    with pytest.raises(ValidationError):
        await booking_service.create_booking(
            db, users["guest"], experience_id=experience.id, booking_date=booking_date, attendees_count=0
        )
    with pytest.raises(ValidationError):
        await booking_service.create_booking(
            db,
            users["guest"],
            experience_id=experience.id,
            booking_date=datetime.now(UTC).date() - timedelta(days=1),
        )


async def test_create_booking_for_missing_experience(db, users, booking_service, booking_date):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await booking_service.create_booking(
            db, users["guest"], experience_id=uuid4(), booking_date=booking_date
        )


# ==================== CHECKOUT ====================


async def test_successful_checkout_moves_to_host_approval(make_booking, gateway, dispatcher):
    booking = await make_booking("pending_host_approval")

    assert booking.status == BookingStatus.PENDING_HOST_APPROVAL.value
    assert booking.payment_id.startswith("manual_pay_")
    assert booking.payment_transaction_id.startswith("manual_txn_")
    assert gateway.state_of(str(booking.id)) == "authorized"
    assert dispatcher.names() == [EventName.PAYMENT_AUTHORIZED.value]
    assert dispatcher.events[0].recipients == (booking.host_id,)


async def test_callback_replay_is_idempotent(db, make_booking, booking_service, dispatcher):
    booking = await make_booking("pending_host_approval")

    again = await booking_service.confirm_payment(db, booking.checkout_token)

    assert again.id == booking.id
    assert again.status == BookingStatus.PENDING_HOST_APPROVAL.value
    assert dispatcher.names().count(EventName.PAYMENT_AUTHORIZED.value) == 1


async def test_declined_checkout_marks_payment_failed(db, users, make_booking, gateway, booking_service, dispatcher):
    booking = await make_booking("pending_payment")
    handle = await booking_service.initialize_checkout(db, users["guest"], booking.id)
    gateway.complete_checkout(handle.token, success=False, error_message="Insufficient funds")

    booking = await booking_service.confirm_payment(db, handle.token)

    assert booking.status == BookingStatus.PAYMENT_FAILED.value
    assert booking.payment_id is None
    assert dispatcher.names() == [EventName.PAYMENT_FAILED.value]


async def test_unknown_checkout_token_is_rejected(db, booking_service):
    with pytest.raises(GatewayPermanentError):
        await booking_service.confirm_payment(db, "manual_chk_does-not-exist")


async def test_only_guest_can_open_checkout(db, users, make_booking, booking_service):
    booking = await make_booking("pending_payment")
    with pytest.raises(AuthorizationError):
        await booking_service.initialize_checkout(db, users["partner"], booking.id)


async def test_checkout_requires_pending_payment(db, users, make_booking, booking_service):
    booking = await make_booking("pending_host_approval")
    with pytest.raises(IllegalTransition):
        await booking_service.initialize_checkout(db, users["guest"], booking.id)


# ==================== HOST DECISION ====================


async def test_approve_captures_and_records_earnings(make_booking, gateway, ledger, dispatcher):
    booking = await make_booking("confirmed", referral_code="PARTNER10")

    assert booking.status == BookingStatus.CONFIRMED.value
    assert booking.commission_rate == Decimal("15.00")
    assert booking.commission_amount == 1500
    assert booking.host_earnings == 8500
    assert booking.total_amount == 10500
    assert booking.confirmed_at is not None
    assert gateway.state_of(str(booking.id)) == "captured"

    rows = await ledger(booking_id=booking.id)
    assert len(rows) == 2
    host_row = next(r for r in rows if r.user_id == booking.host_id)
    partner_row = next(r for r in rows if r.user_id == booking.partner_id)
    assert (host_row.type, host_row.amount, host_row.status) == ("commission", 8500, "pending")
    assert (partner_row.type, partner_row.amount, partner_row.status) == ("commission", 1000, "pending")
    assert host_row.details["kind"] == "host_earnings"

    assert EventName.BOOKING_CONFIRMED.value in dispatcher.names()


async def test_approve_without_partner_writes_one_row(make_booking, ledger):
    booking = await make_booking("confirmed")
    rows = await ledger(booking_id=booking.id)
    assert [(r.user_id, r.amount) for r in rows] == [(booking.host_id, 8500)]


async def test_double_approve_is_illegal(db, users, make_booking, booking_service, ledger):
    booking = await make_booking("confirmed")

    with pytest.raises(IllegalTransition):
        await booking_service.approve_booking(db, users["host"], booking.id)

    assert len(await ledger(booking_id=booking.id)) == 1


async def test_only_the_host_can_approve(db, users, make_booking, booking_service):
    booking = await make_booking("pending_host_approval")
    with pytest.raises(AuthorizationError):
        await booking_service.approve_booking(db, users["guest"], booking.id)


async def test_admin_can_approve(db, users, make_booking, booking_service):
    booking = await make_booking("pending_host_approval")
    booking = await booking_service.approve_booking(db, users["admin"], booking.id)
    assert booking.status == BookingStatus.CONFIRMED.value


async def test_reject_voids_hold(db, users, make_booking, booking_service, gateway, ledger, dispatcher):
    booking = await make_booking("pending_host_approval")

    booking = await booking_service.reject_booking(db, users["host"], booking.id)

    assert booking.status == BookingStatus.REJECTED.value
    assert booking.cancelled_at is not None
    assert gateway.state_of(str(booking.id)) == "voided"
    assert await ledger(booking_id=booking.id) == []
    assert EventName.BOOKING_REJECTED.value in dispatcher.names()


async def test_reject_after_approval_is_illegal(db, users, make_booking, booking_service):
    booking = await make_booking("confirmed")
    with pytest.raises(IllegalTransition):
        await booking_service.reject_booking(db, users["host"], booking.id)


async def test_commission_uses_rates_in_force_at_approval(
    db, users, make_booking, booking_service, gateway, ledger
):
    booking = await make_booking("pending_host_approval")

    await booking_service.rates.update_setting(db, users["admin"], "commission_percent", "20")
    await booking_service.rates.update_setting(db, users["admin"], "service_fee_percent", "10")

    booking = await booking_service.approve_booking(db, users["host"], booking.id)

    # Fee (and so the guest total) keeps the rate charged at creation
    assert booking.service_fee == 500
    assert booking.total_amount == 10500
    assert booking.commission_amount == 2000
    assert booking.host_earnings == 8000
    assert booking.rates_version == 2
    rows = await ledger(booking_id=booking.id)
    assert rows[0].amount == 8000


# ==================== QUERIES ====================


async def test_bookings_are_visible_to_parties_only(db, users, make_booking, booking_service):
    booking = await make_booking("pending_payment", referral_code="PARTNER10")

    for role in ("guest", "host", "partner", "admin"):
        assert (await booking_service.get_booking_for(db, users[role], booking.id)).id == booking.id
        assert [b.id for b in await booking_service.list_bookings(db, users[role])] == [booking.id]

    from tripzeo.models.user import User

    stranger = User(email="stranger@example.com", role="guest")
    db.add(stranger)
    await db.commit()
    with pytest.raises(AuthorizationError):
        await booking_service.get_booking_for(db, stranger, booking.id)
    assert await booking_service.list_bookings(db, stranger) == []


async def test_list_bookings_filters_by_status(db, users, make_booking, booking_service):
    await make_booking("pending_payment")
    confirmed = await make_booking("confirmed")

    result = await booking_service.list_bookings(db, users["guest"], status=BookingStatus.CONFIRMED)
    assert [b.id for b in result] == [confirmed.id]


# ==================== COMPLETION ====================


async def test_complete_elapsed_booking(db, users, make_booking, booking_service, after_end, dispatcher):
    booking = await make_booking("confirmed")
    now = after_end(booking)

    booking = await booking_service.complete_booking(db, users["host"], booking.id, now=now)

    assert booking.status == BookingStatus.COMPLETED.value
    assert booking.completed_at is not None
    assert booking.payout_eligible_at is not None
    assert dispatcher.names()[-1] == EventName.REVIEW_REQUESTED.value


async def test_cannot_complete_before_scheduled_end(db, users, make_booking, booking_service):
    booking = await make_booking("confirmed")
    with pytest.raises(IllegalTransition):
        await booking_service.complete_booking(db, users["host"], booking.id)


async def test_guest_cannot_complete(db, users, make_booking, booking_service, after_end):
    booking = await make_booking("confirmed")
    with pytest.raises(AuthorizationError):
        await booking_service.complete_booking(db, users["guest"], booking.id, now=after_end(booking))


# ==================== RECONCILIATION ====================


async def test_reconcile_writes_missing_commission_rows(
    db, users, make_booking, booking_service, ledger
):
    booking = await make_booking("pending_host_approval", referral_code="PARTNER10")
    # A capture whose ledger write never happened
    await db.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(status=BookingStatus.CONFIRMED.value, confirmed_at=datetime.now(UTC))
    )
    await db.commit()

    created = await booking_service.reconcile_missing_commissions(db)

    assert created == 2
    rows = await ledger(booking_id=booking.id)
    assert sorted(r.amount for r in rows) == [1000, 8500]
    assert all(r.details["reconciled"] for r in rows)

    assert await booking_service.reconcile_missing_commissions(db) == 0
