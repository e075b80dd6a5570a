"""Partner and host payouts."""

import asyncio

import pytest
import pytest_asyncio

from tripzeo.core.exceptions import (
    AuthorizationError,
    BelowThreshold,
    ConcurrentModification,
    GatewayRetryableError,
    IllegalTransition,
    NotFoundError,
)
from tripzeo.domain.booking_state import BookingStatus
from tripzeo.domain.events import EventName
from tripzeo.services.payout_service import _partner_locks


@pytest_asyncio.fixture
async def low_threshold(db, users, booking_service):
    await booking_service.rates.update_setting(db, users["admin"], "partner_payout_threshold", 2500)


# ==================== PARTNERS ====================


async def test_partner_below_threshold(db, users, make_booking, payout_service, low_threshold, ledger):
    await make_booking("confirmed", referral_code="PARTNER10")
    await make_booking("confirmed", referral_code="PARTNER10")

    with pytest.raises(BelowThreshold) as exc_info:
        await payout_service.payout_partner(db, users["admin"], users["partner"].id)

    assert exc_info.value.balance == 2000
    assert exc_info.value.threshold == 2500
    rows = await ledger(user_id=users["partner"].id)
    assert all(r.status == "pending" for r in rows)


async def test_partner_payout_batches_all_pending_rows(
    db, users, make_booking, payout_service, gateway, low_threshold, ledger, dispatcher
):
    for _ in range(3):
        await make_booking("confirmed", referral_code="PARTNER10")

    payout = await payout_service.payout_partner(db, users["admin"], users["partner"].id)

    assert payout.type == "payout"
    assert payout.amount == 3000
    assert payout.status == "completed"
    assert payout.details["payout_reference"].startswith("PRT-")
    assert len(payout.details["transaction_ids"]) == 3
    assert payout.details["payout_reference"] in gateway.transfers

    commissions = await ledger(user_id=users["partner"].id, type="commission")
    assert len(commissions) == 3
    assert all(r.status == "completed" for r in commissions)
    assert dispatcher.events[-1].name == EventName.PARTNER_PAID_OUT

    # Nothing left to pay out
    with pytest.raises(BelowThreshold):
        await payout_service.payout_partner(db, users["admin"], users["partner"].id)


async def test_concurrent_runs_for_one_partner_pay_once(
    users, make_booking, payout_service, gateway, low_threshold, ledger, session_factory
):
    for _ in range(3):
        await make_booking("confirmed", referral_code="PARTNER10")
    admin, partner_id = users["admin"], users["partner"].id

    async def run():
        async with session_factory() as session:
            return await payout_service.payout_partner(session, admin, partner_id)

    results = await asyncio.gather(run(), run(), return_exceptions=True)

    payouts = [r for r in results if not isinstance(r, Exception)]
    errors = [r for r in results if isinstance(r, Exception)]
    assert [p.amount for p in payouts] == [3000]
    assert len(errors) == 1
    assert isinstance(errors[0], (BelowThreshold, ConcurrentModification))
    assert len(await ledger(user_id=partner_id, type="payout")) == 1
    assert len(gateway.transfers) == 1
    assert partner_id not in _partner_locks


async def test_partner_payout_transfer_failure_leaves_rows_pending(
    db, users, make_booking, payout_service, gateway, low_threshold, ledger
):
    for _ in range(3):
        await make_booking("confirmed", referral_code="PARTNER10")
    partner_id = users["partner"].id
    gateway.fail_next("transfer", GatewayRetryableError())

    with pytest.raises(GatewayRetryableError):
        await payout_service.payout_partner(db, users["admin"], partner_id)

    rows = await ledger(user_id=partner_id)
    assert len(rows) == 3
    assert all(r.status == "pending" and r.type == "commission" for r in rows)


async def test_partner_payout_requires_admin(db, users, payout_service):
    with pytest.raises(AuthorizationError):
        await payout_service.payout_partner(db, users["partner"], users["partner"].id)


async def test_payout_unknown_partner(db, users, payout_service):
    with pytest.raises(NotFoundError):
        await payout_service.payout_partner(db, users["admin"], users["host"].id)


async def test_list_partner_balances(db, users, make_booking, payout_service, low_threshold):
    await make_booking("confirmed", referral_code="PARTNER10")

    balances = await payout_service.list_partner_balances(db)

    assert len(balances) == 1
    entry = balances[0]
    assert entry["partner_id"] == users["partner"].id
    assert entry["transaction_count"] == 1
    assert entry["total_amount"] == 1000
    assert entry["eligible"] is False
    assert entry["has_complete_bank_info"] is True


async def test_partner_summary(db, users, make_booking, payout_service, booking_service, low_threshold):
    for _ in range(3):
        await make_booking("confirmed", referral_code="PARTNER10")
    await payout_service.payout_partner(db, users["admin"], users["partner"].id)
    pending = await make_booking("confirmed", referral_code="PARTNER10")
    await booking_service.refund_booking(db, users["guest"], pending.id)

    summary = await payout_service.get_partner_summary(db, users["partner"])

    assert summary["referral_code"] == "PARTNER10"
    assert summary["total_earnings"] == 3000
    assert summary["paid_out"] == 3000
    assert summary["pending_balance"] == 0
    assert summary["conversion_count"] == 3
    assert summary["payout_threshold"] == 2500
    assert summary["eligible_for_payout"] is False

    with pytest.raises(AuthorizationError):
        await payout_service.get_partner_summary(db, users["guest"], users["partner"].id)


# ==================== HOSTS ====================


async def test_host_payout_after_completion(
    db, users, make_booking, booking_service, payout_service, gateway, after_end, ledger, dispatcher
):
    booking = await make_booking("confirmed")
    await booking_service.complete_booking(db, users["host"], booking.id, now=after_end(booking))

    booking = await payout_service.payout_host(db, users["admin"], booking.id)

    assert booking.status == BookingStatus.PAID_OUT.value
    assert booking.paid_out_at is not None
    assert booking.payout_reference.startswith("PAY-")
    assert booking.payout_reference in gateway.transfers

    rows = await ledger(booking_id=booking.id)
    assert sorted((r.type, r.amount, r.status) for r in rows) == [
        ("commission", 8500, "completed"),
        ("payout", 8500, "completed"),
    ]
    assert dispatcher.events[-1].name == EventName.HOST_PAID_OUT

    with pytest.raises(IllegalTransition):
        await payout_service.payout_host(db, users["admin"], booking.id)


async def test_host_payout_with_manual_reference_skips_transfer(
    db, users, make_booking, booking_service, payout_service, gateway, after_end
):
    booking = await make_booking("confirmed")
    await booking_service.complete_booking(db, users["host"], booking.id, now=after_end(booking))

    booking = await payout_service.payout_host(db, users["admin"], booking.id, payout_reference="WIRE-001")

    assert booking.payout_reference == "WIRE-001"
    assert not any(operation == "transfer" for operation, _ in gateway.calls)


async def test_host_payout_requires_completion(db, users, make_booking, payout_service):
    booking = await make_booking("confirmed")
    with pytest.raises(IllegalTransition):
        await payout_service.payout_host(db, users["admin"], booking.id)


async def test_host_payout_requires_admin(db, users, make_booking, payout_service):
    booking = await make_booking("confirmed")
    with pytest.raises(AuthorizationError):
        await payout_service.payout_host(db, users["host"], booking.id)


# ==================== RECEIPTS ====================


async def test_receipt_for_own_transaction(db, users, make_booking, payout_service, ledger, experience):
    booking = await make_booking("confirmed")
    row = (await ledger(booking_id=booking.id))[0]

    receipt = await payout_service.get_receipt(db, users["host"], row.id)

    assert receipt["receipt_number"] == f"RCP-{row.id.hex[:10].upper()}"
    assert receipt["amount"] == 8500
    assert receipt["formatted_amount"] == "USD 85.00"
    assert receipt["booking_number"] == booking.booking_number
    assert receipt["experience_title"] == experience.title
    assert receipt["issued_to"] == "Hal Host"

    with pytest.raises(AuthorizationError):
        await payout_service.get_receipt(db, users["guest"], row.id)
