"""Scheduled completion of bookings whose slot has ended."""

import asyncio
from datetime import timedelta

from tripzeo.domain.booking_state import BookingStatus
from tripzeo.domain.events import EventName
from tripzeo.services.completion_service import CompletionService


async def test_sweep_completes_elapsed_bookings(
    make_booking, completion_service, after_end, reload_booking, dispatcher
):
    first = await make_booking("confirmed")
    second = await make_booking("confirmed")
    now = after_end(first)

    result = await completion_service.sweep_elapsed_bookings(now=now)

    assert (result.processed, result.skipped, result.failed, result.total) == (2, 0, 0, 2)
    assert result.message == "Bookings processed"
    for booking in (first, second):
        stored = await reload_booking(booking.id)
        assert stored.status == BookingStatus.COMPLETED.value
        assert stored.payout_eligible_at is not None
    assert dispatcher.names().count(EventName.REVIEW_REQUESTED.value) == 2


async def test_sweep_is_idempotent(make_booking, completion_service, after_end, dispatcher):
    booking = await make_booking("confirmed")
    now = after_end(booking)

    await completion_service.sweep_elapsed_bookings(now=now)
    again = await completion_service.sweep_elapsed_bookings(now=now + timedelta(hours=1))

    assert again.total == 0
    assert again.message == "No bookings to process"
    assert dispatcher.names().count(EventName.REVIEW_REQUESTED.value) == 1


async def test_sweep_ignores_unfinished_and_unconfirmed_bookings(
    make_booking, completion_service, after_end, reload_booking
):
    awaiting = await make_booking("pending_host_approval")
    confirmed = await make_booking("confirmed")
    before_end = after_end(confirmed) - timedelta(minutes=2)

    result = await completion_service.sweep_elapsed_bookings(now=before_end)

    assert result.total == 0
    assert (await reload_booking(confirmed.id)).status == BookingStatus.CONFIRMED.value
    assert (await reload_booking(awaiting.id)).status == BookingStatus.PENDING_HOST_APPROVAL.value


async def test_booking_completed_elsewhere_is_skipped(
    db, users, make_booking, booking_service, completion_service, after_end, monkeypatch
):
    booking = await make_booking("confirmed")
    now = after_end(booking)
    booking_ids = await completion_service.find_elapsed(now)

    # Another worker completes the booking between the query and the update
    await booking_service.complete_booking(db, users["host"], booking.id, now=now)

    async def stale_find(_now):
        return booking_ids

    monkeypatch.setattr(completion_service, "find_elapsed", stale_find)
    result = await completion_service.sweep_elapsed_bookings(now=now)

    assert (result.processed, result.skipped, result.failed) == (0, 1, 0)


async def test_sweep_runs_bookings_in_parallel_up_to_the_limit(
    make_booking, session_factory, booking_service, after_end, reload_booking, monkeypatch
):
    bookings = [await make_booking("confirmed") for _ in range(3)]
    now = after_end(bookings[0])
    in_flight = 0
    peak = 0
    complete_elapsed = booking_service.complete_elapsed

    async def tracking_complete(db, booking, when=None):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return await complete_elapsed(db, booking, when)

    monkeypatch.setattr(booking_service, "complete_elapsed", tracking_complete)
    service = CompletionService(session_factory, bookings=booking_service, concurrency=2)

    result = await service.sweep_elapsed_bookings(now=now)

    assert (result.processed, result.skipped, result.failed) == (3, 0, 0)
    assert peak == 2
    for booking in bookings:
        assert (await reload_booking(booking.id)).status == BookingStatus.COMPLETED.value
