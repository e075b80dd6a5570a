"""Date and time helpers for booking schedules."""

from datetime import UTC, date, datetime, time, timedelta


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def compute_schedule_window(
    booking_date: date,
    start_time: time | None,
    end_time: time | None,
    duration_minutes: int | None,
) -> tuple[datetime, datetime]:
    """Derive the UTC start and end instants of a booked slot.

    The end is the explicit end time when it falls after the start, otherwise
    start plus duration, otherwise the end of the booking day.
    """
    start = datetime.combine(booking_date, start_time or time.min, tzinfo=UTC)

    if end_time is not None:
        end = datetime.combine(booking_date, end_time, tzinfo=UTC)
        if end > start:
            return start, end
    if duration_minutes:
        return start, start + timedelta(minutes=duration_minutes)
    return start, datetime.combine(booking_date + timedelta(days=1), time.min, tzinfo=UTC)
