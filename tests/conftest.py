"""Shared fixtures: a file-backed SQLite database, demo users and wired services."""

from collections.abc import Sequence
from datetime import UTC, datetime, time, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from tripzeo import models  # noqa: F401
from tripzeo.core.immutability import register_immutability_enforcement
from tripzeo.database import Base
from tripzeo.domain.events import DomainEvent
from tripzeo.gateways.manual import ManualGateway
from tripzeo.models.booking import Booking
from tripzeo.models.experience import Experience
from tripzeo.models.financial import FinancialTransaction
from tripzeo.models.user import User
from tripzeo.services.booking_service import BookingService
from tripzeo.services.completion_service import CompletionService
from tripzeo.services.gateway_service import GatewayService
from tripzeo.services.payout_service import PayoutService
from tripzeo.services.settings_service import SettingsService
from tripzeo.services.settlement_service import SettlementService


class RecordingDispatcher:
    """Collects dispatched events instead of notifying anyone."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def dispatch(self, events: Sequence[DomainEvent]) -> None:
        self.events.extend(events)

    def names(self) -> list[str]:
        return [event.name.value for event in self.events]


@pytest.fixture(scope="session", autouse=True)
def immutability():
    register_immutability_enforcement()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tripzeo.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(db):
    guest = User(email="guest@example.com", full_name="Gina Guest", role="guest")
    host = User(
        email="host@example.com",
        full_name="Hal Host",
        role="host",
        bank_name="Example Bank",
        account_holder="Hal Host",
        iban="DE89370400440532013000",
    )
    partner = User(
        email="partner@example.com",
        full_name="Pat Partner",
        role="partner",
        referral_code="PARTNER10",
        bank_name="Example Bank",
        account_holder="Pat Partner",
        routing_number="110000000",
        account_number="000123456789",
    )
    admin = User(email="admin@example.com", full_name="Ada Admin", role="admin")
    db.add_all([guest, host, partner, admin])
    await db.commit()
    return {"guest": guest, "host": host, "partner": partner, "admin": admin}


@pytest_asyncio.fixture
async def experience(db, users):
    experience = Experience(
        host_id=users["host"].id,
        title="Harbour Kayak Tour",
        price=10000,
        currency="USD",
        start_time=time(10, 0),
        end_time=time(13, 0),
        duration_minutes=180,
    )
    db.add(experience)
    await db.commit()
    return experience


@pytest.fixture
def gateway():
    return ManualGateway()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def gateway_service(gateway):
    return GatewayService(gateway, timeout=2.0)


@pytest.fixture
def booking_service(gateway_service, dispatcher):
    return BookingService(
        gateway=gateway_service,
        dispatcher=dispatcher,
        settlement=SettlementService(),
        rates=SettingsService(),
    )


@pytest.fixture
def payout_service(gateway_service, dispatcher):
    return PayoutService(
        gateway=gateway_service,
        dispatcher=dispatcher,
        settlement=SettlementService(),
        rates=SettingsService(),
    )


@pytest.fixture
def completion_service(session_factory, booking_service):
    return CompletionService(session_factory, bookings=booking_service, concurrency=1)


@pytest.fixture
def booking_date():
    return datetime.now(UTC).date() + timedelta(days=7)


@pytest.fixture
def make_booking(db, users, experience, gateway, booking_service, booking_date):
    """Drive a new booking up to ``stage``.

    Stages: ``pending_payment``, ``pending_host_approval``, ``confirmed``.
    """

    async def _make(stage: str = "confirmed", referral_code: str | None = None, attendees: int = 1):
        booking = await booking_service.create_booking(
            db,
            users["guest"],
            experience_id=experience.id,
            booking_date=booking_date,
            attendees_count=attendees,
            referral_code=referral_code,
        )
        if stage == "pending_payment":
            return booking

        handle = await booking_service.initialize_checkout(db, users["guest"], booking.id)
        gateway.complete_checkout(handle.token)
        booking = await booking_service.confirm_payment(db, handle.token)
        if stage == "pending_host_approval":
            return booking

        return await booking_service.approve_booking(db, users["host"], booking.id)

    return _make


@pytest.fixture
def after_end():
    """An instant safely past a booking's scheduled end."""

    def _after(booking: Booking) -> datetime:
        end = booking.scheduled_end_at
        if end.tzinfo is None:
            end = end.replace(tzinfo=UTC)
        return end + timedelta(minutes=1)

    return _after


@pytest.fixture
def ledger(session_factory):
    """Read ledger rows through a fresh session so Core updates are visible."""

    async def _rows(**filters) -> list[FinancialTransaction]:
        async with session_factory() as session:
            query = select(FinancialTransaction).filter_by(**filters)
            result = await session.execute(query.order_by(FinancialTransaction.created_at))
            return list(result.scalars().all())

    return _rows


@pytest.fixture
def reload_booking(session_factory):
    async def _reload(booking_id) -> Booking:
        async with session_factory() as session:
            return await session.get(Booking, booking_id)

    return _reload
