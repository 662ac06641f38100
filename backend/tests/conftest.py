"""
Pytest fixtures for test database, client, collaborators and authentication.

Every test gets its own file-backed SQLite database (aiosqlite) built from
the model metadata. File-backed rather than :memory: so that concurrent
sessions in the race tests really are separate connections.

Fixture data is written through short-lived sessions of its own. A session
left inside a transaction holds the SQLite write lock (BEGIN IMMEDIATE) and
would stall every other connection in the test.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./venue_booking_test.db")
os.environ.setdefault("PAYMENT_PROVIDER", "mock")

import json
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.main import app
from venue_booking.core.logging import setup_logging
from venue_booking.core.security import create_access_token, hash_password
from venue_booking.db.base import Base
from venue_booking.db.session import get_db, make_async_engine, make_session_factory
from venue_booking.models.booking import Booking
from venue_booking.models.event import Event
from venue_booking.models.table import VenueTable
from venue_booking.models.user import User
from venue_booking.schemas.booking import BookingCreate
from venue_booking.services.booking_service import create_booking
from venue_booking.services.hold_service import HoldManager
from venue_booking.services.interfaces import InMemoryHoldStore
from venue_booking.services.notification_service import LoggingNotifier
from venue_booking.services.payment_provider import MOCKPAY_SIGNATURE_HEADER, MockPay
from venue_booking.services.strategy_factory import get_hold_manager, get_notifier, get_payment_adapter

EVENT_ID = 35
TICKET_ONLY_EVENT_ID = 36
VENUE_ID = 1
OTHER_VENUE_ID = 2
TABLE_5, TABLE_6, TABLE_7 = 5, 6, 7
OTHER_VENUE_TABLE = 90
T0 = datetime(2026, 3, 1, 19, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the hold manager and store read instead of the wall clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier(LoggingNotifier):
    def __init__(self):
        self.sent = []

    async def send_booking_confirmation(self, booking) -> None:
        self.sent.append(("booking_confirmation", booking.id))

    async def send_refund_notification(self, booking, amount) -> None:
        self.sent.append(("refund_notification", booking.id, amount))


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_logging()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = make_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hold_manager(clock) -> HoldManager:
    return HoldManager(InMemoryHoldStore(clock=clock), ttl=timedelta(minutes=5), clock=clock)


@pytest.fixture
def payment_adapter() -> MockPay:
    return MockPay("test-webhook-secret")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(session_factory, hold_manager, payment_adapter, notifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with one fresh session per request, like production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_hold_manager] = lambda: hold_manager
    app.dependency_overrides[get_payment_adapter] = lambda: payment_adapter
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def signed_webhook(payment_adapter) -> Callable[[dict], tuple[bytes, dict]]:
    def _sign(event: dict) -> tuple[bytes, dict]:
        body = json.dumps(event).encode()
        return body, {
            MOCKPAY_SIGNATURE_HEADER: payment_adapter.sign(body),
            "Content-Type": "application/json",
        }
    return _sign


@pytest_asyncio.fixture
async def staff_user(session_factory) -> User:
    async with session_factory() as session:
        user = User(
            email="manager@example.com",
            hashed_password=hash_password("staffpassword123"),
            role="venue_manager",
        )
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
def staff_headers(staff_user: User) -> dict:
    token = create_access_token(data={"sub": str(staff_user.id), "role": staff_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers() -> dict:
    token = create_access_token(data={"sub": "501", "role": "customer"})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def venue(session_factory) -> dict[int, VenueTable]:
    """Tables 5, 6 and 7 in venue 1 (table 7 seats 8), table 90 in venue 2."""
    async with session_factory() as session:
        tables = {
            TABLE_5: VenueTable(id=TABLE_5, venue_id=VENUE_ID, table_number=5, capacity=4),
            TABLE_6: VenueTable(id=TABLE_6, venue_id=VENUE_ID, table_number=6, capacity=4),
            TABLE_7: VenueTable(id=TABLE_7, venue_id=VENUE_ID, table_number=7, capacity=8),
            OTHER_VENUE_TABLE: VenueTable(
                id=OTHER_VENUE_TABLE, venue_id=OTHER_VENUE_ID, table_number=1, capacity=4
            ),
        }
        session.add_all(tables.values())
        await session.commit()
        return tables


@pytest_asyncio.fixture
async def test_event(session_factory, venue) -> Event:
    """Event 35: 40 seats over 3 tables, 30 days out, 3-day ticket cutoff."""
    async with session_factory() as session:
        event = Event(
            id=EVENT_ID,
            title="Candlelight Jazz Dinner",
            description="Three courses and a quartet",
            date=datetime.now(timezone.utc) + timedelta(days=30),
            venue_id=VENUE_ID,
            event_type="full",
            total_seats=40,
            total_tables=3,
            available_seats=40,
            available_tables=3,
            ticket_cutoff_days=3,
        )
        session.add(event)
        await session.commit()
        return event


@pytest_asyncio.fixture
async def ticket_only_event(session_factory, venue) -> Event:
    """Event 36: standing-room tickets only, 3 seats left in total."""
    async with session_factory() as session:
        event = Event(
            id=TICKET_ONLY_EVENT_ID,
            title="Late Set",
            date=datetime.now(timezone.utc) + timedelta(days=30),
            venue_id=VENUE_ID,
            event_type="ticket-only",
            total_seats=3,
            total_tables=0,
            available_seats=3,
            available_tables=0,
            ticket_cutoff_days=3,
        )
        session.add(event)
        await session.commit()
        return event


@pytest_asyncio.fixture
async def closing_event(session_factory, venue) -> Event:
    """Event 37: tomorrow, so the 3-day ticket cutoff has already passed."""
    async with session_factory() as session:
        event = Event(
            id=37,
            title="Tomorrow's Show",
            date=datetime.now(timezone.utc) + timedelta(days=1),
            venue_id=VENUE_ID,
            total_seats=40,
            total_tables=3,
            available_seats=40,
            available_tables=3,
            ticket_cutoff_days=3,
        )
        session.add(event)
        await session.commit()
        return event


@pytest.fixture
def make_booking() -> Callable[..., BookingCreate]:
    """BookingCreate for table 5 of event 35, party of 2, with overrides."""
    def _make(**overrides) -> BookingCreate:
        data = {
            "event_id": EVENT_ID,
            "table_id": TABLE_5,
            "customer_email": "guest@example.com",
            "party_size": 2,
            "guest_names": ["Ada Lovelace", "Charles Babbage"],
            "food_selections": [
                {"guest_index": 0, "item_id": 11, "name": "Burrata", "course": "salad"},
                {"guest_index": 1, "item_id": 21, "name": "Short Rib", "course": "entree"},
            ],
            "wine_selections": [
                {"id": 3, "name": "Barolo", "type": "wine_bottle", "quantity": 1},
            ],
        }
        data.update(overrides)
        return BookingCreate(**data)
    return _make


@pytest.fixture
def booking_payload(make_booking) -> Callable[..., dict]:
    """JSON body for POST /bookings."""
    def _payload(**overrides) -> dict:
        return make_booking(**overrides).model_dump(mode="json", exclude_none=True)
    return _payload


@pytest.fixture
def fetch(session_factory):
    """Read a row through a fresh session, bypassing any identity map."""
    async def _fetch(model, pk):
        async with session_factory() as session:
            obj = await session.get(model, pk)
            await session.commit()
            return obj
    return _fetch


@pytest_asyncio.fixture
async def confirmed_booking(session_factory, test_event, make_booking) -> Booking:
    """Paid booking on table 5 (party of 2, payment pi_confirmed, 12000 cents)."""
    async with session_factory() as session:
        return await create_booking(
            session,
            make_booking(payment_reference="pi_confirmed", amount=12000),
        )
