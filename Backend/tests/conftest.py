"""
Pytest configuration and fixtures.

Engine tests run on the in-memory store with a fixed clock so dates never drift
into the past. SQL store tests get a throwaway SQLite file per test; nothing
here ever touches a configured production database.
"""
import os
from datetime import date, datetime, timezone

import pytest

# The app module builds its engine at import time; keep it off real databases.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./salon_booking_test.db")

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salon_booking.booking import (
    BookingTransactionCoordinator,
    InMemoryBookingStore,
    SqlBookingStore,
)
from salon_booking.booking.localtime import to_utc_from_local
from salon_booking.booking.validation import BookingRequest
from salon_booking.core.db import Base, build_commit_engine, build_engine, commit_sessionmaker

TEST_DATABASE_URL = os.environ["DATABASE_URL"]
if "sqlite" not in TEST_DATABASE_URL and "_test" not in TEST_DATABASE_URL:
    raise RuntimeError(
        f"DANGER: Tests are configured to use a non-test database!\n"
        f"DATABASE_URL: {TEST_DATABASE_URL}\n"
        f"Point DATABASE_URL at SQLite or a database whose name ends in _test."
    )

SALON_TZ = "Europe/Warsaw"
# Tuesday 2030-01-01 09:00 in Warsaw (UTC+1 in winter).
NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)
MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 6)


def at(day: date, hhmm: str) -> datetime:
    """UTC instant of a salon-local wall clock time."""
    hours, minutes = map(int, hhmm.split(":"))
    return to_utc_from_local(day, hours * 60 + minutes, SALON_TZ)


def fixed_clock():
    return NOW


def booking_request(
    service_ids,
    start_time: str = "10:00",
    day: date = MONDAY,
    *,
    name: str = "Anna Kowalska",
    phone: str = "+48 600 100 200",
    email=None,
    staff_id=None,
    locale=None,
    notes=None,
) -> BookingRequest:
    return BookingRequest.model_validate(
        {
            "client": {"name": name, "phone": phone, "email": email, "preferredLocale": locale},
            "appointment": {
                "date": day.isoformat(),
                "startTime": start_time,
                "serviceIds": list(service_ids),
                "staffId": staff_id,
                "notes": notes,
            },
        }
    )


class RecordingDispatcher:
    """Collects dispatched events; optionally fails every dispatch."""

    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def dispatch(self, event):
        self.events.append(event)
        if self.fail:
            raise ConnectionError("notification channel down")


# ────────────────────────────────────────────────────────────────
# In-memory engine fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def salon(store):
    return store.add_salon("Studio Bella", timezone=SALON_TZ, currency="PLN", slug="studio-bella")


@pytest.fixture
def haircut(store, salon):
    return store.add_service(salon.id, "Haircut", 45, 12000, code="haircut")


@pytest.fixture
def blow_dry(store, salon):
    return store.add_service(salon.id, "Blow Dry", 15, 5000, code="blow-dry")


@pytest.fixture
def anna(store, salon):
    return store.add_staff(salon.id, "Anna", spoken_locales=["pl", "en"])


@pytest.fixture
def notifier():
    return RecordingDispatcher()


@pytest.fixture
def coordinator(store, notifier):
    return BookingTransactionCoordinator(store, notifier, clock=fixed_clock)


# ────────────────────────────────────────────────────────────────
# SQL fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
def sql_url(tmp_path):
    """
    Fresh SQLite database per test.

    A file (not :memory:) so that every pooled connection, and both engines,
    see the same data.
    """
    return f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}"


@pytest.fixture
async def sql_engine(sql_url):
    engine = build_engine(sql_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_sessions(sql_engine):
    return async_sessionmaker(sql_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def sql_commit_engine(sql_url, sql_engine):
    """BEGIN IMMEDIATE engine for booking commits."""
    engine = build_commit_engine(sql_url, sql_engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_store(sql_commit_engine, sql_sessions):
    return SqlBookingStore(sql_sessions, commit_sessionmaker(sql_commit_engine, "SERIALIZABLE"))


# ────────────────────────────────────────────────────────────────
# HTTP fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
async def client(coordinator):
    """
    FastAPI AsyncClient with the coordinator dependency pointed at the
    in-memory store.
    """
    # Import here so DATABASE_URL is settled before the app module loads
    from salon_booking.main import app
    from salon_booking.public_booking import get_coordinator

    app.dependency_overrides[get_coordinator] = lambda: coordinator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
