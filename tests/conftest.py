"""Shared fixtures: in-memory aiosqlite per test, a pinned clock, seed helpers.

"Now" is Monday 2026-10-19 10:00 UTC unless a test moves the clock.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "test")

from datetime import date, datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import booking.models  # noqa: F401 - register tables
from booking.api.deps import get_clock, get_rules, get_session
from booking.core.clock import FixedClock
from booking.core.config import BusinessRules
from booking.main import app
from booking.models import (
    Actor,
    Appointment,
    AppointmentStatus,
    AvailabilityWindow,
    BlockedSlot,
    Service,
)

NOW = datetime(2026, 10, 19, 10, 0)  # Monday
NEXT_MONDAY = date(2026, 10, 26)
MONDAY = 1
TUESDAY = 2
WEDNESDAY = 3


def at(d: date, hour: int, minute: int = 0) -> datetime:
    return datetime(d.year, d.month, d.day, hour, minute)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def rules() -> BusinessRules:
    return BusinessRules()


@pytest.fixture
def admin() -> Actor:
    return Actor(id=1, name="Dr. Admin", is_admin=True)


@pytest.fixture
def client_actor() -> Actor:
    return Actor(id=42, name="Client 42")


@pytest.fixture
def make_service(session):
    async def _make(duration: int = 60, title: str = "Individual Session", price: str = "120.00", is_active: bool = True):
        service = Service(title=title, duration=duration, price=Decimal(price), is_active=is_active)
        session.add(service)
        await session.commit()
        return service

    return _make


@pytest.fixture
def make_window(session):
    async def _make(day: int, start: str, end: str, is_active: bool = True):
        window = AvailabilityWindow(day_of_week=day, start_time=start, end_time=end, is_active=is_active)
        session.add(window)
        await session.commit()
        return window

    return _make


@pytest.fixture
def make_blocked(session):
    async def _make(start: datetime, duration: int, reason: str | None = None):
        blocked = BlockedSlot(date_time=start, duration=duration, reason=reason)
        session.add(blocked)
        await session.commit()
        return blocked

    return _make


@pytest.fixture
def make_appointment(session):
    """Insert directly, bypassing availability checks."""

    async def _make(
        service: Service,
        start: datetime,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        user_id: int = 7,
    ):
        appointment = Appointment(
            user_id=user_id, service_id=service.id, date_time=start, status=status
        )
        session.add(appointment)
        await session.commit()
        return appointment

    return _make


@pytest_asyncio.fixture
async def client(session_maker, clock, rules):
    async def override_get_session():
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_rules] = lambda: rules
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
