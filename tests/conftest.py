"""
Shared test fixtures.

Each test gets its own SQLite database file (via aiosqlite) built from the
production models, so tests run without Docker / PostgreSQL / Redis.
``SELECT ... FOR UPDATE`` compiles to a plain SELECT on SQLite; the seat
guards and uniqueness constraints are still enforced by the database.

Notifications and chat posts are captured in memory and time is a
controllable clock, so lifecycle side effects and deadlines can be
asserted exactly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from src.infrastructure.database import Base
from src.infrastructure.models import UserModel
from src.infrastructure.notifier import LifecycleNotifier
from src.services.booking_service import BookingService
from src.services.ride_service import RideService

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSink:
    """In-memory notification + chat sink."""

    def __init__(self):
        self.notices: list[dict] = []
        self.messages: list[dict] = []
        self.fail = False

    async def notify(self, recipient_id, type, title, message,
                     ride_id=None, booking_id=None) -> None:
        if self.fail:
            raise ConnectionError("notification backend down")
        self.notices.append(
            {
                "recipient_id": recipient_id,
                "type": type,
                "title": title,
                "message": message,
                "ride_id": ride_id,
                "booking_id": booking_id,
            }
        )

    async def post_message(self, ride_id, sender_id, content) -> None:
        if self.fail:
            raise ConnectionError("chat backend down")
        self.messages.append(
            {"ride_id": ride_id, "sender_id": sender_id, "content": content}
        )

    def types_for(self, recipient_id: int) -> list:
        return [n["type"] for n in self.notices if n["recipient_id"] == recipient_id]


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh schema in a throw-away SQLite file."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Collaborators ─────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifier(sink) -> LifecycleNotifier:
    return LifecycleNotifier(sink, sink)


# ── Seed data ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def users(session_factory) -> SimpleNamespace:
    """A driver, three verified passengers and one unverified passenger."""
    async with session_factory() as session:
        rows = {
            "driver": UserModel(name="Dana Driver", email="dana@uni.edu", university="State U"),
            "alice": UserModel(name="Alice", email="alice@uni.edu", university="State U"),
            "bob": UserModel(name="Bob", email="bob@uni.edu", university="State U"),
            "cara": UserModel(name="Cara", email="cara@uni.edu", university="Tech"),
            "unverified": UserModel(name="Uma", email="uma@example.com", university=None),
        }
        session.add_all(rows.values())
        await session.commit()
        return SimpleNamespace(**{key: user.id for key, user in rows.items()})


@pytest.fixture
def ride_service(db_session, notifier, clock) -> RideService:
    return RideService(db_session, notifier, clock=clock)


@pytest.fixture
def booking_service(db_session, notifier, clock) -> BookingService:
    return BookingService(db_session, notifier, clock=clock)


@pytest.fixture
def make_ride(ride_service, users, clock):
    """Factory: publish a ride for the seeded driver."""

    async def _make(seats_total: int = 2, price: float = 20.0, departs_in=timedelta(days=4)):
        return await ride_service.create_ride(
            users.driver,
            origin="North Campus",
            destination="Airport",
            departure_at=clock() + departs_in,
            price_per_seat=price,
            seats_total=seats_total,
        )

    return _make


# ── API ───────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_factory, notifier, clock, users, monkeypatch):
    """AsyncClient wired to the per-test database, sink and clock."""
    from src.api import dependencies
    from src.api.app import create_app
    from src.api.middleware import limiter

    monkeypatch.setattr(limiter, "enabled", False)

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    with (
        patch("src.workers.sweeper.start_sweeper_loop", new_callable=AsyncMock),
        patch("src.workers.sweeper.stop_sweeper_loop", new_callable=AsyncMock),
    ):
        app = create_app()
        app.dependency_overrides[dependencies.get_db] = _get_db
        app.dependency_overrides[dependencies.get_notifier] = lambda: notifier
        app.dependency_overrides[dependencies.get_clock] = lambda: clock

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
