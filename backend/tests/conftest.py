"""
Pytest fixtures for test database, client, gateway and authentication.

Each test gets its own SQLite file. Every transaction starts with
BEGIN IMMEDIATE, so concurrent requests queue on the database write lock
the way they would on row locks in PostgreSQL; that is what makes the
concurrent-purchase tests deterministic.

Each HTTP request gets a fresh session (commit on success, rollback on
error), mirroring get_db. Fixtures write through short-lived sessions so no
test holds the write lock between requests.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, time, timedelta, datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.security import create_access_token, hash_password
from app.infrastructure.gateway import MockGateway, GatewayRefund, GatewayError, get_gateway, sign_payment
from app.models.enums import (
    ApprovalStatus, EventStatus, EventType, TicketPricing, UserRole,
)
from app.models.event import Event
from app.models.user import User
from app.models.venue import Venue

TEST_GATEWAY_SECRET = "test-gateway-secret"


class FakeGateway(MockGateway):
    """MockGateway with switches for the failure paths."""

    def __init__(self):
        super().__init__(TEST_GATEWAY_SECRET)
        self.unreachable = False
        self.refund_status = "processed"
        self.refunds = []

    def sign(self, order_id: str, payment_id: str) -> str:
        return sign_payment(self.secret, order_id, payment_id)

    def callback(self, order_id: str, payment_id: str = "pay_test_1", signature: str = None) -> dict:
        """Body the gateway would POST to /payments/verify after checkout."""
        return {
            "gateway_order_id": order_id,
            "gateway_payment_id": payment_id,
            "gateway_signature": signature or self.sign(order_id, payment_id),
        }

    async def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        if self.unreachable:
            raise GatewayError("gateway timed out")
        return await super().verify(order_id, payment_id, signature)

    async def refund(self, payment_id: str, amount: int) -> GatewayRefund:
        if self.unreachable:
            raise GatewayError("gateway timed out")
        self.refunds.append((payment_id, amount))
        return GatewayRefund(refund_id=f"rfnd_test_{len(self.refunds)}", status=self.refund_status)


def future_date(days: int = 30) -> date:
    return datetime.now(timezone.utc).date() + timedelta(days=days)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @sa_event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @sa_event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a per-request session and the fake gateway."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(session_factory, username: str, role: UserRole = UserRole.USER, password: str = None) -> User:
    async with session_factory() as session:
        user = User(
            email=f"{username}@example.com",
            username=username,
            hashed_password=hash_password(password) if password else "not-a-real-hash",
            role=role.value,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def test_user(session_factory) -> User:
    """A regular user: requester, buyer, organizer."""
    return await create_user(session_factory, "testuser", password="testpassword123")


@pytest_asyncio.fixture
async def owner(session_factory) -> User:
    return await create_user(session_factory, "venueowner")


@pytest_asyncio.fixture
async def admin(session_factory) -> User:
    return await create_user(session_factory, "platformadmin", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    return auth_header(test_user)


@pytest_asyncio.fixture
async def owner_headers(owner: User) -> dict:
    return auth_header(owner)


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict:
    return auth_header(admin)


@pytest_asyncio.fixture
async def venue(session_factory, owner: User) -> Venue:
    """A venue at 1000/hour holding 200 people."""
    async with session_factory() as session:
        venue = Venue(owner_id=owner.id, name="Riverside Hall", hourly_rate=1000, capacity=200)
        session.add(venue)
        await session.commit()
        await session.refresh(venue)
        return venue


async def create_upcoming_event(
    session_factory,
    organizer: User,
    venue: Venue,
    max_attendees: int = 100,
    ticket_price: int = 0,
    event_type: EventType = EventType.PUBLIC,
    current_attendees: int = 0,
    start_hour: int = 18,
) -> Event:
    """An event that has passed both approvals and is on sale."""
    async with session_factory() as session:
        event = Event(
            organizer_id=organizer.id,
            venue_id=venue.id,
            name="Test Concert",
            event_date=future_date(),
            start_time=time(start_hour, 0),
            end_time=time(start_hour + 3, 0),
            event_type=EventType(event_type).value,
            ticket_type=(TicketPricing.PAID if ticket_price else TicketPricing.FREE).value,
            ticket_price=ticket_price,
            max_attendees=max_attendees,
            current_attendees=current_attendees,
            private_code="ABCD1234" if EventType(event_type) == EventType.PRIVATE else None,
            status=EventStatus.UPCOMING.value,
            venue_approval_status=ApprovalStatus.APPROVED.value,
            admin_approval_status=ApprovalStatus.APPROVED.value,
        )
        session.add(event)
        await session.commit()
        await session.refresh(event)
        return event


@pytest_asyncio.fixture
async def free_event(session_factory, test_user, venue) -> Event:
    return await create_upcoming_event(session_factory, test_user, venue, max_attendees=100)


@pytest_asyncio.fixture
async def paid_event(session_factory, test_user, venue) -> Event:
    """500 per ticket, 50 spots."""
    return await create_upcoming_event(
        session_factory, test_user, venue, max_attendees=50, ticket_price=500, start_hour=10
    )


@pytest.fixture
def make_user(session_factory):
    """Factory: await make_user("name") -> (user, headers)."""
    async def _make(username: str, role: UserRole = UserRole.USER):
        user = await create_user(session_factory, username, role=role)
        return user, auth_header(user)
    return _make


@pytest.fixture
def make_event(session_factory, test_user, venue):
    """Factory for on-sale events organized by test_user at the venue fixture."""
    async def _make(**kwargs):
        return await create_upcoming_event(session_factory, test_user, venue, **kwargs)
    return _make
