"""
Pytest fixtures for test database, client, gateway double and seed data.

Each test gets its own SQLite file database (NullPool, so concurrent
sessions really are separate connections), a side-effect runner it can
drain, an in-memory payment gateway and a dispatcher that records what
would have been sent.
"""

import os

# Settings are cached on first import, so the environment goes first
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["NOTIFICATION_BACKEND"] = "log"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"

import hashlib
import hmac
import itertools
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from academy_booking.api.deps import get_dispatcher, get_gateway, get_runner
from academy_booking.core.exceptions import GatewayError
from academy_booking.core.logging import setup_logging
from academy_booking.core.security import create_access_token
from academy_booking.db.base import Base
from academy_booking.db.session import get_db
from academy_booking.main import app
from academy_booking.models import (
    Academy,
    Batch,
    Participant,
    PlatformSettings,
    Sport,
    Transaction,
    User,
)
from academy_booking.models.payout import PayoutAccount
from academy_booking.services.background_tasks import SideEffectRunner
from academy_booking.services.interfaces.payment_gateway import (
    GatewayOrder,
    GatewayPayment,
    PaymentGateway,
)
from academy_booking.services.notifications import NotificationDispatcher, NotificationRequest

setup_logging()


WEBHOOK_SECRET = "whsec_test"


class FakeGateway(PaymentGateway):
    """In-memory gateway. Signatures are `sig_<order>_<payment>`."""

    def __init__(self):
        self.orders: dict[str, GatewayOrder] = {}
        self.payments: dict[str, GatewayPayment] = {}
        self.create_calls = 0
        self.fail_create = False
        self._ids = itertools.count(1)

    async def create_order(self, amount, currency, receipt, notes=None) -> GatewayOrder:
        self.create_calls += 1
        if self.fail_create:
            raise GatewayError("Payment gateway is temporarily unavailable. Please try again later.")
        order = GatewayOrder(
            id=f"order_{next(self._ids)}",
            amount=amount,
            currency=currency,
            receipt=receipt,
            status="created",
        )
        self.orders[order.id] = order
        return order

    async def verify_signature(self, order_id, payment_id, signature) -> bool:
        return signature == self.signature_for(order_id, payment_id)

    async def fetch_payment(self, payment_id) -> GatewayPayment:
        return self.payments[payment_id]

    async def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        return hmac.compare_digest(signature, self.sign_webhook(body))

    @staticmethod
    def sign_webhook(body: bytes) -> str:
        return hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()

    @staticmethod
    def signature_for(order_id: str, payment_id: str) -> str:
        return f"sig_{order_id}_{payment_id}"

    def pay(
        self,
        order_id: str,
        amount: Optional[int] = None,
        status: str = "captured",
    ) -> tuple[str, str]:
        """Simulate checkout. Returns (payment_id, signature)."""
        order = self.orders[order_id]
        payment_id = f"pay_{next(self._ids)}"
        self.payments[payment_id] = GatewayPayment(
            id=payment_id,
            status=status,
            amount=order.amount if amount is None else amount,
            currency=order.currency,
            method="upi",
            order_id=order_id,
        )
        return payment_id, self.signature_for(order_id, payment_id)


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent: list[NotificationRequest] = []

    async def dispatch(self, request: NotificationRequest) -> None:
        self.sent.append(request)

    def types(self) -> list[str]:
        return [r.metadata.get("type") for r in self.sent]


class FakeRedis:
    """Just the redis.asyncio calls the cache and notification queue make."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh SQLite file database with every table created."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def runner(engine) -> AsyncGenerator[SideEffectRunner, None]:
    """Side-effect runner with fast retries, stopped before the database goes away."""
    side_effects = SideEffectRunner(workers=2, queue_size=100, max_attempts=2, backoff_seconds=0.01)
    side_effects.start()
    yield side_effects
    await side_effects.stop()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, runner, dispatcher, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB, runner, dispatcher and gateway dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_runner] = lambda: runner
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


def years_ago(years: int) -> date:
    today = date.today()
    return date(today.year - years, 1, 1)


async def add_user(db: AsyncSession, email: str, first_name: str, role: str = "user") -> User:
    user = User(email=email, first_name=first_name, last_name="Test", role=role)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def add_participant(db: AsyncSession, user: User, first_name: str, **overrides) -> Participant:
    values = {
        "user_id": user.id,
        "first_name": first_name,
        "last_name": "Rao",
        "date_of_birth": years_ago(10),
        "gender": "female",
        "is_disabled": False,
    }
    values.update(overrides)
    participant = Participant(**values)
    db.add(participant)
    await db.commit()
    await db.refresh(participant)
    return participant


async def get_transaction(db: AsyncSession, booking_id: int, gateway_order_id: str) -> Optional[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.booking_id == booking_id, Transaction.gateway_order_id == gateway_order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await add_user(db_session, "parent@example.com", "Meera")


@pytest_asyncio.fixture
async def academy_owner(db_session: AsyncSession) -> User:
    return await add_user(db_session, "coach@example.com", "Vikram", role="academy")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await add_user(db_session, "admin@example.com", "Anil", role="admin")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    return auth_headers_for(test_user)


@pytest_asyncio.fixture
async def academy_headers(academy_owner: User) -> dict:
    return auth_headers_for(academy_owner)


@pytest_asyncio.fixture
async def fee_settings(db_session: AsyncSession) -> PlatformSettings:
    """Platform fee 152.54 with 18% tax: two participants at 500 total 1180.00."""
    row = PlatformSettings(
        platform_fee=Decimal("152.54"),
        tax_percentage=Decimal("18"),
        tax_enabled=True,
        commission_rate=Decimal("10"),
    )
    db_session.add(row)
    await db_session.commit()
    return row


@pytest_asyncio.fixture
async def test_academy(db_session: AsyncSession, academy_owner: User) -> Academy:
    academy = Academy(
        owner_user_id=academy_owner.id,
        name="Smash Badminton Academy",
        email="hello@smash.example.com",
        allowed_disabled=True,
        is_only_for_disabled=False,
        status="published",
        approval_status="approved",
        is_active=True,
        is_deleted=False,
    )
    db_session.add(academy)
    await db_session.commit()
    await db_session.refresh(academy)

    db_session.add(PayoutAccount(academy_id=academy.id, gateway_account_id="acc_test", activation_status="activated"))
    await db_session.commit()
    return academy


@pytest_asyncio.fixture
async def test_sport(db_session: AsyncSession) -> Sport:
    sport = Sport(name="Badminton")
    db_session.add(sport)
    await db_session.commit()
    await db_session.refresh(sport)
    return sport


async def add_batch(
    db: AsyncSession,
    academy: Academy,
    sport: Sport,
    capacity_max: Optional[int] = 10,
    **overrides,
) -> Batch:
    values = {
        "academy_id": academy.id,
        "sport_id": sport.id,
        "name": "Evening Juniors",
        "status": "published",
        "age_min": 5,
        "age_max": 18,
        "is_allowed_disabled": True,
        "capacity_max": capacity_max,
        "booked_slots": 0,
        "admission_fee": None,
        "base_price": Decimal("500.00"),
        "discounted_price": None,
        "is_active": True,
        "is_deleted": False,
    }
    values.update(overrides)
    batch = Batch(**values)
    db.add(batch)
    await db.commit()
    await db.refresh(batch)
    return batch


@pytest_asyncio.fixture
async def test_batch(db_session: AsyncSession, test_academy: Academy, test_sport: Sport, fee_settings) -> Batch:
    return await add_batch(db_session, test_academy, test_sport)


@pytest_asyncio.fixture
async def participants(db_session: AsyncSession, test_user: User) -> list[Participant]:
    return [
        await add_participant(db_session, test_user, "Asha"),
        await add_participant(db_session, test_user, "Kabir", gender="male"),
    ]
