"""Shared fixtures: a throwaway SQLite database per test and a fake gateway."""

import os
from datetime import datetime, UTC

# Settings are read at import time by learngate.db.session
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from learngate.errors import GatewayUnavailable
from learngate.models import Base
from learngate.models.user import User
from learngate.services.payment_gateway import GatewayOrder, PaymentDetails, compute_signature, signature_matches
from learngate.services.plan_service import ensure_default_plans

GATEWAY_SECRET = "rzp_test_secret"
T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeGateway:
    """In-memory PaymentGateway. Flip ``fail_create``/``fail_fetch`` to simulate outages."""

    def __init__(self, secret: str = GATEWAY_SECRET):
        self.secret = secret
        self.orders: list[GatewayOrder] = []
        self.fetched: list[str] = []
        self.fail_create = False
        self.fail_fetch = False

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        if self.fail_create:
            raise GatewayUnavailable("Payment gateway is unreachable")
        order = GatewayOrder(
            order_id=f"order_test{len(self.orders) + 1}",
            amount=amount * 100,
            currency=currency,
            receipt=receipt,
        )
        self.orders.append(order)
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return signature_matches(order_id, payment_id, signature, self.secret)

    async def fetch_payment_details(self, payment_id: str) -> PaymentDetails:
        if self.fail_fetch:
            raise GatewayUnavailable("Payment gateway is unreachable")
        self.fetched.append(payment_id)
        return PaymentDetails(payment_id=payment_id, status="captured", method="upi", vpa="learner@okbank")


def sign(order_id: str, payment_id: str) -> str:
    return compute_signature(order_id, payment_id, GATEWAY_SECRET)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'learngate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def plans(db):
    return await ensure_default_plans(db)


@pytest_asyncio.fixture
async def user(db, plans):
    user = User(email="learner@example.com", name="Test Learner")
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def other_user(db, plans):
    user = User(email="other@example.com", name="Other Learner")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
def gateway():
    return FakeGateway()
