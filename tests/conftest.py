"""
Pytest configuration and fixtures.

Stores run against in-memory SQLite (aiosqlite); Razorpay and the
notifier are replaced by in-process fakes.
"""
import asyncio
import hashlib
import hmac
import os
import uuid
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest.mock import MagicMock

# Set test environment before the app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_key_secret")

import pytest
import pytest_asyncio
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base, custom_json_dumps, enable_sqlite_savepoints
from app.models.attribution import OrderAttribution
from app.models.cart import CartItem
from app.models.order import Order, OrderStatus
from app.models.promo_code import PromoCode
from app.services.attribution_store import AttributionStore
from app.services.order_store import OrderStore
from app.services.payment_service import GatewayOrder, RazorpayGateway


TEST_KEY_ID = "rzp_test_key"
TEST_SECRET = "test_key_secret"


def sign(gateway_order_id: str, gateway_payment_id: str, secret: str = TEST_SECRET) -> str:
    """Signature Razorpay would send for this order/payment pair."""
    return hmac.new(
        secret.encode(),
        f"{gateway_order_id}|{gateway_payment_id}".encode(),
        hashlib.sha256,
    ).hexdigest()


class FakeGateway(RazorpayGateway):
    """Razorpay gateway with canned order data and no network."""

    def __init__(
        self,
        captured_amount_minor: Optional[int] = None,
        notes: Optional[Dict[str, Any]] = None,
        fetch_error: Optional[Exception] = None,
    ):
        super().__init__(TEST_KEY_ID, TEST_SECRET, client=MagicMock())
        self.captured_amount_minor = captured_amount_minor
        self.notes = notes or {}
        self.fetch_error = fetch_error
        self.fetched: List[str] = []
        self.created: List[Dict[str, Any]] = []

    async def fetch_gateway_order(self, gateway_order_id: str) -> GatewayOrder:
        self.fetched.append(gateway_order_id)
        if self.fetch_error is not None:
            raise self.fetch_error
        return GatewayOrder(
            gateway_order_id=gateway_order_id,
            captured_amount_minor=self.captured_amount_minor,
            currency="INR",
            status="paid",
            notes=self.notes,
        )

    async def create_order(self, amount_minor, currency, receipt, notes):
        gateway_order = {
            "id": f"order_{uuid.uuid4().hex[:14]}",
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        self.created.append(gateway_order)
        return gateway_order


class FakeNotifier:
    """Records notifications; can be told to fail or hang."""

    def __init__(self, fail_receipt: bool = False, fail_alert: bool = False, delay: float = 0.0):
        self.fail_receipt = fail_receipt
        self.fail_alert = fail_alert
        self.delay = delay
        self.receipts: List[Any] = []
        self.alerts: List[Any] = []

    async def send_receipt(self, order, totals) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_receipt:
            raise RuntimeError("SMTP unavailable")
        self.receipts.append((order, totals))
        return True

    async def send_internal_alert(self, order, attribution, commission_amount=None) -> bool:
        if self.fail_alert:
            raise RuntimeError("SMTP unavailable")
        self.alerts.append((order, attribution, commission_amount))
        return True


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        RAZORPAY_KEY_ID=TEST_KEY_ID,
        RAZORPAY_KEY_SECRET=TEST_SECRET,
        PAYMENT_TRACE_ENABLED=True,
        NOTIFIER_TIMEOUT_SECONDS=0.5,
    )


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, Any]:
    """Create test database session on a fresh in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=custom_json_dumps,
    )
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest.fixture
def order_store(db_session) -> OrderStore:
    return OrderStore(db_session)


@pytest.fixture
def attribution_store(db_session) -> AttributionStore:
    return AttributionStore(db_session)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


# ============================================================================
# Data factories
# ============================================================================

@pytest_asyncio.fixture
async def make_promo(db_session):
    async def _make(**overrides) -> PromoCode:
        values = {
            "code": f"INF{uuid.uuid4().hex[:6].upper()}",
            "influencer_id": uuid.uuid4(),
            "discount_percent": Decimal("10.00"),
            "commission_percent": Decimal("15.00"),
            "is_active": True,
        }
        values.update(overrides)
        promo = PromoCode(**values)
        db_session.add(promo)
        await db_session.commit()
        return promo

    return _make


@pytest_asyncio.fixture
async def make_order(db_session):
    async def _make(**overrides) -> Order:
        values = {
            "order_number": f"ORD-{uuid.uuid4().hex[:8].upper()}",
            "user_id": uuid.uuid4(),
            "customer_name": "Asha Rao",
            "customer_email": "asha@example.com",
            "customer_phone": "+919812345678",
            "status": OrderStatus.CREATED.value,
            "subtotal": Decimal("1000.00"),
            "shipping_fee": Decimal("50.00"),
            "discount_total": Decimal("0.00"),
            "total": Decimal("1050.00"),
            "currency": "INR",
        }
        values.update(overrides)
        order = Order(**values)
        db_session.add(order)
        await db_session.commit()
        return order

    return _make


@pytest_asyncio.fixture
async def add_cart_items(db_session):
    async def _add(user_id: uuid.UUID, count: int = 2) -> None:
        for i in range(count):
            db_session.add(CartItem(user_id=user_id, product_id=f"SKU-{i}", quantity=1))
        await db_session.commit()

    return _add


@pytest_asyncio.fixture
async def count_cart_items(db_session):
    async def _count(user_id: uuid.UUID) -> int:
        result = await db_session.execute(
            select(func.count(CartItem.id)).where(CartItem.user_id == user_id)
        )
        return result.scalar_one()

    return _count


@pytest_asyncio.fixture
async def make_attribution(db_session):
    async def _make(order: Order, **overrides) -> OrderAttribution:
        values = {
            "order_id": order.id,
            "influencer_id": uuid.uuid4(),
            "attributed_by": "promo",
            "discount_percent": Decimal("5.00"),
            "commission_percent": Decimal("7.00"),
            "commission_amount": Decimal("0.00"),
            "currency": "INR",
            "status": "pending",
        }
        values.update(overrides)
        record = OrderAttribution(**values)
        db_session.add(record)
        await db_session.commit()
        return record

    return _make
