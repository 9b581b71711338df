"""Shared test fixtures for the billing service tests.

Uses an in-memory SQLite async engine so tests run without PostgreSQL or
Redis. Service modules read the clock through ``now_utc``; the ``clock``
fixture pins it so lifecycle scenarios can step through days.
"""

import os

# Settings are read at import time; configure before importing the app
os.environ["DEBUG"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["RESEND_API_KEY"] = ""

from datetime import datetime, timedelta, UTC

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tiffin.app import app
from tiffin.db.session import get_db
from tiffin.models import Base, Kitchen, Meal, Plan, User
from tiffin.models.enums import UserRole
from tiffin.services.auth_service import create_jwt

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CLOCKED_MODULES = [
    "tiffin.services.subscription_service",
    "tiffin.services.webhook_service",
    "tiffin.services.sweeper",
    "tiffin.services.boost_service",
    "tiffin.services.order_service",
]


class Clock:
    """Controllable replacement for ``now_utc``."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float = 0, **kwargs) -> datetime:
        self.now = self.now + timedelta(days=days, **kwargs)
        return self.now


@pytest.fixture
def clock(monkeypatch):
    c = Clock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC))
    for module in CLOCKED_MODULES:
        monkeypatch.setattr(f"{module}.now_utc", c)
    return c


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    """Direct DB session for test setup/assertions. Routes share it."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db):
    """Async HTTP test client."""
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def cook(db):
    user = User(email="cook@example.com", name="Amna", role=UserRole.COOK)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def customer(db):
    user = User(email="customer@example.com", name="Bilal", role=UserRole.CUSTOMER)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def kitchen(db, cook):
    kitchen = Kitchen(owner_id=cook.id, name="Amna's Kitchen", region="PK")
    db.add(kitchen)
    await db.commit()
    return kitchen


@pytest_asyncio.fixture
async def plan(db):
    """Active PK plan without Stripe recurring prices."""
    plan = Plan(
        name="Smart Tiffin Pro",
        price_monthly=59900,
        price_quarterly=109900,
        price_yearly=209900,
        currency="PKR",
        region="PK",
        features=["Kitchen listing on platform"],
        is_active=True,
    )
    db.add(plan)
    await db.commit()
    return plan


@pytest_asyncio.fixture
async def meals(db, kitchen):
    daal = Meal(kitchen_id=kitchen.id, name="Daal Chawal", price=35000)
    karahi = Meal(kitchen_id=kitchen.id, name="Chicken Karahi", price=90000)
    sold_out = Meal(kitchen_id=kitchen.id, name="Nihari", price=75000, is_available=False)
    db.add_all([daal, karahi, sold_out])
    await db.commit()
    return daal, karahi, sold_out


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_jwt(user.id)}"}
    return _headers


@pytest_asyncio.fixture
async def make_subscription(db, kitchen, plan):
    """Insert a subscription row for ``kitchen`` directly."""
    from tiffin.models import Subscription
    from tiffin.models.enums import PaymentMethod, PlanType, SubscriptionStatus

    async def _make(**overrides) -> Subscription:
        now = datetime.now(UTC)
        values = {
            "user_id": kitchen.owner_id,
            "kitchen_id": kitchen.id,
            "plan_id": plan.id,
            "plan_type": PlanType.BASE_MONTHLY,
            "payment_method": PaymentMethod.STRIPE,
            "status": SubscriptionStatus.ACTIVE,
            "current_period_start": now,
            "current_period_end": now + timedelta(days=30),
            "auto_renew": True,
            "created_at": now,
        }
        values.update(overrides)
        subscription = Subscription(**values)
        db.add(subscription)
        await db.commit()
        return subscription

    return _make
