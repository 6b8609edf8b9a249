"""Shared test configuration and fixtures.

Each test gets a fresh in-memory SQLite database (aiosqlite + StaticPool so
every session shares one connection). API requests run in their own session
that commits or rolls back like ``get_db``; Stripe is replaced by a fake
gateway whose methods are ``AsyncMock`` objects.
"""

import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.jwt import create_token_pair
from app.auth.passwords import hash_password
from app.billing.stripe_client import BillingGateway, get_billing_gateway
from app.database import Base, get_db
from app.main import app
from app.models import SubscriptionPlan, User

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Per-test in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session used by tests to arrange and inspect data directly."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake Stripe gateway
# ---------------------------------------------------------------------------


def make_fake_gateway() -> MagicMock:
    """A BillingGateway stand-in returning canned Stripe-like objects."""
    gateway = MagicMock(spec=BillingGateway)
    gateway.create_product = AsyncMock(return_value=SimpleNamespace(id="prod_test"))
    gateway.update_product = AsyncMock(return_value=SimpleNamespace(id="prod_test"))
    gateway.archive_product = AsyncMock(return_value=SimpleNamespace(id="prod_test", active=False))
    gateway.create_price = AsyncMock(return_value=SimpleNamespace(id="price_test"))
    gateway.create_customer = AsyncMock(return_value=SimpleNamespace(id="cus_test"))
    gateway.retrieve_customer = AsyncMock(
        return_value=SimpleNamespace(
            id="cus_test",
            invoice_settings=SimpleNamespace(default_payment_method=None),
        )
    )
    gateway.attach_payment_method = AsyncMock(return_value=SimpleNamespace(id="pm_test"))
    gateway.set_default_payment_method = AsyncMock(return_value=SimpleNamespace(id="cus_test"))
    gateway.create_payment_intent = AsyncMock(
        return_value=SimpleNamespace(
            id="pi_test",
            client_secret="pi_test_secret_abc",
            status="requires_payment_method",
        )
    )
    gateway.retrieve_payment_intent = AsyncMock(
        return_value=SimpleNamespace(id="pi_test", status="succeeded", payment_method="pm_test")
    )
    gateway.create_subscription = AsyncMock(return_value=SimpleNamespace(id="sub_test", status="active"))
    gateway.cancel_subscription = AsyncMock(return_value=SimpleNamespace(id="sub_test", status="canceled"))
    gateway.construct_event = MagicMock()
    return gateway


@pytest.fixture
def fake_gateway() -> MagicMock:
    return make_fake_gateway()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory, fake_gateway) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient against the app, wired to the test DB and fake gateway."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_gateway] = lambda: fake_gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def create_user(db_session: AsyncSession, role: str = "candidate", **overrides) -> User:
    unique = uuid.uuid4().hex[:8]
    fields = {
        "email": f"{role}-{unique}@test.com",
        "hashed_password": hash_password("testpass123"),
        "first_name": role.title(),
        "last_name": "Tester",
        "role": role,
        "is_active": True,
    }
    fields.update(overrides)
    user = User(**fields)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def bearer(user: User) -> dict[str, str]:
    tokens = create_token_pair(str(user.id))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest_asyncio.fixture
async def candidate(db_session: AsyncSession) -> User:
    return await create_user(db_session, "candidate")


@pytest_asyncio.fixture
async def employer(db_session: AsyncSession) -> User:
    return await create_user(db_session, "employer")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, "admin")


@pytest.fixture
def candidate_headers(candidate: User) -> dict[str, str]:
    return bearer(candidate)


@pytest.fixture
def employer_headers(employer: User) -> dict[str, str]:
    return bearer(employer)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return bearer(admin)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


async def create_plan(db_session: AsyncSession, **overrides) -> SubscriptionPlan:
    """Insert a plan row directly, bypassing the catalog and Stripe."""
    fields = {
        "name": f"Plan {uuid.uuid4().hex[:6]}",
        "description": "Test plan",
        "price": Decimal("10.00"),
        "currency": "usd",
        "interval": "month",
        "interval_count": 1,
        "stripe_product_id": "prod_existing",
        "stripe_price_id": "price_existing",
        "status": "active",
        "skip_billing": False,
    }
    fields.update(overrides)
    plan = SubscriptionPlan(**fields)
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest_asyncio.fixture
async def paid_plan(db_session: AsyncSession) -> SubscriptionPlan:
    return await create_plan(db_session, name="Employer Pro")


@pytest_asyncio.fixture
async def free_plan(db_session: AsyncSession) -> SubscriptionPlan:
    return await create_plan(
        db_session,
        name="Candidate Free",
        price=Decimal("0"),
        stripe_product_id=None,
        stripe_price_id=None,
        skip_billing=True,
    )
