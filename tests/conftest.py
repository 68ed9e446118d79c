"""
Pytest configuration and fixtures for testing
"""
import os

# Auth needs a signing key before config.settings is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")

import httpx
import pytest
from sqlalchemy.pool import StaticPool

from config.settings import BillingConfig, PLAN_MONTHLY, PLAN_YEARLY
from database import Base, build_engine, make_session_factory
from tests.helpers import FakeStripeGateway, TEST_WEBHOOK_SECRET

# Create in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """
    Fresh in-memory database per test with all tables created.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    # Import models to ensure they're registered with Base
    import database_models  # noqa: F401

    engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return make_session_factory(test_engine)


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an isolated, in-memory SQLite database session for each test.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
def fake_gateway():
    return FakeStripeGateway()


@pytest.fixture
def billing_config():
    return BillingConfig(
        environment="dev",
        billing_api_key="sk_test_fake",
        webhook_secret=TEST_WEBHOOK_SECRET,
        price_ids={PLAN_MONTHLY: "price_monthly_test_123", PLAN_YEARLY: "price_yearly_test_456"},
        success_url="https://app.example.com",
        cancel_url="https://app.example.com",
    )


@pytest.fixture
async def async_client(session_factory, billing_config, fake_gateway):
    """
    Async HTTP client against the app with the test database, billing config
    and fake Stripe gateway wired in through dependency overrides.
    """
    from main import app
    from config.settings import get_billing_config
    from database import get_db
    from services.stripe_gateway import get_stripe_gateway

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_config] = lambda: billing_config
    app.dependency_overrides[get_stripe_gateway] = lambda: fake_gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
