"""
Pytest configuration and fixtures.
"""

import sys
import os
import json
from typing import AsyncGenerator
from unittest.mock import AsyncMock

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("SECRETS_MASTER_KEYS", Fernet.generate_key().decode())
os.environ.setdefault("META_ACCESS_TOKEN", "")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Add app to path
sys.path.append(os.getcwd())

from app.database import Base, get_db
import app.models  # noqa: F401  register tables
from app.fsm.commands import Actor
from app.fsm.states import ActorRole, PaymentMethod
from app.services.order_service import BuyerContact, OrderService

SELLER_ID = "seller_1"
OTHER_SELLER_ID = "seller_2"
ADMIN_KEY = "test-admin-key"

SESSIONS = {
    "seller-token": {"actor_id": SELLER_ID, "role": "seller"},
    "other-seller-token": {"actor_id": OTHER_SELLER_ID, "role": "seller"},
    "buyer-token": {"actor_id": "buyer_9", "role": "buyer"},
}


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite so several sessions can see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def seller():
    return Actor(actor_id=SELLER_ID, role=ActorRole.SELLER)


@pytest.fixture
def other_seller():
    return Actor(actor_id=OTHER_SELLER_ID, role=ActorRole.SELLER)


@pytest.fixture
def admin():
    return Actor(actor_id="admin", role=ActorRole.ADMIN)


@pytest.fixture
def make_order(session_factory):
    """Factory committing a fresh order (total 50000 paise) and returning its id."""

    async def _make(method=PaymentMethod.UPI_MANUAL, seller_id=SELLER_ID, quantity=2, unit_price=25000):
        async with session_factory() as session:
            order = await OrderService(session).create(
                seller_id=seller_id,
                items=[{"name": "Cotton Saree", "quantity": quantity, "unit_price": unit_price}],
                buyer=BuyerContact(name="Asha", phone="919876543210"),
                payment_method=method,
            )
            await session.commit()
            return order.id

    return _make


@pytest.fixture
def mock_redis():
    """Redis double: serves test sessions, never reports a cached webhook."""
    redis = AsyncMock()

    async def _get(key):
        token = key.split(":", 1)[1]
        session = SESSIONS.get(token)
        return json.dumps(session) if session else None

    redis.get.side_effect = _get
    redis.exists.return_value = 0
    return redis


@pytest_asyncio.fixture
async def client(session_factory, mock_redis):
    """HTTP client against the app with the test database and Redis wired in."""
    from httpx import ASGITransport, AsyncClient
    from app.main import app
    from app.redis import get_redis

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = _get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
