"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks Redis and outbound alerts.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import hashlib
import hmac
import time
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.pool import StaticPool

from inbound_webhooks.database import Base
from inbound_webhooks import models  # noqa: F401 - registers tables on Base.metadata


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


MOVIES_SECRET = "whsec_movies_test"
STRIPE_SECRET = "whsec_stripe_test"

# Modules that open their own sessions via async_session_factory()
SESSION_FACTORY_TARGETS = (
    "inbound_webhooks.services.task_dispatch.async_session_factory",
    "inbound_webhooks.workers.webhook_processor.async_session_factory",
    "inbound_webhooks.workers.reconciliation_sweeper.async_session_factory",
)


@pytest.fixture
async def session_factory():
    """Session factory over one shared in-memory SQLite connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    patches = [patch(target, factory) for target in SESSION_FACTORY_TARGETS]
    for p in patches:
        p.start()
    try:
        yield factory
    finally:
        for p in patches:
            p.stop()
        await engine.dispose()


@pytest.fixture
async def db(session_factory):
    """Database session for tests, sharing storage with worker sessions."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.ping = AsyncMock(return_value=True)
    redis_mock.lpush = AsyncMock(return_value=1)
    with patch(
        "inbound_webhooks.utils.redis_client.get_redis",
        new_callable=AsyncMock,
        return_value=redis_mock,
    ):
        yield redis_mock


@pytest.fixture
def mock_alert():
    """Capture alerts instead of sending them."""
    with patch(
        "inbound_webhooks.workers.webhook_processor.send_alert",
        new_callable=AsyncMock,
    ) as mock:
        yield mock


def sign_hmac(secret: str, body: bytes, timestamp=None) -> dict:
    """Headers for the generic X-Webhook-Signature scheme."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return {
        "X-Webhook-Timestamp": ts,
        "X-Webhook-Signature": f"sha256={digest}",
    }


def sign_stripe(secret: str, body: bytes, timestamp=None) -> dict:
    """Headers for Stripe's t=<ts>,v1=<hex> scheme."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return {"Stripe-Signature": f"t={ts},v1={digest}"}


@pytest.fixture
def movies_secret():
    return MOVIES_SECRET


@pytest.fixture
def stripe_secret():
    return STRIPE_SECRET
