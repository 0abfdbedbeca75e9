"""
Async SQLAlchemy engine and sessions for the webhook store and task queue.

Request handlers get a session from the get_db dependency; workers open their
own with async_session_factory(). Sessions never expire on commit, so a record
committed by the endpoint can still be read afterwards (e.g. its id for the
task payload) without a lazy load outside the event loop.
"""
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker] = None


class Base(DeclarativeBase):
    pass


def _engine_options(settings) -> dict:
    options = {
        "pool_pre_ping": True,
        "echo": settings.app_env == "development",
    }
    # SQLite (local runs) uses a single-connection pool with no sizing knobs
    if not settings.database_url.startswith("sqlite"):
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        from inbound_webhooks.config import get_settings
        settings = get_settings()
        _engine = create_async_engine(settings.database_url, **_engine_options(settings))
        logger.info("Database engine created (pool_size=%d)", settings.database_pool_size)
    return _engine


def _get_sessionmaker() -> async_sessionmaker:
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _sessionmaker


def async_session_factory() -> AsyncSession:
    """New session for background workers and services outside a request."""
    return _get_sessionmaker()()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency. Work left uncommitted by the handler is committed here."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close pooled connections at shutdown."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None
