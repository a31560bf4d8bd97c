"""Database session management."""

import asyncio
import logging
import ssl
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from antimat.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_kwargs() -> dict:
    kwargs: dict = {"echo": settings.debug, "pool_pre_ping": True}
    if settings.database_url.startswith("postgresql"):
        kwargs.update(pool_size=5, max_overflow=10)
        if settings.database_requires_ssl:
            kwargs["connect_args"] = {"ssl": ssl.create_default_context()}
    return kwargs


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_kwargs())

# Session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    FastAPI dependency for code that opens its own short-lived sessions.

    The chat long-poll uses this so it does not pin a pooled connection
    for the whole wait.
    """
    return AsyncSessionLocal


async def check_database(session_factory: async_sessionmaker[AsyncSession] | None = None) -> bool:
    """Run a trivial query and report whether the database answered."""
    try:
        async with (session_factory or AsyncSessionLocal)() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return False


async def wait_for_database(delay_seconds: float | None = None) -> None:
    """
    Block until the database is reachable, retrying with a fixed delay.

    Started as a background task at application startup so the HTTP server
    comes up immediately; requests made while the database is down fail as
    internal errors and pool_pre_ping recovers connections once it is back.
    """
    delay = delay_seconds if delay_seconds is not None else settings.db_retry_delay_seconds
    while True:
        if await check_database():
            logger.info("Database status: connected")
            return
        logger.warning("Database status: unavailable, retrying in %.0f seconds", delay)
        await asyncio.sleep(delay)
