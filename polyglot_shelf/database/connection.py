"""
Database Connection Management

Async SQLAlchemy 2.0 engine and session factory for PostgreSQL. The engine
is created once per process by the store container and handed to every
component that needs it.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from polyglot_shelf.config.settings import DatabaseSettings

logger = structlog.get_logger(__name__)


def create_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """
    Create the async engine for the relational store.

    Args:
        db_settings: PostgreSQL settings section

    Returns:
        AsyncEngine: Engine with a pre-pinged connection pool
    """
    engine_config = {
        "echo": db_settings.echo,
        "pool_pre_ping": True,  # Verify connections before use
    }
    if db_settings.async_url.startswith("postgresql"):
        engine_config.update({
            "pool_size": db_settings.pool_size,
            "max_overflow": db_settings.max_overflow,
            "pool_timeout": db_settings.pool_timeout,
        })

    return create_async_engine(db_settings.async_url, **engine_config)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the given engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def verify_connection(engine: AsyncEngine) -> None:
    """
    Run a trivial query to prove the store is reachable.

    Raises:
        Exception: Whatever the driver raised
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established", url=engine.url.render_as_string(hide_password=True))
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a session that commits on success and rolls back on error.

    Example:
        async with session_scope(factory) as db:
            db.add(User(id="u1", name="Ada"))
    """
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()


async def check_database_health(engine: AsyncEngine) -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status with latency information
    """
    try:
        start = time.perf_counter()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


async def acquire_advisory_xact_lock(conn: AsyncConnection, key: int) -> bool:
    """
    Take ``pg_advisory_xact_lock(key)`` inside the connection's transaction.

    The lock is released on commit or rollback. Other dialects have no
    advisory locks; returns False without issuing a statement.
    """
    if conn.dialect.name != "postgresql":
        return False
    await conn.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})
    return True
