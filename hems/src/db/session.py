"""
Async database engine and session factory.

Uses the SQLAlchemy 2.x async engine; the driver comes from the URL
(``postgresql+asyncpg`` in production, ``sqlite+aiosqlite`` for local runs
and tests).

CHANGELOG:
- 2026-10-16: Take the URL as an argument instead of reading the environment
- 2026-10-16: Initial creation
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        database_url: SQLAlchemy URL naming an async driver.

    Returns:
        AsyncEngine: Configured async engine.
    """
    return create_async_engine(database_url, echo=False, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
