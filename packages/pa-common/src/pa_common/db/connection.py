"""
Async database connection management for PharmAuth.

Provides SQLAlchemy async engine and session factory creation and a health
check utility for the PostgreSQL backend.  Engines are built explicitly by
each service at startup and handed to the components that need them; there
is no module-level shared engine.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pa_common.config import Settings, get_settings


def build_engine(
    dsn: str | None = None,
    pool_size: int | None = None,
    *,
    settings: Settings | None = None,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        dsn: Database connection string.  Falls back to ``Settings.db_uri``.
        pool_size: Connection-pool size.  Falls back to ``Settings.db_pool_size``.
        settings: Settings to read defaults from (``get_settings()`` if omitted).

    Returns:
        A configured ``AsyncEngine`` instance.
    """
    settings = settings or get_settings()
    return create_async_engine(
        dsn or settings.db_uri,
        pool_size=pool_size or settings.db_pool_size,
        pool_pre_ping=True,
        pool_timeout=settings.dependency_timeout_s,
        echo=False,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*.

    Args:
        engine: The async engine to bind sessions to.

    Returns:
        An ``async_sessionmaker`` that produces ``AsyncSession`` instances.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def check_database_health(engine: AsyncEngine) -> bool:
    """Execute a lightweight query to verify database connectivity.

    Returns:
        ``True`` if the database responds, ``False`` otherwise.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:  # noqa: BLE001 – health check must not raise
        return False
