"""Async engine and session helpers for the maintenance store.

The backend is picked from the URL scheme.  ``postgresql+asyncpg://`` gets a
pooled engine with per-statement and lock timeouts, so a stuck row lock on a
cycle surfaces as an error instead of a hung request.  ``sqlite+aiosqlite://``
is delegated to :mod:`agency_core.state.sqlite_adapter`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from agency_core.config import Settings

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"


def sqlite_path_from_url(database_url: str) -> str:
    """Return the file path of a ``sqlite+aiosqlite:///<path>`` URL.

    URLs without a path (``sqlite+aiosqlite://``) map to ``:memory:``.
    """
    if "///" not in database_url:
        return _MEMORY
    return database_url.split("///", 1)[1] or _MEMORY


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    *,
    statement_timeout_ms: int = 30_000,
    lock_timeout_ms: int = 10_000,
) -> AsyncEngine:
    """Create an async engine for *database_url*.

    Parameters
    ----------
    database_url:
        PostgreSQL (asyncpg) or SQLite (aiosqlite) connection string.
    pool_size, max_overflow:
        Connection pool sizing; PostgreSQL only.
    statement_timeout_ms, lock_timeout_ms:
        Server-side timeouts applied to every PostgreSQL connection.
    """
    if database_url.startswith("sqlite"):
        from agency_core.state.sqlite_adapter import get_local_engine

        return get_local_engine(sqlite_path_from_url(database_url))

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        connect_args={
            "server_settings": {
                "statement_timeout": str(statement_timeout_ms),
                "lock_timeout": str(lock_timeout_ms),
            }
        },
    )
    logger.info("Created PostgreSQL engine: pool_size=%d max_overflow=%d", pool_size, max_overflow)
    return engine


def engine_from_settings(settings: Settings, *, database_url: str | None = None) -> AsyncEngine:
    """Build the engine described by core :class:`~agency_core.config.Settings`.

    *database_url* overrides ``settings.database_url`` (CLI ``--database-url``).
    """
    return get_engine(
        database_url or settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose objects stay readable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield one unit of work: commit on clean exit, roll back on error.

    A time entry and its ``used_hours`` increment, or a feature assignment
    replacement, are written through one session and so land together.
    """
    session = session_factory(engine)()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
