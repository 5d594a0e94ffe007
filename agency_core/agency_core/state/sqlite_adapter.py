"""SQLite backend for local runs, the CLI and tests.

Same ORM tables as PostgreSQL, through ``aiosqlite``.  Every connection
enables foreign keys (time entries must point at a real cycle) and a busy
timeout, so two writers bumping ``used_hours`` at once wait for each other
instead of failing with ``database is locked``.  ``DateTime(timezone=True)``
columns come back naive because SQLite stores them as text.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


def get_local_engine(db_path: Path | str = ".agency/state.db") -> AsyncEngine:
    """Open (and if needed create the directory for) a SQLite database.

    ``":memory:"`` gives a throwaway in-process database.
    """
    if str(db_path) == ":memory:":
        url = "sqlite+aiosqlite:///:memory:"
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite+aiosqlite:///{path}"

    engine = create_async_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine.sync_engine, "connect")
    def _apply_pragmas(dbapi_conn: object, _record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        for pragma in _PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    logger.info("Opened SQLite store: %s", url)
    return engine


async def create_local_tables(engine: AsyncEngine) -> None:
    """``CREATE TABLE IF NOT EXISTS`` for every maintenance table."""
    from agency_core.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Maintenance tables ready")
