"""Liveness and readiness checks.

``/api/v1/health`` always answers 200 and reports the database state in the
body.  ``/ready`` lives at the root and answers 503 while the store is
unreachable, so a load balancer stops routing time entries to an instance
that cannot record them.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agency_api import __version__
from agency_api.dependencies import SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])
readiness_router = APIRouter(tags=["infrastructure"])


async def _database_answers(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database check failed: %s", exc)
        return False
    return True


@router.get("/health")
async def health(session: SessionDep) -> dict[str, Any]:
    """Service version and database state."""
    db_ok = await _database_answers(session)
    return {"status": "healthy", "version": __version__, "db": "ok" if db_ok else "degraded"}


@readiness_router.get("/ready")
async def readiness(session: SessionDep) -> JSONResponse:
    db_ok = await _database_answers(session)
    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            "status": "ready" if db_ok else "not_ready",
            "version": __version__,
            "checks": {"db": "ok" if db_ok else "unavailable"},
        },
    )
