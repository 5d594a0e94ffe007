"""FastAPI dependency injection for settings, sessions, tenant scope and the cycle engine."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from agency_api.config import APISettings, load_api_settings
from agency_core.maintenance.months import Clock, SystemClock
from agency_core.maintenance.policy import HoursPolicy, get_hours_policy
from agency_core.state.database import get_engine, session_factory

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Database session
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(settings.database_url)
    _session_factory = session_factory(_engine)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the global async session factory."""
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped ``AsyncSession``.

    The session commits on clean exit and rolls back on exception, so every
    write made while handling one request (a time entry and the matching
    ``used_hours`` increment, a feature set replacement) lands atomically.
    """
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]

# ---------------------------------------------------------------------------
# Cycle engine collaborators
# ---------------------------------------------------------------------------


def get_clock() -> Clock:
    """Source of "now" for month-key derivation."""
    return SystemClock()


ClockDep = Annotated[Clock, Depends(get_clock)]


def get_active_hours_policy(settings: SettingsDep) -> HoursPolicy:
    """Hours policy selected by ``API_HOURS_POLICY``."""
    return get_hours_policy(settings.hours_policy)


HoursPolicyDep = Annotated[HoursPolicy, Depends(get_active_hours_policy)]

# ---------------------------------------------------------------------------
# Tenant / user identity (populated by AuthenticationMiddleware)
# ---------------------------------------------------------------------------


def get_tenant_id(request: Request) -> str:
    """Extract the caller's own tenant id from authenticated request state.

    Raises
    ------
    HTTPException(401)
        If the request is not authenticated.
    HTTPException(400)
        If the authenticated user is not bound to a tenant.
    """
    if getattr(request.state, "sub", None) is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise HTTPException(status_code=400, detail="No tenant associated with user")
    return tenant_id


TenantDep = Annotated[str, Depends(get_tenant_id)]
