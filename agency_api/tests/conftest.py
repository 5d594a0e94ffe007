"""Shared fixtures for agency API tests.

Routers run against a real SQLite database (one file per test) through the
same commit/rollback session dependency the app uses, with the clock
pinned to March 2025.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Set the signing secret BEFORE importing application modules so the
# AuthenticationMiddleware verifies tokens minted below.
os.environ.setdefault("API_AUTH_SECRET", "test-secret-key-for-agency-tests")
_TEST_SECRET = os.environ["API_AUTH_SECRET"]

from agency_api.config import APISettings
from agency_api.dependencies import get_clock, get_db_session, get_settings
from agency_api.main import create_app
from agency_api.security import TokenManager
from agency_core.maintenance.months import FixedClock
from agency_core.state.database import sqlite_path_from_url
from agency_core.state.repository import TenantRepository
from agency_core.state.sqlite_adapter import create_local_tables, get_local_engine

NOW = datetime(2025, 3, 5, 9, 30, tzinfo=UTC)

_tokens = TokenManager(_TEST_SECRET)


def make_token(sub: str = "staff-1", tenant_id: str | None = None, role: str = "admin") -> str:
    """Mint a token the test app accepts."""
    return _tokens.generate_token(sub, tenant_id=tenant_id, role=role)


def auth_headers(**kwargs: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(**kwargs)}"}


# ---------------------------------------------------------------------------
# Settings & database
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings(tmp_path: Path) -> APISettings:
    return APISettings(
        debug=True,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        platform_env="dev",
        cors_origins=["http://localhost:3000"],
    )


@pytest_asyncio.fixture()
async def session_factory(test_settings: APISettings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = get_local_engine(sqlite_path_from_url(test_settings.database_url))
    await create_local_tables(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture()
async def seeded(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Two tenants: ``t-acme`` (10h, carry) and ``t-birch`` (5h, none)."""
    async with session_factory() as session:
        repo = TenantRepository(session)
        await repo.create(
            "Acme Bakery",
            tenant_id="t-acme",
            maintenance_hours_per_month=10.0,
            maintenance_carryover_mode="carry",
        )
        await repo.create(
            "Birch Dental",
            tenant_id="t-birch",
            maintenance_hours_per_month=5.0,
            maintenance_carryover_mode="none",
        )
        await session.commit()


# ---------------------------------------------------------------------------
# Application & clients
# ---------------------------------------------------------------------------


@pytest.fixture()
def app(test_settings: APISettings, session_factory: async_sessionmaker[AsyncSession]):
    """FastAPI app with the session, settings and clock dependencies overridden."""
    application = create_app()

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        session = session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    application.dependency_overrides[get_db_session] = _override_session
    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_clock] = lambda: FixedClock(NOW)
    return application


@pytest_asyncio.fixture()
async def admin_client(app, seeded) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=auth_headers()) as ac:
        yield ac


@pytest_asyncio.fixture()
async def tenant_client(app, seeded) -> AsyncGenerator[AsyncClient, None]:
    """Client-role user of ``t-acme``."""
    transport = ASGITransport(app=app)
    headers = auth_headers(sub="owner@acme.test", tenant_id="t-acme", role="client")
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as ac:
        yield ac


@pytest_asyncio.fixture()
async def anon_client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def headers_for():
    """Build an ``Authorization`` header for an arbitrary identity."""
    return auth_headers
