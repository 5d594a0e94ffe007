"""Shared fixtures for agency_core tests.

Each test gets a fresh file-backed SQLite database under ``tmp_path`` with
all tables created, plus an ``AsyncSession`` bound to it.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from agency_core.state.repository import TenantRepository
from agency_core.state.sqlite_adapter import create_local_tables, get_local_engine
from agency_core.state.tables import TenantTable


@pytest_asyncio.fixture()
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    eng = get_local_engine(tmp_path / "state.db")
    await create_local_tables(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture()
async def carry_tenant(session: AsyncSession) -> TenantTable:
    """Tenant with a 10 hour plan that carries unused hours forward."""
    tenant = await TenantRepository(session).create(
        "Acme Bakery",
        tenant_id="t-acme",
        maintenance_plan_name="Standard",
        maintenance_hours_per_month=10.0,
        maintenance_carryover_mode="carry",
    )
    await session.commit()
    return tenant


@pytest_asyncio.fixture()
async def plain_tenant(session: AsyncSession) -> TenantTable:
    """Tenant with a 10 hour plan and no carryover."""
    tenant = await TenantRepository(session).create(
        "Birch Dental",
        tenant_id="t-birch",
        maintenance_hours_per_month=10.0,
        maintenance_carryover_mode="none",
    )
    await session.commit()
    return tenant
