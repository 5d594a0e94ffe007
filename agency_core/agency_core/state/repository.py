"""Repository classes providing CRUD access to the maintenance state store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
so that generated defaults are populated; the caller is responsible for calling
``session.commit()`` (or relying on the ``get_session`` context manager).

Hour counters on ``maintenance_cycles`` are only ever changed through
single ``UPDATE`` statements (an atomic delta for ``used_hours``, a targeted
column set for admin overrides), never by writing back a previously read
snapshot.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agency_core.maintenance.errors import TenantNotFoundError
from agency_core.state.tables import (
    MaintenanceCycleTable,
    MaintenanceFeatureTable,
    MaintenanceTaskTable,
    MaintenanceTimeEntryTable,
    TenantMaintenanceFeatureTable,
    TenantTable,
    new_id,
)

logger = logging.getLogger(__name__)


async def _dialect_insert_nothing(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``.

    Parameters
    ----------
    session:
        The active async session.
    table:
        The SQLAlchemy table class to insert into.
    values:
        Column-value mapping for the row to insert.
    index_elements:
        Column names forming the unique constraint for conflict detection.

    Returns
    -------
    The execution result from ``session.execute()``.
    """
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

    stmt: Any
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    return await session.execute(stmt)


# ---------------------------------------------------------------------------
# TenantRepository
# ---------------------------------------------------------------------------


class TenantRepository:
    """Read access to the tenant directory, plus creation for seeding."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tenant_id: str) -> TenantTable | None:
        """Fetch a tenant by id."""
        stmt = select(TenantTable).where(TenantTable.id == tenant_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_raise(self, tenant_id: str) -> TenantTable:
        """Fetch a tenant by id.

        Raises
        ------
        TenantNotFoundError
            If no tenant with *tenant_id* exists.
        """
        tenant = await self.get(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    async def create(
        self,
        name: str,
        *,
        tenant_id: str | None = None,
        website_url: str | None = None,
        maintenance_plan_name: str | None = None,
        maintenance_hours_per_month: float | None = None,
        maintenance_carryover_mode: str | None = None,
        maintenance_start_date: datetime | None = None,
    ) -> TenantTable:
        """Insert a new tenant and return the persisted row."""
        row = TenantTable(
            id=tenant_id or new_id(),
            name=name,
            website_url=website_url,
            maintenance_plan_name=maintenance_plan_name,
            maintenance_hours_per_month=maintenance_hours_per_month,
            maintenance_carryover_mode=maintenance_carryover_mode,
            maintenance_start_date=maintenance_start_date,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_all(self) -> list[TenantTable]:
        """List every tenant, newest first."""
        stmt = select(TenantTable).order_by(TenantTable.created_at.desc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# MaintenanceCycleRepository
# ---------------------------------------------------------------------------


class MaintenanceCycleRepository:
    """CRUD operations for the ``maintenance_cycles`` table."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def get_by_month(self, month: str) -> MaintenanceCycleTable | None:
        """Fetch this tenant's cycle for *month*, re-reading from the store."""
        stmt = (
            select(MaintenanceCycleTable)
            .where(
                MaintenanceCycleTable.tenant_id == self._tenant_id,
                MaintenanceCycleTable.month == month,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, cycle_id: str) -> MaintenanceCycleTable | None:
        """Fetch a cycle by id, re-reading from the store."""
        stmt = (
            select(MaintenanceCycleTable)
            .where(
                MaintenanceCycleTable.tenant_id == self._tenant_id,
                MaintenanceCycleTable.id == cycle_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_if_absent(
        self,
        month: str,
        *,
        base_hours: float,
        carried_hours: float,
        status: str = "open",
    ) -> bool:
        """Insert a cycle for *month* unless one already exists.

        Uses ``INSERT ... ON CONFLICT (tenant_id, month) DO NOTHING`` so two
        concurrent creators can never produce a duplicate.  Returns ``True``
        if this call inserted the row.
        """
        result = await _dialect_insert_nothing(
            self._session,
            MaintenanceCycleTable,
            values={
                "id": new_id(),
                "tenant_id": self._tenant_id,
                "month": month,
                "base_hours": base_hours,
                "carried_hours": carried_hours,
                "used_hours": 0.0,
                "status": status,
            },
            index_elements=["tenant_id", "month"],
        )
        await self._session.flush()
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def set_hours(self, cycle_id: str, values: dict[str, float]) -> MaintenanceCycleTable:
        """Overwrite only the hour columns named in *values*.

        Raises
        ------
        ValueError
            If the cycle does not exist for this tenant.
        """
        if values:
            stmt = (
                update(MaintenanceCycleTable)
                .where(
                    MaintenanceCycleTable.tenant_id == self._tenant_id,
                    MaintenanceCycleTable.id == cycle_id,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            if result.rowcount == 0:  # type: ignore[attr-defined]
                raise ValueError(f"Cycle {cycle_id} not found")
            await self._session.flush()
        return await self._reload(cycle_id)

    async def increment_used_hours(self, cycle_id: str, delta: float) -> MaintenanceCycleTable:
        """Atomically add *delta* to ``used_hours``.

        The addition happens inside the database (``used_hours = used_hours
        + :delta``) so concurrent increments are serialised by the store and
        none are lost.

        Raises
        ------
        ValueError
            If the cycle does not exist for this tenant.
        """
        stmt = (
            update(MaintenanceCycleTable)
            .where(
                MaintenanceCycleTable.tenant_id == self._tenant_id,
                MaintenanceCycleTable.id == cycle_id,
            )
            .values(used_hours=MaintenanceCycleTable.used_hours + delta)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise ValueError(f"Cycle {cycle_id} not found")
        await self._session.flush()
        return await self._reload(cycle_id)

    async def list_all(self) -> list[MaintenanceCycleTable]:
        """Return every cycle of the tenant, most recent month first."""
        stmt = (
            select(MaintenanceCycleTable)
            .where(MaintenanceCycleTable.tenant_id == self._tenant_id)
            .order_by(MaintenanceCycleTable.month.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def _reload(self, cycle_id: str) -> MaintenanceCycleTable:
        row = await self.get(cycle_id)
        if row is None:
            raise ValueError(f"Cycle {cycle_id} not found")
        return row


# ---------------------------------------------------------------------------
# MaintenanceTimeEntryRepository
# ---------------------------------------------------------------------------


class MaintenanceTimeEntryRepository:
    """Insert and list operations for ``maintenance_time_entries``.

    Entries are immutable once written; there is no update or delete.
    """

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def create(
        self,
        cycle_id: str,
        *,
        date: datetime,
        duration_hours: float,
        task_id: str | None = None,
        is_included_in_plan: bool = True,
        notes: str | None = None,
    ) -> MaintenanceTimeEntryTable:
        """Insert a time entry charged against *cycle_id*."""
        row = MaintenanceTimeEntryTable(
            id=new_id(),
            tenant_id=self._tenant_id,
            cycle_id=cycle_id,
            task_id=task_id,
            date=date,
            duration_hours=duration_hours,
            is_included_in_plan=is_included_in_plan,
            notes=notes,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_for_cycle(self, cycle_id: str) -> list[MaintenanceTimeEntryTable]:
        """Entries charged against *cycle_id*, newest date first."""
        stmt = (
            select(MaintenanceTimeEntryTable)
            .where(
                MaintenanceTimeEntryTable.tenant_id == self._tenant_id,
                MaintenanceTimeEntryTable.cycle_id == cycle_id,
            )
            .order_by(MaintenanceTimeEntryTable.date.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_with_month(self) -> list[tuple[MaintenanceTimeEntryTable, str, str | None]]:
        """Every entry of the tenant with its cycle month and task title.

        Returns ``(entry, month, task_title)`` tuples, newest date first.
        """
        stmt = (
            select(
                MaintenanceTimeEntryTable,
                MaintenanceCycleTable.month,
                MaintenanceTaskTable.title,
            )
            .join(MaintenanceCycleTable, MaintenanceCycleTable.id == MaintenanceTimeEntryTable.cycle_id)
            .outerjoin(
                MaintenanceTaskTable,
                (MaintenanceTaskTable.id == MaintenanceTimeEntryTable.task_id)
                & (MaintenanceTaskTable.tenant_id == MaintenanceTimeEntryTable.tenant_id),
            )
            .where(MaintenanceTimeEntryTable.tenant_id == self._tenant_id)
            .order_by(MaintenanceTimeEntryTable.date.desc())
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1], row[2]) for row in result.all()]


# ---------------------------------------------------------------------------
# MaintenanceTaskRepository
# ---------------------------------------------------------------------------


class MaintenanceTaskRepository:
    """CRUD operations for the ``maintenance_tasks`` table."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def get(self, task_id: str) -> MaintenanceTaskTable | None:
        """Fetch one of this tenant's tasks; tasks of other tenants read as absent."""
        stmt = select(MaintenanceTaskTable).where(
            MaintenanceTaskTable.tenant_id == self._tenant_id,
            MaintenanceTaskTable.id == task_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, title: str, *, type: str = "routine", status: str = "open") -> MaintenanceTaskTable:
        """Insert a task and return the persisted row."""
        row = MaintenanceTaskTable(
            id=new_id(),
            tenant_id=self._tenant_id,
            title=title,
            type=type,
            status=status,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_all(self) -> list[MaintenanceTaskTable]:
        """Tasks of the tenant, newest first."""
        stmt = (
            select(MaintenanceTaskTable)
            .where(MaintenanceTaskTable.tenant_id == self._tenant_id)
            .order_by(MaintenanceTaskTable.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# MaintenanceFeatureRepository
# ---------------------------------------------------------------------------


class MaintenanceFeatureRepository:
    """CRUD operations for the global ``maintenance_features`` catalog."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_active(self) -> list[MaintenanceFeatureTable]:
        """Active features ordered by label."""
        stmt = (
            select(MaintenanceFeatureTable)
            .where(MaintenanceFeatureTable.is_active == True)  # noqa: E712
            .order_by(MaintenanceFeatureTable.label)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def key_exists(self, key: str) -> bool:
        stmt = select(MaintenanceFeatureTable.id).where(MaintenanceFeatureTable.key == key)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def existing_ids(self, feature_ids: list[str]) -> set[str]:
        """Return the subset of *feature_ids* that exist in the catalog."""
        if not feature_ids:
            return set()
        stmt = select(MaintenanceFeatureTable.id).where(MaintenanceFeatureTable.id.in_(feature_ids))
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    async def create(self, key: str, label: str, description: str | None = None) -> MaintenanceFeatureTable:
        """Insert a feature and return the persisted row."""
        row = MaintenanceFeatureTable(
            id=new_id(),
            key=key,
            label=label,
            description=description,
        )
        self._session.add(row)
        await self._session.flush()
        return row


# ---------------------------------------------------------------------------
# TenantMaintenanceFeatureRepository
# ---------------------------------------------------------------------------


class TenantMaintenanceFeatureRepository:
    """Tenant-to-feature assignments (``tenant_maintenance_features``)."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self._session = session
        self._tenant_id = tenant_id

    async def list_assigned(self, *, active_only: bool = False) -> list[MaintenanceFeatureTable]:
        """Features assigned to the tenant, ordered by label."""
        stmt = (
            select(MaintenanceFeatureTable)
            .join(
                TenantMaintenanceFeatureTable,
                TenantMaintenanceFeatureTable.feature_id == MaintenanceFeatureTable.id,
            )
            .where(TenantMaintenanceFeatureTable.tenant_id == self._tenant_id)
            .order_by(MaintenanceFeatureTable.label)
        )
        if active_only:
            stmt = stmt.where(MaintenanceFeatureTable.is_active == True)  # noqa: E712
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def replace(self, feature_ids: list[str]) -> None:
        """Replace the tenant's whole assignment set with *feature_ids*."""
        await self._session.execute(
            delete(TenantMaintenanceFeatureTable).where(TenantMaintenanceFeatureTable.tenant_id == self._tenant_id)
        )
        for feature_id in feature_ids:
            self._session.add(
                TenantMaintenanceFeatureTable(
                    id=new_id(),
                    tenant_id=self._tenant_id,
                    feature_id=feature_id,
                )
            )
        await self._session.flush()

    async def add(self, feature_id: str) -> None:
        """Assign a single feature to the tenant."""
        self._session.add(
            TenantMaintenanceFeatureTable(
                id=new_id(),
                tenant_id=self._tenant_id,
                feature_id=feature_id,
            )
        )
        await self._session.flush()
