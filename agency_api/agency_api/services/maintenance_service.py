"""Service layer for maintenance cycles, time entries and tasks.

Wraps :class:`~agency_core.maintenance.cycle_manager.CycleManager` for one
tenant and converts ORM rows into plain dictionaries for the routers.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from agency_core.maintenance.cycle_manager import CycleManager
from agency_core.maintenance.models import CycleOverrides, TimeEntryInput
from agency_core.maintenance.months import Clock
from agency_core.maintenance.policy import HoursPolicy, permissive_hours_policy
from agency_core.state.repository import MaintenanceTaskRepository, TenantRepository
from agency_core.state.tables import (
    MaintenanceCycleTable,
    MaintenanceTaskTable,
    MaintenanceTimeEntryTable,
)

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Business logic for a tenant's maintenance hours.

    Parameters
    ----------
    session:
        Active database session.
    tenant_id:
        Tenant scope for all operations.
    clock:
        Source of "now" passed to the cycle engine.
    hours_policy:
        Validation applied to hour values before they are written.
    conflict_retries:
        Cycle creation retry budget.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        tenant_id: str,
        clock: Clock | None = None,
        hours_policy: HoursPolicy = permissive_hours_policy,
        conflict_retries: int = 3,
    ) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._cycles = CycleManager(
            session,
            tenant_id,
            clock=clock,
            hours_policy=hours_policy,
            conflict_retries=conflict_retries,
        )
        self._tenant_repo = TenantRepository(session)
        self._task_repo = MaintenanceTaskRepository(session, tenant_id)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def get_current_cycle(self) -> dict[str, Any]:
        """Return the current month's cycle row, creating it if needed."""
        cycle = await self._cycles.get_or_create_current_cycle()
        return self._cycle_to_dict(cycle)

    async def update_current_cycle(self, overrides: CycleOverrides) -> dict[str, Any]:
        """Apply admin overrides to the current cycle."""
        cycle = await self._cycles.update_cycle(overrides)
        return self._cycle_to_dict(cycle)

    async def get_current_summary(self) -> dict[str, Any]:
        """Tenant-facing summary of the current cycle with derived totals."""
        cycle = await self._cycles.get_or_create_current_cycle()
        return self._cycles.summarize(cycle).model_dump()

    # ------------------------------------------------------------------
    # Time entries
    # ------------------------------------------------------------------

    async def create_time_entry(self, entry: TimeEntryInput) -> dict[str, Any]:
        """Charge a time entry against the current cycle."""
        row = await self._cycles.record_time_entry(entry)
        return self._entry_to_dict(row)

    async def list_current_entries(self) -> list[dict[str, Any]]:
        """Entries of the current cycle, newest date first."""
        rows = await self._cycles.list_entries_for_current_cycle()
        return [self._entry_to_dict(r) for r in rows]

    async def list_entries_with_month(self) -> list[dict[str, Any]]:
        """Every entry of the tenant with its cycle month and task title."""
        entries = await self._cycles.list_entries_with_month()
        return [e.model_dump() for e in entries]

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, title: str, *, type: str | None = None, status: str | None = None) -> dict[str, Any]:
        """Create a task for the tenant.

        Raises
        ------
        TenantNotFoundError
            If the tenant does not exist.
        """
        await self._tenant_repo.get_or_raise(self._tenant_id)
        task = await self._task_repo.create(title, type=type or "routine", status=status or "open")
        logger.info("Created maintenance task: tenant=%s task=%s type=%s", self._tenant_id, task.id, task.type)
        return self._task_to_dict(task)

    async def list_tasks(self) -> list[dict[str, Any]]:
        """Tasks of the tenant, newest first."""
        tasks = await self._task_repo.list_all()
        return [self._task_to_dict(t) for t in tasks]

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    @staticmethod
    def _cycle_to_dict(cycle: MaintenanceCycleTable) -> dict[str, Any]:
        return {
            "id": cycle.id,
            "tenant_id": cycle.tenant_id,
            "month": cycle.month,
            "base_hours": cycle.base_hours,
            "carried_hours": cycle.carried_hours,
            "used_hours": cycle.used_hours,
            "status": cycle.status,
            "created_at": cycle.created_at.isoformat() if cycle.created_at else None,
            "updated_at": cycle.updated_at.isoformat() if cycle.updated_at else None,
        }

    @staticmethod
    def _entry_to_dict(entry: MaintenanceTimeEntryTable) -> dict[str, Any]:
        return {
            "id": entry.id,
            "tenant_id": entry.tenant_id,
            "cycle_id": entry.cycle_id,
            "task_id": entry.task_id,
            "date": entry.date.isoformat() if entry.date else None,
            "duration_hours": entry.duration_hours,
            "is_included_in_plan": entry.is_included_in_plan,
            "notes": entry.notes,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
        }

    @staticmethod
    def _task_to_dict(task: MaintenanceTaskTable) -> dict[str, Any]:
        return {
            "id": task.id,
            "tenant_id": task.tenant_id,
            "title": task.title,
            "type": task.type,
            "status": task.status,
            "created_at": task.created_at.isoformat() if task.created_at else None,
        }
