"""Maintenance cycle engine.

Owns the notion of the "current billing month" for a tenant: creates or
fetches that month's cycle, snapshots the tenant's plan hours and any
carryover from the previous month at creation time, and charges logged
time entries against it.

Creation is idempotent without an application lock.  The cycle row is
inserted with ``ON CONFLICT (tenant_id, month) DO NOTHING`` and then
re-read, so concurrent callers for the same tenant and month all end up
with the single row that won.  If the re-read still finds nothing (the
winning transaction is not yet visible) the engine retries a bounded
number of times and then raises :class:`CycleConflictError`, which callers
treat as "retry the request".

There is no "closed" state: a past cycle stays editable, and carryover is
a one-time snapshot taken when the next month's cycle is created.
"""

from __future__ import annotations

import logging
from datetime import UTC

from sqlalchemy.ext.asyncio import AsyncSession

from agency_core.maintenance.errors import CycleConflictError, TaskNotFoundError
from agency_core.maintenance.models import (
    CycleOverrides,
    CycleStatus,
    CycleSummary,
    EntryWithMonth,
    TimeEntryInput,
)
from agency_core.maintenance.months import Clock, SystemClock, month_key, previous_month_key
from agency_core.maintenance.policy import (
    HoursPolicy,
    carryover_enabled,
    compute_carryover,
    permissive_hours_policy,
)
from agency_core.state.repository import (
    MaintenanceCycleRepository,
    MaintenanceTaskRepository,
    MaintenanceTimeEntryRepository,
    TenantRepository,
)
from agency_core.state.tables import MaintenanceCycleTable, MaintenanceTimeEntryTable

logger = logging.getLogger(__name__)


class CycleManager:
    """Hour-bucket accounting for one tenant.

    Parameters
    ----------
    session:
        Active database session.  The manager never commits; the session
        owner decides the transaction boundary.
    tenant_id:
        Tenant whose cycles are managed.
    clock:
        Source of "now"; the current month key is derived from it in UTC.
    hours_policy:
        Applied to every hour value written by an override or time entry.
    conflict_retries:
        How many insert-then-read rounds to attempt when creating a cycle.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: str,
        *,
        clock: Clock | None = None,
        hours_policy: HoursPolicy = permissive_hours_policy,
        conflict_retries: int = 3,
    ) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._hours_policy = hours_policy
        self._conflict_retries = max(1, conflict_retries)
        self._tenant_repo = TenantRepository(session)
        self._cycle_repo = MaintenanceCycleRepository(session, tenant_id)
        self._entry_repo = MaintenanceTimeEntryRepository(session, tenant_id)
        self._task_repo = MaintenanceTaskRepository(session, tenant_id)

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    def current_month_key(self) -> str:
        """UTC ``YYYY-MM`` key of the injected clock's current instant."""
        return month_key(self._clock.now())

    # ------------------------------------------------------------------
    # Cycle lifecycle
    # ------------------------------------------------------------------

    async def get_or_create_current_cycle(self) -> MaintenanceCycleTable:
        """Return the cycle for the current month, creating it if absent.

        An existing cycle is returned unchanged.  A new cycle snapshots the
        tenant's ``maintenance_hours_per_month`` (``0`` when unset) as
        ``base_hours`` and, for tenants in ``"carry"`` mode, the previous
        calendar month's unused hours (floored at zero) as
        ``carried_hours``.

        Raises
        ------
        TenantNotFoundError
            If the tenant does not exist.
        CycleConflictError
            If the cycle could not be created or read after retrying.
        """
        month = self.current_month_key()
        cycle = await self._cycle_repo.get_by_month(month)
        if cycle is not None:
            return cycle

        tenant = await self._tenant_repo.get_or_raise(self._tenant_id)
        base_hours = float(tenant.maintenance_hours_per_month or 0.0)
        carried_hours = 0.0
        if carryover_enabled(tenant.maintenance_carryover_mode):
            previous = await self._cycle_repo.get_by_month(previous_month_key(month))
            carried_hours = compute_carryover(tenant.maintenance_carryover_mode, previous)

        for attempt in range(1, self._conflict_retries + 1):
            inserted = await self._cycle_repo.insert_if_absent(
                month,
                base_hours=base_hours,
                carried_hours=carried_hours,
                status=CycleStatus.OPEN.value,
            )
            cycle = await self._cycle_repo.get_by_month(month)
            if cycle is not None:
                if inserted:
                    logger.info(
                        "Created maintenance cycle: tenant=%s month=%s base=%.2f carried=%.2f",
                        self._tenant_id,
                        month,
                        base_hours,
                        carried_hours,
                    )
                else:
                    logger.info(
                        "Maintenance cycle created concurrently, using existing: tenant=%s month=%s",
                        self._tenant_id,
                        month,
                    )
                return cycle
            logger.warning(
                "Maintenance cycle not visible after insert: tenant=%s month=%s attempt=%d/%d",
                self._tenant_id,
                month,
                attempt,
                self._conflict_retries,
            )

        raise CycleConflictError(self._tenant_id, month)

    async def update_cycle(self, overrides: CycleOverrides) -> MaintenanceCycleTable:
        """Admin override of the current cycle's hour buckets.

        The cycle is created first if it does not exist yet.  Only the
        supplied fields are written; the rest keep their stored values.
        No bounds are enforced beyond the configured hours policy.
        """
        cycle = await self.get_or_create_current_cycle()
        values = {field: self._hours_policy(field, value) for field, value in overrides.supplied().items()}
        updated = await self._cycle_repo.set_hours(cycle.id, values)
        logger.info(
            "Overrode maintenance cycle: tenant=%s month=%s fields=%s",
            self._tenant_id,
            updated.month,
            sorted(values),
        )
        return updated

    async def record_time_entry(self, entry: TimeEntryInput) -> MaintenanceTimeEntryTable:
        """Charge a time entry against the current cycle.

        Inserts the entry and adds its duration to the cycle's
        ``used_hours`` with an in-database increment.  Both writes go
        through the same session, so they commit or roll back together.

        Raises
        ------
        TaskNotFoundError
            If ``task_id`` is set and names no task of this tenant.
        """
        cycle = await self.get_or_create_current_cycle()
        duration = self._hours_policy("duration_hours", entry.duration_hours)
        if entry.task_id is not None and await self._task_repo.get(entry.task_id) is None:
            raise TaskNotFoundError(self._tenant_id, entry.task_id)
        entry_date = entry.date if entry.date.tzinfo is not None else entry.date.replace(tzinfo=UTC)

        row = await self._entry_repo.create(
            cycle.id,
            date=entry_date,
            duration_hours=duration,
            task_id=entry.task_id,
            is_included_in_plan=entry.is_included_in_plan,
            notes=entry.notes,
        )
        updated = await self._cycle_repo.increment_used_hours(cycle.id, duration)
        logger.info(
            "Recorded maintenance time: tenant=%s month=%s hours=%.2f used=%.2f",
            self._tenant_id,
            updated.month,
            duration,
            updated.used_hours,
        )
        return row

    # ------------------------------------------------------------------
    # Read projections
    # ------------------------------------------------------------------

    async def list_entries_for_current_cycle(self) -> list[MaintenanceTimeEntryTable]:
        """Entries charged against the current cycle, newest date first."""
        cycle = await self.get_or_create_current_cycle()
        return await self._entry_repo.list_for_cycle(cycle.id)

    async def list_entries_with_month(self) -> list[EntryWithMonth]:
        """Every entry of the tenant with its cycle month and task title."""
        rows = await self._entry_repo.list_with_month()
        return [
            EntryWithMonth(
                id=entry.id,
                date=entry.date,
                duration_hours=entry.duration_hours,
                notes=entry.notes,
                month=month,
                task_title=task_title,
            )
            for entry, month, task_title in rows
        ]

    async def list_cycles(self) -> list[MaintenanceCycleTable]:
        """All cycles of the tenant, most recent month first."""
        return await self._cycle_repo.list_all()

    @staticmethod
    def summarize(cycle: MaintenanceCycleTable) -> CycleSummary:
        """Derive totals for display; ``remaining`` may be negative."""
        total_available = cycle.base_hours + cycle.carried_hours
        return CycleSummary(
            month=cycle.month,
            base_hours=cycle.base_hours,
            carried_hours=cycle.carried_hours,
            used_hours=cycle.used_hours,
            total_available=total_available,
            remaining=total_available - cycle.used_hours,
        )
