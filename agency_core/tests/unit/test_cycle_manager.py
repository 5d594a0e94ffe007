"""Tests for the maintenance cycle engine against a real SQLite store."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agency_core.maintenance.cycle_manager import CycleManager
from agency_core.maintenance.errors import (
    CycleConflictError,
    HoursValidationError,
    TaskNotFoundError,
    TenantNotFoundError,
)
from agency_core.maintenance.models import CycleOverrides, TimeEntryInput
from agency_core.maintenance.months import FixedClock
from agency_core.maintenance.policy import non_negative_hours_policy
from agency_core.state.repository import (
    MaintenanceCycleRepository,
    MaintenanceTaskRepository,
    MaintenanceTimeEntryRepository,
    TenantRepository,
)
from agency_core.state.tables import MaintenanceCycleTable, MaintenanceTimeEntryTable, TenantTable

FEB = FixedClock(datetime(2025, 2, 14, 10, 0, tzinfo=UTC))
MAR = FixedClock(datetime(2025, 3, 5, 9, 30, tzinfo=UTC))


def _entry(hours: float, day: int = 5, month: int = 3, **kwargs: object) -> TimeEntryInput:
    return TimeEntryInput(date=datetime(2025, month, day, 12, 0, tzinfo=UTC), duration_hours=hours, **kwargs)


async def _count_cycles(session: AsyncSession, tenant_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(MaintenanceCycleTable).where(MaintenanceCycleTable.tenant_id == tenant_id)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# get_or_create_current_cycle
# ---------------------------------------------------------------------------


class TestGetOrCreateCurrentCycle:
    @pytest.mark.asyncio
    async def test_first_cycle_without_previous_has_no_carryover(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        cycle = await CycleManager(session, carry_tenant.id, clock=MAR).get_or_create_current_cycle()

        assert cycle.month == "2025-03"
        assert cycle.base_hours == 10.0
        assert cycle.carried_hours == 0.0
        assert cycle.used_hours == 0.0
        assert cycle.status == "open"

    @pytest.mark.asyncio
    async def test_carries_unused_hours_from_previous_month(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        feb = CycleManager(session, carry_tenant.id, clock=FEB)
        await feb.record_time_entry(_entry(4.0, day=10, month=2))
        await session.commit()

        mar = CycleManager(session, carry_tenant.id, clock=MAR)
        cycle = await mar.get_or_create_current_cycle()

        assert cycle.base_hours == 10.0
        assert cycle.carried_hours == 6.0
        assert mar.summarize(cycle).total_available == 16.0

    @pytest.mark.asyncio
    async def test_overdrawn_previous_month_carries_nothing(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        feb = CycleManager(session, carry_tenant.id, clock=FEB)
        await feb.record_time_entry(_entry(12.0, day=10, month=2))
        await session.commit()

        cycle = await CycleManager(session, carry_tenant.id, clock=MAR).get_or_create_current_cycle()

        assert cycle.carried_hours == 0.0

    @pytest.mark.asyncio
    async def test_mode_none_never_carries(self, session: AsyncSession, plain_tenant: TenantTable) -> None:
        await CycleManager(session, plain_tenant.id, clock=FEB).get_or_create_current_cycle()
        await session.commit()

        cycle = await CycleManager(session, plain_tenant.id, clock=MAR).get_or_create_current_cycle()

        assert cycle.carried_hours == 0.0

    @pytest.mark.asyncio
    async def test_only_looks_one_month_back(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        jan = FixedClock(datetime(2025, 1, 20, tzinfo=UTC))
        await CycleManager(session, carry_tenant.id, clock=jan).get_or_create_current_cycle()
        await session.commit()

        cycle = await CycleManager(session, carry_tenant.id, clock=MAR).get_or_create_current_cycle()

        assert cycle.carried_hours == 0.0

    @pytest.mark.asyncio
    async def test_year_rollover_carries_from_december(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        dec = FixedClock(datetime(2024, 12, 15, tzinfo=UTC))
        await CycleManager(session, carry_tenant.id, clock=dec).record_time_entry(
            TimeEntryInput(date=datetime(2024, 12, 15, tzinfo=UTC), duration_hours=3.0)
        )
        await session.commit()

        jan = FixedClock(datetime(2025, 1, 2, tzinfo=UTC))
        cycle = await CycleManager(session, carry_tenant.id, clock=jan).get_or_create_current_cycle()

        assert cycle.month == "2025-01"
        assert cycle.carried_hours == 7.0

    @pytest.mark.asyncio
    async def test_unset_plan_hours_default_to_zero(self, session: AsyncSession) -> None:
        await TenantRepository(session).create("No Plan Co", tenant_id="t-noplan")
        await session.commit()

        cycle = await CycleManager(session, "t-noplan", clock=MAR).get_or_create_current_cycle()

        assert cycle.base_hours == 0.0
        assert cycle.carried_hours == 0.0

    @pytest.mark.asyncio
    async def test_repeated_calls_return_same_cycle(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        first = await manager.get_or_create_current_cycle()
        second = await manager.get_or_create_current_cycle()

        assert first.id == second.id
        assert await _count_cycles(session, carry_tenant.id) == 1

    @pytest.mark.asyncio
    async def test_plan_change_does_not_touch_existing_cycle(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        await manager.get_or_create_current_cycle()
        carry_tenant.maintenance_hours_per_month = 25.0
        await session.commit()

        cycle = await manager.get_or_create_current_cycle()

        assert cycle.base_hours == 10.0

    @pytest.mark.asyncio
    async def test_unknown_tenant_raises(self, session: AsyncSession) -> None:
        with pytest.raises(TenantNotFoundError):
            await CycleManager(session, "t-missing", clock=MAR).get_or_create_current_cycle()

    @pytest.mark.asyncio
    async def test_conflict_after_exhausting_retries(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR, conflict_retries=2)
        manager._cycle_repo = AsyncMock(spec=MaintenanceCycleRepository)
        manager._cycle_repo.get_by_month.return_value = None
        manager._cycle_repo.insert_if_absent.return_value = False

        with pytest.raises(CycleConflictError) as exc_info:
            await manager.get_or_create_current_cycle()

        assert exc_info.value.month == "2025-03"
        assert manager._cycle_repo.insert_if_absent.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_creator_row_is_reused(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        # Another writer inserted the row between our first read and our insert.
        other = MaintenanceCycleRepository(session, carry_tenant.id)
        real_get = other.get_by_month
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        calls = {"n": 0}

        async def _stale_first_read(month: str) -> MaintenanceCycleTable | None:
            calls["n"] += 1
            if calls["n"] == 1:
                await other.insert_if_absent(month, base_hours=99.0, carried_hours=0.0)
                return None
            return await real_get(month)

        manager._cycle_repo.get_by_month = _stale_first_read  # type: ignore[method-assign]

        cycle = await manager.get_or_create_current_cycle()

        assert cycle.base_hours == 99.0
        assert await _count_cycles(session, carry_tenant.id) == 1


# ---------------------------------------------------------------------------
# update_cycle
# ---------------------------------------------------------------------------


class TestUpdateCycle:
    @pytest.mark.asyncio
    async def test_only_supplied_fields_change(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        await manager.record_time_entry(_entry(2.0))

        cycle = await manager.update_cycle(CycleOverrides(base_hours=20.0))

        assert cycle.base_hours == 20.0
        assert cycle.carried_hours == 0.0
        assert cycle.used_hours == 2.0

    @pytest.mark.asyncio
    async def test_creates_cycle_when_absent(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        cycle = await CycleManager(session, carry_tenant.id, clock=MAR).update_cycle(
            CycleOverrides(carried_hours=4.0)
        )

        assert cycle.month == "2025-03"
        assert cycle.base_hours == 10.0
        assert cycle.carried_hours == 4.0

    @pytest.mark.asyncio
    async def test_permissive_policy_accepts_negative(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        cycle = await CycleManager(session, carry_tenant.id, clock=MAR).update_cycle(CycleOverrides(used_hours=-1.0))

        assert cycle.used_hours == -1.0

    @pytest.mark.asyncio
    async def test_strict_policy_rejects_negative(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR, hours_policy=non_negative_hours_policy)

        with pytest.raises(HoursValidationError):
            await manager.update_cycle(CycleOverrides(base_hours=-5.0))

        cycle = await manager.get_or_create_current_cycle()
        assert cycle.base_hours == 10.0

    @pytest.mark.asyncio
    async def test_empty_override_is_a_no_op(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        cycle = await CycleManager(session, carry_tenant.id, clock=MAR).update_cycle(CycleOverrides())

        assert (cycle.base_hours, cycle.carried_hours, cycle.used_hours) == (10.0, 0.0, 0.0)


# ---------------------------------------------------------------------------
# record_time_entry
# ---------------------------------------------------------------------------


class TestRecordTimeEntry:
    @pytest.mark.asyncio
    async def test_increments_used_hours(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        await manager.update_cycle(CycleOverrides(used_hours=2.0))

        entry = await manager.record_time_entry(_entry(1.5, notes="Plugin updates"))
        cycle = await manager.get_or_create_current_cycle()

        assert entry.cycle_id == cycle.id
        assert entry.duration_hours == 1.5
        assert entry.notes == "Plugin updates"
        assert entry.is_included_in_plan is True
        assert cycle.used_hours == 3.5

    @pytest.mark.asyncio
    async def test_out_of_plan_entry_still_counts(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        entry = await manager.record_time_entry(_entry(2.0, is_included_in_plan=False))
        cycle = await manager.get_or_create_current_cycle()

        assert entry.is_included_in_plan is False
        assert cycle.used_hours == 2.0

    @pytest.mark.asyncio
    async def test_entry_binds_to_current_month_not_entry_date(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        entry = await manager.record_time_entry(_entry(1.0, day=27, month=2))
        cycle = await manager.get_or_create_current_cycle()

        assert cycle.month == "2025-03"
        assert entry.cycle_id == cycle.id

    @pytest.mark.asyncio
    async def test_overage_gives_negative_remaining(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        await manager.record_time_entry(_entry(12.5))
        summary = manager.summarize(await manager.get_or_create_current_cycle())

        assert summary.remaining == -2.5
        assert summary.display_remaining == 0.0

    @pytest.mark.asyncio
    async def test_rejected_duration_writes_nothing(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR, hours_policy=non_negative_hours_policy)

        with pytest.raises(HoursValidationError):
            await manager.record_time_entry(_entry(-1.0))

        result = await session.execute(select(func.count()).select_from(MaintenanceTimeEntryTable))
        assert result.scalar_one() == 0
        assert (await manager.get_or_create_current_cycle()).used_hours == 0.0

    @pytest.mark.asyncio
    async def test_unknown_task_rejected(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)

        with pytest.raises(TaskNotFoundError):
            await manager.record_time_entry(_entry(1.0, task_id="nope"))

        result = await session.execute(select(func.count()).select_from(MaintenanceTimeEntryTable))
        assert result.scalar_one() == 0
        assert (await manager.get_or_create_current_cycle()).used_hours == 0.0

    @pytest.mark.asyncio
    async def test_other_tenants_task_rejected(
        self, session: AsyncSession, carry_tenant: TenantTable, plain_tenant: TenantTable
    ) -> None:
        foreign = await MaintenanceTaskRepository(session, plain_tenant.id).create("Birch private task")

        with pytest.raises(TaskNotFoundError, match=foreign.id):
            await CycleManager(session, carry_tenant.id, clock=MAR).record_time_entry(_entry(1.0, task_id=foreign.id))

    @pytest.mark.asyncio
    async def test_rollback_discards_entry_and_increment(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        await manager.get_or_create_current_cycle()
        await session.commit()

        await manager.record_time_entry(_entry(3.0))
        await session.rollback()

        result = await session.execute(select(func.count()).select_from(MaintenanceTimeEntryTable))
        assert result.scalar_one() == 0
        assert (await manager.get_or_create_current_cycle()).used_hours == 0.0

    @pytest.mark.asyncio
    async def test_later_entries_for_old_month_do_not_change_snapshot(
        self, session: AsyncSession, carry_tenant: TenantTable
    ) -> None:
        feb = CycleManager(session, carry_tenant.id, clock=FEB)
        feb_cycle = await feb.get_or_create_current_cycle()
        await session.commit()

        mar = CycleManager(session, carry_tenant.id, clock=MAR)
        mar_cycle = await mar.get_or_create_current_cycle()
        assert mar_cycle.carried_hours == 10.0

        await MaintenanceCycleRepository(session, carry_tenant.id).increment_used_hours(feb_cycle.id, 8.0)
        await session.commit()

        mar_cycle = await mar.get_or_create_current_cycle()
        assert mar_cycle.carried_hours == 10.0


# ---------------------------------------------------------------------------
# Read projections
# ---------------------------------------------------------------------------


class TestConcurrentWriters:
    """Separate sessions racing on the same tenant and month."""

    @pytest.mark.asyncio
    async def test_parallel_entries_lose_no_hours(
        self, session_factory: async_sessionmaker[AsyncSession], carry_tenant: TenantTable
    ) -> None:
        writers = 8

        async def _log() -> None:
            async with session_factory() as s:
                await CycleManager(s, carry_tenant.id, clock=MAR).record_time_entry(_entry(1.5))
                await s.commit()

        await asyncio.gather(*(_log() for _ in range(writers)))

        async with session_factory() as s:
            entries = await s.execute(select(func.count()).select_from(MaintenanceTimeEntryTable))
            cycle = await MaintenanceCycleRepository(s, carry_tenant.id).get_by_month("2025-03")
            assert await _count_cycles(s, carry_tenant.id) == 1

        assert entries.scalar_one() == writers
        assert cycle is not None
        assert cycle.used_hours == pytest.approx(writers * 1.5)

    @pytest.mark.asyncio
    async def test_parallel_first_reads_create_one_cycle(
        self, session_factory: async_sessionmaker[AsyncSession], carry_tenant: TenantTable
    ) -> None:
        async def _open() -> str:
            async with session_factory() as s:
                cycle = await CycleManager(s, carry_tenant.id, clock=MAR).get_or_create_current_cycle()
                await s.commit()
                return cycle.id

        ids = await asyncio.gather(*(_open() for _ in range(6)))

        async with session_factory() as s:
            assert await _count_cycles(s, carry_tenant.id) == 1
        assert len(set(ids)) == 1


class TestEntryListings:
    @pytest.mark.asyncio
    async def test_current_cycle_entries_newest_first(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        manager = CycleManager(session, carry_tenant.id, clock=MAR)
        await manager.record_time_entry(_entry(1.0, day=2))
        await manager.record_time_entry(_entry(2.0, day=4))
        await manager.record_time_entry(_entry(0.5, day=3))

        entries = await manager.list_entries_for_current_cycle()

        assert [e.duration_hours for e in entries] == [2.0, 0.5, 1.0]

    @pytest.mark.asyncio
    async def test_current_cycle_excludes_other_months(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        await CycleManager(session, carry_tenant.id, clock=FEB).record_time_entry(_entry(1.0, day=10, month=2))
        mar = CycleManager(session, carry_tenant.id, clock=MAR)
        await mar.record_time_entry(_entry(2.0))

        entries = await mar.list_entries_for_current_cycle()

        assert [e.duration_hours for e in entries] == [2.0]

    @pytest.mark.asyncio
    async def test_entries_with_month_and_task_title(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        task = await MaintenanceTaskRepository(session, carry_tenant.id).create("Security patching")
        await CycleManager(session, carry_tenant.id, clock=FEB).record_time_entry(_entry(1.0, day=10, month=2))
        mar = CycleManager(session, carry_tenant.id, clock=MAR)
        await mar.record_time_entry(_entry(2.0, task_id=task.id, notes="Core update"))

        entries = await mar.list_entries_with_month()

        assert [(e.month, e.task_title) for e in entries] == [("2025-03", "Security patching"), ("2025-02", None)]
        assert entries[0].notes == "Core update"

    @pytest.mark.asyncio
    async def test_entries_are_tenant_scoped(
        self, session: AsyncSession, carry_tenant: TenantTable, plain_tenant: TenantTable
    ) -> None:
        await CycleManager(session, carry_tenant.id, clock=MAR).record_time_entry(_entry(1.0))

        assert await CycleManager(session, plain_tenant.id, clock=MAR).list_entries_with_month() == []

    @pytest.mark.asyncio
    async def test_task_title_never_crosses_tenants(
        self, session: AsyncSession, carry_tenant: TenantTable, plain_tenant: TenantTable
    ) -> None:
        foreign = await MaintenanceTaskRepository(session, plain_tenant.id).create("Birch private task")
        cycle = await CycleManager(session, carry_tenant.id, clock=MAR).get_or_create_current_cycle()
        # Written below the engine, which would refuse the foreign task.
        await MaintenanceTimeEntryRepository(session, carry_tenant.id).create(
            cycle.id, date=datetime(2025, 3, 5, tzinfo=UTC), duration_hours=1.0, task_id=foreign.id
        )

        entries = await CycleManager(session, carry_tenant.id, clock=MAR).list_entries_with_month()

        assert [e.task_title for e in entries] == [None]

    @pytest.mark.asyncio
    async def test_list_cycles_most_recent_first(self, session: AsyncSession, carry_tenant: TenantTable) -> None:
        await CycleManager(session, carry_tenant.id, clock=FEB).get_or_create_current_cycle()
        await CycleManager(session, carry_tenant.id, clock=MAR).get_or_create_current_cycle()

        cycles = await CycleManager(session, carry_tenant.id).list_cycles()

        assert [c.month for c in cycles] == ["2025-03", "2025-02"]


class TestSummarize:
    def test_totals(self) -> None:
        cycle = MaintenanceCycleTable(month="2025-03", base_hours=10.0, carried_hours=6.0, used_hours=4.0)

        summary = CycleManager.summarize(cycle)

        assert summary.total_available == 16.0
        assert summary.remaining == 12.0
        assert summary.month == "2025-03"

    def test_current_month_key_follows_clock(self) -> None:
        manager = CycleManager(AsyncMock(), "t-any", clock=FEB)

        assert manager.current_month_key() == "2025-02"
