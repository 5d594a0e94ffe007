"""Monthly maintenance-hours accounting: month keys, carryover, and the cycle engine."""

from agency_core.maintenance.errors import (
    CycleConflictError,
    FeatureValidationError,
    HoursValidationError,
    MaintenanceError,
    TaskNotFoundError,
    TenantNotFoundError,
)
from agency_core.maintenance.models import (
    CarryoverMode,
    CycleOverrides,
    CycleStatus,
    CycleSummary,
    EntryWithMonth,
    TimeEntryInput,
)
from agency_core.maintenance.months import (
    Clock,
    FixedClock,
    SystemClock,
    month_key,
    previous_month_key,
)
from agency_core.maintenance.policy import (
    HoursPolicy,
    compute_carryover,
    get_hours_policy,
    non_negative_hours_policy,
    permissive_hours_policy,
)

__all__ = [
    "CarryoverMode",
    "Clock",
    "CycleConflictError",
    "CycleOverrides",
    "CycleStatus",
    "CycleSummary",
    "EntryWithMonth",
    "FeatureValidationError",
    "FixedClock",
    "HoursPolicy",
    "HoursValidationError",
    "MaintenanceError",
    "SystemClock",
    "TaskNotFoundError",
    "TenantNotFoundError",
    "TimeEntryInput",
    "compute_carryover",
    "get_hours_policy",
    "month_key",
    "non_negative_hours_policy",
    "permissive_hours_policy",
    "previous_month_key",
]
