"""Value types exchanged with the cycle engine.

ORM rows live in :mod:`agency_core.state.tables`; these Pydantic models
describe inputs (overrides, time entries) and derived read projections
(summaries, entry listings) independent of the storage layer.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class CycleStatus(str, Enum):
    """Lifecycle tag of a maintenance cycle.

    Only ``OPEN`` exists today; a cycle row is open from the moment it is
    created.  New members can be added without changing how the column is
    read or written.
    """

    OPEN = "open"


class CarryoverMode(str, Enum):
    """Tenant policy for unused hours at the end of a month."""

    CARRY = "carry"
    NONE = "none"


class CycleOverrides(BaseModel):
    """Admin override of the current cycle's hour buckets.

    ``None`` means "leave unchanged".
    """

    base_hours: float | None = None
    carried_hours: float | None = None
    used_hours: float | None = None

    def supplied(self) -> dict[str, float]:
        """Return only the fields that were explicitly supplied."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class TimeEntryInput(BaseModel):
    """A logged unit of maintenance work, before it is charged to a cycle."""

    date: datetime
    duration_hours: float
    task_id: str | None = None
    is_included_in_plan: bool = True
    notes: str | None = Field(default=None, max_length=2000)


class CycleSummary(BaseModel):
    """Tenant-facing view of a cycle with derived totals.

    ``remaining`` is not clamped: overage yields a negative value and it is
    up to the display layer to show zero.
    """

    month: str
    base_hours: float
    carried_hours: float
    used_hours: float
    total_available: float
    remaining: float

    @property
    def display_remaining(self) -> float:
        return max(0.0, self.remaining)


class EntryWithMonth(BaseModel):
    """Time entry projected with its cycle month and task title."""

    id: str
    date: datetime
    duration_hours: float
    notes: str | None = None
    month: str
    task_title: str | None = None
