"""Carryover arithmetic and the hours-validation policy hook.

The engine accepts negative and overflowing hour values.  Every value
written by an admin override or a time entry passes through a single
:class:`HoursPolicy` so that validation can be tightened without touching
the accounting code.
"""

from __future__ import annotations

from typing import Protocol

from agency_core.maintenance.errors import HoursValidationError
from agency_core.maintenance.models import CarryoverMode


class CycleHours(Protocol):
    """Anything exposing the three hour buckets of a cycle."""

    base_hours: float
    carried_hours: float
    used_hours: float


class HoursPolicy(Protocol):
    def __call__(self, field: str, value: float) -> float: ...


def permissive_hours_policy(field: str, value: float) -> float:
    """Accept any value unchanged."""
    return value


def non_negative_hours_policy(field: str, value: float) -> float:
    """Reject negative hour values."""
    if value < 0:
        raise HoursValidationError(field, value, "must not be negative")
    return value


_POLICIES: dict[str, HoursPolicy] = {
    "permissive": permissive_hours_policy,
    "non_negative": non_negative_hours_policy,
}


def get_hours_policy(name: str) -> HoursPolicy:
    """Look up a named policy.

    Raises
    ------
    ValueError
        If *name* is not a registered policy.
    """
    try:
        return _POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown hours policy '{name}'. Valid policies: {sorted(_POLICIES)}") from None


def carryover_enabled(mode: str | None) -> bool:
    """Only the exact literal ``"carry"`` enables carryover."""
    return mode == CarryoverMode.CARRY.value


def remaining_hours(cycle: CycleHours) -> float:
    """Unused hours of *cycle*; negative when the cycle is overdrawn."""
    return cycle.base_hours + cycle.carried_hours - cycle.used_hours


def compute_carryover(mode: str | None, previous: CycleHours | None) -> float:
    """Hours that roll into a new cycle.

    Zero unless carryover is enabled and a cycle exists for the previous
    month; otherwise the previous cycle's remaining hours floored at zero.
    """
    if not carryover_enabled(mode) or previous is None:
        return 0.0
    remaining = remaining_hours(previous)
    return remaining if remaining > 0 else 0.0
