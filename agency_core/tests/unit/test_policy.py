"""Tests for carryover arithmetic and hours policies."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from agency_core.maintenance.errors import HoursValidationError
from agency_core.maintenance.policy import (
    carryover_enabled,
    compute_carryover,
    get_hours_policy,
    non_negative_hours_policy,
    permissive_hours_policy,
    remaining_hours,
)


def _cycle(base: float, carried: float, used: float) -> SimpleNamespace:
    return SimpleNamespace(base_hours=base, carried_hours=carried, used_hours=used)


class TestCarryoverEnabled:
    def test_carry_literal(self) -> None:
        assert carryover_enabled("carry") is True

    @pytest.mark.parametrize("mode", [None, "none", "CARRY", " carry", "rollover", ""])
    def test_anything_else_disables(self, mode: str | None) -> None:
        assert carryover_enabled(mode) is False


class TestComputeCarryover:
    def test_unused_hours_roll_forward(self) -> None:
        assert compute_carryover("carry", _cycle(10, 0, 4)) == 6

    def test_previous_carried_hours_count(self) -> None:
        assert compute_carryover("carry", _cycle(10, 5, 3)) == 12

    def test_overdrawn_previous_floors_at_zero(self) -> None:
        assert compute_carryover("carry", _cycle(10, 0, 12)) == 0

    def test_exactly_used_up(self) -> None:
        assert compute_carryover("carry", _cycle(10, 0, 10)) == 0

    def test_no_previous_cycle(self) -> None:
        assert compute_carryover("carry", None) == 0

    def test_mode_none_ignores_previous(self) -> None:
        assert compute_carryover("none", _cycle(10, 0, 0)) == 0

    def test_remaining_can_be_negative(self) -> None:
        assert remaining_hours(_cycle(10, 0, 12)) == -2


class TestHoursPolicies:
    def test_permissive_accepts_negative(self) -> None:
        assert permissive_hours_policy("used_hours", -3.0) == -3.0

    def test_non_negative_accepts_zero(self) -> None:
        assert non_negative_hours_policy("base_hours", 0.0) == 0.0

    def test_non_negative_rejects_negative(self) -> None:
        with pytest.raises(HoursValidationError) as exc_info:
            non_negative_hours_policy("duration_hours", -1.5)
        assert exc_info.value.field == "duration_hours"
        assert isinstance(exc_info.value, ValueError)

    def test_lookup_by_name(self) -> None:
        assert get_hours_policy("permissive") is permissive_hours_policy
        assert get_hours_policy("non_negative") is non_negative_hours_policy

    def test_unknown_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown hours policy"):
            get_hours_policy("strict")
