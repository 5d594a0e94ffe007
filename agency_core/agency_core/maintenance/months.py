"""Calendar month keys and the clock the cycle engine reads them from.

A month key is the string ``"YYYY-MM"`` (zero-padded month) of a UTC
instant.  Month keys are the natural clock of the maintenance system: one
cycle exists per tenant per key, and carryover always looks exactly one
calendar month back.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Protocol

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """A clock pinned to a single instant.

    Used by tests and by the CLI ``--as-of`` option to address a specific
    billing month deterministically.
    """

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant


def month_key(instant: datetime) -> str:
    """Return the UTC ``"YYYY-MM"`` key for *instant*.

    Naive datetimes are interpreted as UTC.  Aware datetimes are converted,
    so ``2025-03-01T00:30+02:00`` belongs to ``"2025-02"``.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    utc = instant.astimezone(UTC)
    return f"{utc.year:04d}-{utc.month:02d}"


def parse_month_key(key: str) -> tuple[int, int]:
    """Split a month key into ``(year, month)``.

    Raises
    ------
    ValueError
        If *key* is not of the form ``YYYY-MM`` with a month in 1..12.
    """
    match = _MONTH_KEY_RE.match(key)
    if match is None:
        raise ValueError(f"Invalid month key {key!r}: expected 'YYYY-MM'")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month key {key!r}: month must be 01-12")
    return year, month


def _shift(key: str, months: int) -> str:
    year, month = parse_month_key(key)
    # Work in a zero-based month index so divmod handles year rollover.
    index = year * 12 + (month - 1) + months
    new_year, new_month0 = divmod(index, 12)
    return f"{new_year:04d}-{new_month0 + 1:02d}"


def previous_month_key(key: str) -> str:
    """Return the key of the calendar month before *key*."""
    return _shift(key, -1)
