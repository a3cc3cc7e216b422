"""Calendar period boundaries used to name and date rolling shards."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Tuple


class PeriodicMonth(str, Enum):
    """How much time a single rolling shard covers."""

    MONTH = "month"
    QUARTER = "quarter"
    HALF_YEAR = "half-year"
    YEAR = "year"

    @property
    def months(self) -> int:
        return _PERIOD_MONTHS[self]


_PERIOD_MONTHS = {
    PeriodicMonth.MONTH: 1,
    PeriodicMonth.QUARTER: 3,
    PeriodicMonth.HALF_YEAR: 6,
    PeriodicMonth.YEAR: 12,
}


def pick_month(when: datetime, months: int, round_up: bool) -> datetime:
    """
    Snap ``when`` to the first instant of a ``months``-long period (UTC).

    Rounding down returns the start of the period containing ``when``;
    rounding up returns the start of the following period, even when
    ``when`` already sits exactly on a boundary.
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    when = when.astimezone(timezone.utc)

    index = months * ((1 if round_up else 0) + (when.month - 1) // months)
    year = when.year + index // 12
    return datetime(year, index % 12 + 1, 1, tzinfo=timezone.utc)


def pick_periodic_month(
    when: datetime, period: PeriodicMonth | str, round_up: bool
) -> Tuple[datetime, str]:
    """
    Return the nearest period boundary and its shard suffix.

    Suffixes are ``YYYY-MM`` (month), ``YYYY-qN`` (quarter), ``YYYY-hN``
    (half-year) and ``YYYY`` (year).
    """
    period = PeriodicMonth(period)
    start = pick_month(when, period.months, round_up)

    if period is PeriodicMonth.MONTH:
        return start, f"{start.year:04d}-{start.month:02d}"
    if period is PeriodicMonth.QUARTER:
        return start, f"{start.year:04d}-q{1 + (start.month - 1) // 3}"
    if period is PeriodicMonth.HALF_YEAR:
        return start, f"{start.year:04d}-h{1 + (start.month - 1) // 6}"
    return start, f"{start.year:04d}"


__all__ = ["PeriodicMonth", "pick_month", "pick_periodic_month"]
