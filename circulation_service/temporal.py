"""
Reference date handling.

Reports never read the wall clock themselves. The HTTP layer asks a clock
for today's date once per request and threads a ``TemporalContext``
through the builders, so tests and demos can pin the date.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union


@dataclass(frozen=True)
class TemporalContext:
    today: date

    @classmethod
    def of(cls, value: Union[date, datetime]) -> "TemporalContext":
        if isinstance(value, datetime):
            value = value.date()
        return cls(today=value)

    def cutoff(self, days: int) -> date:
        """Lower bound of a trailing window; members satisfy ``d >= cutoff``."""
        return self.today - timedelta(days=days)

    @property
    def last_7(self) -> date:
        return self.cutoff(7)

    @property
    def last_30(self) -> date:
        return self.cutoff(30)

    @property
    def last_90(self) -> date:
        return self.cutoff(90)


class SystemClock:
    """Local calendar date of the host."""

    def today(self) -> date:
        return date.today()


class FixedClock:
    """Always answers the same date."""

    def __init__(self, fixed: date) -> None:
        self._fixed = fixed

    def today(self) -> date:
        return self._fixed


def as_date(value: Optional[Union[date, datetime]]) -> Optional[date]:
    """Calendar date of a timestamp; time of day is dropped."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def clock_from_config(config) -> Union[SystemClock, FixedClock]:
    pinned = config.get("REFERENCE_DATE")
    if pinned:
        return FixedClock(date.fromisoformat(pinned))
    return SystemClock()


def as_timestamp(value: Union[date, datetime]) -> datetime:
    """Promote a bare date to midnight so it compares with datetimes."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)
