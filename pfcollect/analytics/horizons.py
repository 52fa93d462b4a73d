from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta


@dataclass(frozen=True)
class Horizon:
    name: str
    days: int = 0
    months: int = 0
    tolerance_days: int = 0
    # fall back to anything older than the current date instead of older than the target
    fallback_before_current: bool = False

    def target(self, current: date) -> date:
        if self.months:
            return months_back(current, self.months)
        return current - timedelta(days=self.days)

    def window(self, current: date) -> tuple[date, date]:
        """Inclusive [start, end] around the target; never reaches the current date."""
        target = self.target(current)
        start = target - timedelta(days=self.tolerance_days)
        end = min(target + timedelta(days=self.tolerance_days), current - timedelta(days=1))
        return start, end


def months_back(value: date, months: int) -> date:
    """Shift back by whole months, clamping the day to the end of the target month."""
    index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


PREVIOUS = Horizon("previous", days=1, tolerance_days=6, fallback_before_current=True)

HORIZONS: tuple[Horizon, ...] = (
    Horizon("1w", days=7, tolerance_days=3),
    Horizon("1m", months=1, tolerance_days=5),
    Horizon("3m", months=3, tolerance_days=10),
    Horizon("6m", months=6, tolerance_days=15),
    Horizon("1y", months=12, tolerance_days=30),
)
