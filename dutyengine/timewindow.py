"""
Duty window arithmetic on minute-of-day integers.

A window whose end is at or before its start wraps past midnight. That includes
``start == end``, which is therefore on duty at every minute of the day.
"""

from typing import Any, NamedTuple

MINUTES_PER_DAY = 24 * 60


class WindowStatus(NamedTuple):
    on_duty: bool
    ended: bool


def parse_time_of_day(value: Any) -> int | None:
    """Parse "HH:MM" into minutes since midnight, or None if malformed."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


class TimeWindow(NamedTuple):
    start: int
    end: int

    @classmethod
    def parse(cls, start_time: Any, end_time: Any) -> "TimeWindow | None":
        start = parse_time_of_day(start_time)
        end = parse_time_of_day(end_time)
        if start is None or end is None:
            return None
        return cls(start, end)

    @property
    def overnight(self) -> bool:
        return self.end <= self.start

    def covers(self, now_minutes: int) -> bool:
        if self.overnight:
            return now_minutes >= self.start or now_minutes < self.end
        return self.start <= now_minutes < self.end

    def has_ended(
        self, now_minutes: int, *, anchored_yesterday: bool = False
    ) -> bool:
        # yesterday's overnight shifts end this morning, today's same-day
        if anchored_yesterday:
            return self.overnight and now_minutes >= self.end
        return not self.overnight and now_minutes >= self.end


def is_on_duty(now_minutes: int, start: int, end: int) -> WindowStatus:
    window = TimeWindow(start, end)
    return WindowStatus(
        on_duty=window.covers(now_minutes),
        ended=window.has_ended(now_minutes),
    )
