"""
Date Range Resolver
===================
Turns a period selector (preset or custom) into a concrete inclusive
[start, end] pair normalized to local calendar-day boundaries.

  start → 00:00:00.000 of its local day
  end   → 23:59:59.999 of its local day

`all_time` starts at a fixed sentinel date and is open-ended. Sources skip
the lower bound of any range starting exactly at the sentinel instant, and
skip the upper bound only for an open-ended range, so an all-time read has
no date filter at all while a custom range always keeps its chosen end.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Optional
from zoneinfo import ZoneInfo

LOCAL_TZ = ZoneInfo(os.environ.get("DASHBOARD_TIMEZONE", "Europe/London"))

ALL_TIME_SENTINEL = date(2020, 1, 1)

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_END_OF_DAY = time(23, 59, 59, 999000)


class Period:
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    THIS_QUARTER = "this_quarter"
    THIS_YEAR = "this_year"
    LAST_YEAR = "last_year"
    ALL_TIME = "all_time"
    CUSTOM = "custom"

    ALL = frozenset({THIS_MONTH, LAST_MONTH, THIS_QUARTER, THIS_YEAR,
                     LAST_YEAR, ALL_TIME, CUSTOM})

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls.ALL


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime
    open_ended: bool = False

    @property
    def has_lower_bound(self) -> bool:
        return self.start != start_of_day(ALL_TIME_SENTINEL)

    @property
    def has_upper_bound(self) -> bool:
        return not self.open_ended

    @property
    def is_all_time(self) -> bool:
        """True when neither bound applies."""
        return not (self.has_lower_bound or self.has_upper_bound)

    def start_iso(self) -> str:
        return self.start.isoformat()

    def end_iso(self) -> str:
        return self.end.isoformat()

    def contains(self, moment: Optional[datetime]) -> bool:
        if moment is None:
            return False
        return self.start <= moment <= self.end


def local_now() -> datetime:
    return datetime.now(LOCAL_TZ)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=LOCAL_TZ)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, _END_OF_DAY, tzinfo=LOCAL_TZ)


def add_months(d: date, months: int) -> date:
    """Calendar month arithmetic, pinned to day 1 of the target month."""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def _last_day_of_previous_month(d: date) -> date:
    return date.fromordinal(d.replace(day=1).toordinal() - 1)


def parse_calendar_date(value: str) -> date:
    """Parse a caller-supplied 'YYYY-MM-DD' as a local wall-clock day.

    Anything after the date part (time, offset) is ignored.
    """
    return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()


def resolve(
    period: str,
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DateRange:
    """Resolve a period selector into a normalized DateRange.

    Args:
        period: One of Period.ALL.
        custom_start / custom_end: 'YYYY-MM-DD' strings, only read for 'custom'.
            A missing bound falls back to today's default.
        now: Override for the current instant (tests).

    Raises:
        ValueError: unknown period or malformed custom date.
    """
    if not Period.is_valid(period):
        raise ValueError(f"Unknown period: {period}")

    now = (now or local_now()).astimezone(LOCAL_TZ)
    today = now.date()
    start_day = today
    end_day = today

    if period == Period.THIS_MONTH:
        start_day = today.replace(day=1)
    elif period == Period.LAST_MONTH:
        start_day = add_months(today, -1)
        end_day = _last_day_of_previous_month(today)
    elif period == Period.THIS_QUARTER:
        start_day = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
    elif period == Period.THIS_YEAR:
        start_day = date(today.year, 1, 1)
    elif period == Period.LAST_YEAR:
        start_day = date(today.year - 1, 1, 1)
        end_day = date(today.year - 1, 12, 31)
    elif period == Period.ALL_TIME:
        start_day = ALL_TIME_SENTINEL
    elif period == Period.CUSTOM:
        if custom_start:
            start_day = parse_calendar_date(custom_start)
        if custom_end:
            end_day = parse_calendar_date(custom_end)

    return DateRange(
        start=start_of_day(start_day),
        end=end_of_day(end_day),
        open_ended=period == Period.ALL_TIME,
    )


def six_month_window_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the month five months before the current one."""
    now = (now or local_now()).astimezone(LOCAL_TZ)
    return start_of_day(add_months(now.date(), -5))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a backing-store date/timestamp into an aware local datetime.

    Date-only strings are local midnight; naive timestamps are local wall
    clock; offset-bearing timestamps are converted. Unparsable → None.
    """
    if not value:
        return None
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, date):
            return start_of_day(value)
        else:
            s = str(value).strip()
            if len(s) == 10:
                return start_of_day(parse_calendar_date(s))
            if s.endswith("Z"):
                s = s[:-1] + "+00:00"
            dt = datetime.fromisoformat(s.replace(" ", "T", 1))
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=LOCAL_TZ)
    return dt.astimezone(LOCAL_TZ)
