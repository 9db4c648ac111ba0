"""
stock_engines.report_window -- reporting period resolution.

Responsibility:
    Turns a period preset (today, week, month, year, all, custom) and an
    explicit "today" into an inclusive date window.  Periods run from the
    start of the period up to and including today; ``ALL`` is unbounded.

Architecture position:
    Engines -- pure calculation, zero I/O.  Never reads the system clock;
    callers pass ``today`` from their injected Clock.

Invariants enforced:
    - Weeks start on the configured weekday (Saturday by default).
    - start <= end whenever both are set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum


class ReportPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"
    CUSTOM = "custom"


WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

DEFAULT_WEEK_START = "saturday"


@dataclass(frozen=True)
class ReportWindow:
    """Inclusive date range; a None bound is open."""

    start: date | None
    end: date | None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    def contains(self, moment: datetime | date) -> bool:
        day = moment.date() if isinstance(moment, datetime) else moment
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    @property
    def bounds(self) -> tuple[datetime | None, datetime | None]:
        """Half-open datetime bounds ``[start 00:00, end+1 00:00)`` for SQL filters."""
        lower = datetime.combine(self.start, datetime.min.time()) if self.start else None
        upper = (
            datetime.combine(self.end + timedelta(days=1), datetime.min.time())
            if self.end
            else None
        )
        return lower, upper


ALL_TIME = ReportWindow(start=None, end=None)


def start_of_week(day: date, week_start: str = DEFAULT_WEEK_START) -> date:
    try:
        first = WEEKDAYS[week_start.lower()]
    except KeyError:
        raise ValueError(f"Unknown week start: {week_start!r}") from None
    return day - timedelta(days=(day.weekday() - first) % 7)


def resolve_window(
    period: ReportPeriod | str,
    today: date,
    start: date | None = None,
    end: date | None = None,
    week_start: str = DEFAULT_WEEK_START,
) -> ReportWindow:
    """
    Resolve a period preset against ``today``.

    ``start`` and ``end`` are only read for CUSTOM; a missing custom start
    is open and a missing custom end means today.
    """
    period = ReportPeriod(period)
    if period == ReportPeriod.TODAY:
        return ReportWindow(start=today, end=today)
    if period == ReportPeriod.WEEK:
        return ReportWindow(start=start_of_week(today, week_start), end=today)
    if period == ReportPeriod.MONTH:
        return ReportWindow(start=today.replace(day=1), end=today)
    if period == ReportPeriod.YEAR:
        return ReportWindow(start=today.replace(month=1, day=1), end=today)
    if period == ReportPeriod.CUSTOM:
        return ReportWindow(start=start, end=end if end is not None else today)
    return ALL_TIME
