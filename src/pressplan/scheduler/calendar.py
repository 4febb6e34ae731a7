"""Working-hours calendar: working days, windows, breaks and the next working instant."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from pressplan.exceptions import BreakOverlapError, SchedulingHorizonExceededError
from pressplan.timezones import at_local_time, ensure_utc, local_date

from .config import CalendarConfig


Interval = tuple[datetime, datetime]


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (floored, never negative)."""
    return max(0, int((end - start).total_seconds() // 60))


def ceil_to_minute(instant: datetime) -> datetime:
    """Round an instant up to the next whole minute."""
    if instant.second == 0 and instant.microsecond == 0:
        return instant
    return instant.replace(second=0, microsecond=0) + timedelta(minutes=1)


class CalendarService:
    """Answers calendar questions in UTC instants for a plant-local working calendar.

    Shift, break and holiday configuration is expressed in plant-local wall
    time; every value this service returns is a UTC instant. Day-level
    results are cached because the engine asks about the same days repeatedly.
    """

    def __init__(self, config: CalendarConfig | None = None, horizon_days: int = 365) -> None:
        self.config = config or CalendarConfig()
        self.horizon_days = horizon_days
        self._holidays = {h.date for h in self.config.holidays}
        self._segments_cache: dict[date, list[Interval]] = {}

    @property
    def timezone(self) -> str:
        return self.config.timezone

    def local_date(self, instant: datetime) -> date:
        """Plant-local date an instant falls on."""
        return local_date(instant, self.config.timezone)

    def is_holiday(self, day: date) -> bool:
        return day in self._holidays

    def is_working_day(self, day: date) -> bool:
        """False for weekdays without a working shift and for registered holidays."""
        if self.is_holiday(day):
            return False
        return any(
            shift.day_of_week == day.weekday() and shift.is_working_day
            for shift in self.config.shifts
        )

    def working_window(self, day: date) -> Interval | None:
        """Open and close instants of the day, or None on non-working days.

        An active busy period covering the date replaces the shift window.
        """
        if not self.is_working_day(day):
            return None

        tz = self.config.timezone
        for busy in self.config.busy_periods:
            if busy.applies_to(day):
                return (
                    at_local_time(day, busy.work_start, tz),
                    at_local_time(day, busy.work_end, tz),
                )

        shifts = self._shift_intervals(day)
        return (shifts[0][0], max(end for _, end in shifts))

    def _shift_intervals(self, day: date) -> list[Interval]:
        """Shift windows of the day, merged where they overlap or touch."""
        tz = self.config.timezone
        raw = sorted(
            (at_local_time(day, s.start, tz), at_local_time(day, s.end, tz))
            for s in self.config.shifts
            if s.day_of_week == day.weekday() and s.is_working_day
        )
        merged: list[Interval] = []
        for start, end in raw:
            if merged and start <= merged[-1][1]:
                merged[-1] = (merged[-1][0], max(merged[-1][1], end))
            else:
                merged.append((start, end))
        return merged

    def break_intervals(self, day: date) -> list[Interval]:
        """Configured breaks for the date as UTC intervals, sorted by start."""
        tz = self.config.timezone
        intervals: list[Interval] = []
        for brk in self.config.breaks:
            start = at_local_time(day, brk.start, tz)
            intervals.append((start, start + timedelta(minutes=brk.minutes)))
        return sorted(intervals)

    def working_segments(self, day: date) -> list[Interval]:
        """Usable intervals of the day: the working window with breaks carved out."""
        if day in self._segments_cache:
            return self._segments_cache[day]

        window = self.working_window(day)
        segments: list[Interval] = []
        if window is not None:
            if any(busy.applies_to(day) for busy in self.config.busy_periods):
                segments = [window]
            else:
                segments = self._shift_intervals(day)
            for brk_start, brk_end in self.break_intervals(day):
                carved: list[Interval] = []
                for seg_start, seg_end in segments:
                    if brk_end <= seg_start or brk_start >= seg_end:
                        carved.append((seg_start, seg_end))
                        continue
                    if brk_start > seg_start:
                        carved.append((seg_start, brk_start))
                    if brk_end < seg_end:
                        carved.append((brk_end, seg_end))
                segments = carved

        self._segments_cache[day] = segments
        return segments

    def working_minutes(self, day: date) -> int:
        """Bookable minutes of the day (window length minus breaks)."""
        return sum(minutes_between(start, end) for start, end in self.working_segments(day))

    def segment_at(self, instant: datetime) -> Interval | None:
        """The working segment containing the instant (end exclusive), if any."""
        instant = ensure_utc(instant)
        for start, end in self.working_segments(self.local_date(instant)):
            if start <= instant < end:
                return (start, end)
        return None

    def next_working_instant(self, instant: datetime) -> datetime:
        """First instant at or after ``instant`` that lies inside a working segment.

        Returns the instant unchanged when it is already working time. Inside a
        break this is the end of the break; outside the window it is the start
        of the next working day's window.

        Raises:
            SchedulingHorizonExceededError: If no working time exists within the horizon
        """
        instant = ensure_utc(instant)
        first_day = self.local_date(instant)
        for offset in range(self.horizon_days + 1):
            day = first_day + timedelta(days=offset)
            for start, end in self.working_segments(day):
                if end > instant:
                    return max(start, instant)

        raise SchedulingHorizonExceededError(
            f"No working time within {self.horizon_days} days of {instant.isoformat()}"
        )

    def next_working_day_start(self, day: date) -> datetime:
        """Start of the first working segment on a day strictly after ``day``."""
        next_day = day + timedelta(days=1)
        return self.next_working_instant(at_local_time(next_day, time.min, self.timezone))

    def check_clear_of_breaks(self, start: datetime, end: datetime) -> None:
        """Reject an interval that intersects a configured break.

        Raises:
            BreakOverlapError: If [start, end) overlaps any break on the days it spans
        """
        day = self.local_date(start)
        last_day = self.local_date(end)
        while day <= last_day:
            for brk_start, brk_end in self.break_intervals(day):
                if start < brk_end and end > brk_start:
                    raise BreakOverlapError(
                        f"Placement {start.isoformat()}-{end.isoformat()} overlaps break "
                        f"{brk_start.isoformat()}-{brk_end.isoformat()}"
                    )
            day += timedelta(days=1)
