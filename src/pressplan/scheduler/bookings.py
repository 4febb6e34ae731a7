"""Resource booking tracking utilities."""

import bisect
from datetime import datetime

from pressplan.logger import get_logger

from .calendar import Interval

logger = get_logger()


class ResourceBookings:
    """Tracks booked intervals on one resource as sorted, non-overlapping UTC intervals.

    Maintains the invariant that busy_periods is always sorted by start and
    contains no overlapping or touching periods, so lookups are binary searches.
    Intervals are half-open: ``[start, end)``.
    """

    def __init__(
        self,
        busy_periods: list[Interval] | None = None,
        resource_id: str = "",
    ) -> None:
        """Initialize with optional existing bookings.

        Args:
            busy_periods: Optional list of (start, end) intervals already booked
                on the resource (existing schedules of other jobs)
            resource_id: Resource id (for verbose logging)
        """
        self.busy_periods: list[Interval] = (
            self._merge_periods(busy_periods) if busy_periods else []
        )
        self.resource_id = resource_id

    @staticmethod
    def _merge_periods(periods: list[Interval]) -> list[Interval]:
        """Merge overlapping or touching periods into a sorted, non-overlapping list."""
        sorted_periods = sorted(periods, key=lambda x: x[0])
        merged: list[Interval] = [sorted_periods[0]]

        for start, end in sorted_periods[1:]:
            last_start, last_end = merged[-1]
            if start <= last_end:
                merged[-1] = (last_start, max(last_end, end))
            else:
                merged.append((start, end))

        return merged

    def copy(self) -> "ResourceBookings":
        """Create an independent copy (used to retry a stage against a clean state)."""
        new_bookings = ResourceBookings(resource_id=self.resource_id)
        new_bookings.busy_periods = list(self.busy_periods)
        return new_bookings

    def add_busy_period(self, start: datetime, end: datetime) -> None:
        """Book ``[start, end)``, merging with neighbouring bookings."""
        if end <= start:
            return

        idx = bisect.bisect_left(self.busy_periods, start, key=lambda x: x[0])

        if idx > 0:
            prev_start, prev_end = self.busy_periods[idx - 1]
            if prev_end >= start:
                start = prev_start
                end = max(prev_end, end)
                idx -= 1
                del self.busy_periods[idx]

        while idx < len(self.busy_periods):
            next_start, next_end = self.busy_periods[idx]
            if next_start <= end:
                end = max(end, next_end)
                del self.busy_periods[idx]
            else:
                break

        self.busy_periods.insert(idx, (start, end))
        logger.debug(f"        {self.resource_id}: booked {start.isoformat()} - {end.isoformat()}")

    def remove_busy_period(self, start: datetime, end: datetime) -> None:
        """Free ``[start, end)``, trimming or splitting the bookings it covers."""
        if end <= start:
            return

        idx = self._first_ending_after(start)
        remainder: list[Interval] = []
        while idx < len(self.busy_periods) and self.busy_periods[idx][0] < end:
            busy_start, busy_end = self.busy_periods.pop(idx)
            if busy_start < start:
                remainder.append((busy_start, start))
            if busy_end > end:
                remainder.append((end, busy_end))

        self.busy_periods[idx:idx] = remainder
        logger.debug(f"        {self.resource_id}: freed {start.isoformat()} - {end.isoformat()}")

    def is_available(self, start: datetime, end: datetime) -> bool:
        """True if no booking intersects ``[start, end)``."""
        idx = self._first_ending_after(start)
        if idx >= len(self.busy_periods):
            return True
        return self.busy_periods[idx][0] >= end

    def next_available_time(self, instant: datetime) -> datetime:
        """Return ``instant``, or the end of the booking that contains it."""
        idx = self._first_ending_after(instant)
        if idx < len(self.busy_periods):
            busy_start, busy_end = self.busy_periods[idx]
            if busy_start <= instant:
                # Touching bookings are merged, so the end is always free
                return busy_end
        return instant

    def next_busy_start(self, instant: datetime) -> datetime | None:
        """Start of the first booking beginning at or after ``instant``, if any."""
        idx = self._first_ending_after(instant)
        if idx < len(self.busy_periods):
            busy_start = self.busy_periods[idx][0]
            if busy_start >= instant:
                return busy_start
            if idx + 1 < len(self.busy_periods):
                return self.busy_periods[idx + 1][0]
        return None

    def _first_ending_after(self, instant: datetime) -> int:
        """Index of the leftmost booking whose end is after ``instant``."""
        return bisect.bisect_right(self.busy_periods, instant, key=lambda x: x[1])
