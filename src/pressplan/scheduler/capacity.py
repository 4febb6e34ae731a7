"""Capacity ledger access with optimistic compare-and-commit."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from pressplan.exceptions import CapacityConflictError, OverAllocationError
from pressplan.logger import get_logger
from pressplan.models import ResourceCapacityDay

from .calendar import CalendarService
from .protocols import CapacityLedger

if TYPE_CHECKING:
    from pressplan.resources import ResourceConfig

logger = get_logger()

# Bounded retries for ledger read-modify-write cycles that are not quote based
_MAX_ADJUST_ATTEMPTS = 100


@dataclass(frozen=True)
class CapacityQuote:
    """What ``available_minutes`` last told the caller about a row."""

    available_minutes: int
    version: int


class CapacityTracker:
    """Source of truth for how much room is left on a resource on a local date.

    Rows are created lazily at full capacity. ``commit`` only succeeds for a
    quantity previously quoted by ``available_minutes`` against an unchanged
    row; concurrent runs that touched the row in between cause a
    ``CapacityConflictError`` instead of a silent overcommit. Every change this
    tracker makes is journaled so a failed run can be reversed with
    ``rollback``.
    """

    def __init__(
        self,
        ledger: CapacityLedger,
        calendar: CalendarService,
        resource_config: "ResourceConfig | None" = None,
    ) -> None:
        self.ledger = ledger
        self.calendar = calendar
        self.resource_config = resource_config
        self._quotes: dict[tuple[str, date], CapacityQuote] = {}
        self._journal: list[tuple[str, date, int]] = []

    def capacity_for(self, resource_id: str, day: date) -> int:
        """Full-day capacity of a resource, from calendar and resource configuration."""
        if not self.calendar.is_working_day(day):
            return 0
        if self.resource_config is not None and self.resource_config.is_down(resource_id, day):
            return 0

        minutes = self.calendar.working_minutes(day)
        if self.resource_config is not None:
            cap = self.resource_config.get_capacity_cap(resource_id)
            if cap is not None:
                minutes = min(minutes, cap)
        return minutes

    def _row(self, resource_id: str, day: date) -> ResourceCapacityDay:
        row = self.ledger.get(resource_id, day)
        if row is None:
            row = self.ledger.insert_if_absent(
                ResourceCapacityDay(
                    resource_id=resource_id,
                    date=day,
                    capacity_minutes=self.capacity_for(resource_id, day),
                )
            )
        return row

    def available_minutes(self, resource_id: str, day: date) -> int:
        """Minutes still free on the day, recorded as a quote for the next commit."""
        row = self._row(resource_id, day)
        available = max(0, row.available_minutes)
        self._quotes[(resource_id, day)] = CapacityQuote(available, row.version)
        return available

    def commit(self, resource_id: str, day: date, minutes: int) -> None:
        """Commit minutes previously quoted by ``available_minutes``.

        Raises:
            OverAllocationError: If no quote exists or minutes exceed the quote
            CapacityConflictError: If the row changed since it was quoted
        """
        key = (resource_id, day)
        quote = self._quotes.pop(key, None)
        if quote is None:
            raise OverAllocationError(
                f"Commit of {minutes} min on {resource_id} {day} without a capacity quote"
            )
        if minutes > quote.available_minutes:
            raise OverAllocationError(
                f"Commit of {minutes} min on {resource_id} {day} exceeds the "
                f"{quote.available_minutes} min quoted"
            )

        row = self._row(resource_id, day)
        if row.version != quote.version or not self.ledger.compare_and_set(
            resource_id, day, quote.version, row.committed_minutes + minutes
        ):
            raise CapacityConflictError(
                f"Capacity of {resource_id} on {day} changed since it was quoted"
            )

        self._journal.append((resource_id, day, minutes))
        logger.changes(
            f"    Committed {minutes} min on {resource_id} {day} "
            f"({row.committed_minutes + minutes}/{row.capacity_minutes})"
        )

    def release(self, resource_id: str, day: date, minutes: int) -> int:
        """Return previously committed minutes to the day (never below zero).

        Returns:
            Minutes actually released
        """
        released = -self._adjust(resource_id, day, -minutes)
        self._journal.append((resource_id, day, -released))
        logger.changes(f"    Released {released} min on {resource_id} {day}")
        return released

    def reserve(self, resource_id: str, day: date, minutes: int) -> None:
        """Add committed minutes without a quote (restoring a schedule that is kept)."""
        self._journal.append((resource_id, day, self._adjust(resource_id, day, minutes)))

    def rollback(self) -> None:
        """Reverse every ledger change made through this tracker, newest first."""
        while self._journal:
            resource_id, day, delta = self._journal.pop()
            self._adjust(resource_id, day, -delta)
        self._quotes.clear()

    def reset_from(self, day: date, resource_id: str | None = None) -> int:
        """Administrative reset of committed minutes to 0 from ``day`` forward.

        Not part of normal scheduling; used to recover from bad runs. Reset
        changes are not journaled.

        Returns:
            Number of rows reset
        """
        count = 0
        for row in self.ledger.rows():
            if row.date < day or (resource_id is not None and row.resource_id != resource_id):
                continue
            if row.committed_minutes == 0:
                continue
            self._set_committed(row.resource_id, row.date, lambda _: 0)
            count += 1
        logger.changes(f"Reset {count} capacity rows from {day}")
        return count

    def _adjust(self, resource_id: str, day: date, delta: int) -> int:
        return self._set_committed(resource_id, day, lambda committed: max(0, committed + delta))

    def _set_committed(self, resource_id: str, day: date, update: Callable[[int], int]) -> int:
        """Apply ``update`` to the committed minutes; returns the change made."""
        for _ in range(_MAX_ADJUST_ATTEMPTS):
            row = self._row(resource_id, day)
            committed = update(row.committed_minutes)
            if self.ledger.compare_and_set(resource_id, day, row.version, committed):
                return committed - row.committed_minutes
        raise CapacityConflictError(f"Could not update capacity of {resource_id} on {day}")
