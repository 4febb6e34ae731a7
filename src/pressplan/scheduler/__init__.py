"""Scheduler package - job-stage scheduling on capacity-constrained resources.

This package provides the production scheduler with:
- A working-hours calendar (shifts, breaks, holidays, busy periods, plant timezone)
- A capacity tracker with optimistic compare-and-commit over the capacity ledger
- A greedy, FIFO, precedence-respecting engine that splits stages across days
- A transactional writer, an advisory validator and a request/response service

Main entry points:
- SchedulingService: Run a ScheduleRequest end to end
- SchedulingEngine: Low-level placement algorithm
- CalendarService / CapacityTracker: Engine collaborators

Configuration:
- CalendarConfig: Shifts, breaks, holidays, busy periods, timezone
- SchedulingConfig: Horizon, conflict retries, unscheduled categories
"""

from .bookings import ResourceBookings
from .calendar import CalendarService
from .capacity import CapacityTracker
from .config import (
    BreakPeriod,
    BusyPeriod,
    CalendarConfig,
    Holiday,
    SchedulingConfig,
    ShiftDefinition,
)
from .core import (
    EngineResult,
    JobFailure,
    ScheduleMode,
    ScheduleRequest,
    ScheduleResponse,
)
from .engine import SchedulingEngine
from .loader import JobGraph, StageGraphLoader
from .protocols import CapacityLedger, ScheduleStore
from .service import RunRegistry, RunToken, SchedulingService
from .validator import PrecedenceValidator
from .writer import ScheduleWriter, WriteResult

__all__ = [
    # Configuration
    "BreakPeriod",
    "BusyPeriod",
    "CalendarConfig",
    "Holiday",
    "SchedulingConfig",
    "ShiftDefinition",
    # Core types
    "EngineResult",
    "JobFailure",
    "ScheduleMode",
    "ScheduleRequest",
    "ScheduleResponse",
    # Collaborators
    "CalendarService",
    "CapacityLedger",
    "CapacityTracker",
    "ResourceBookings",
    "ScheduleStore",
    # Pipeline
    "JobGraph",
    "PrecedenceValidator",
    "RunRegistry",
    "RunToken",
    "ScheduleWriter",
    "SchedulingEngine",
    "SchedulingService",
    "StageGraphLoader",
    "WriteResult",
]
