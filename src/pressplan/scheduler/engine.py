"""Greedy, precedence-respecting stage scheduler with multi-day splitting."""

from datetime import date, datetime, timedelta

from pressplan.exceptions import (
    CapacityConflictError,
    InvalidDurationError,
    PressPlanError,
    SchedulingHorizonExceededError,
    UnresolvedDependencyError,
)
from pressplan.logger import debug_enabled, get_logger
from pressplan.models import JobStageInstance, Placement, StagePlan, StageStatus
from pressplan.timezones import ensure_utc

from .bookings import ResourceBookings
from .calendar import CalendarService, ceil_to_minute, minutes_between
from .capacity import CapacityTracker
from .config import SchedulingConfig
from .core import EngineResult, JobFailure
from .loader import JobGraph

logger = get_logger()


class _Unresolved(Exception):
    """A prerequisite of the stage has no end time yet."""


class _StageError(PressPlanError):
    """Wraps an error with the stage it occurred on."""

    def __init__(self, stage: JobStageInstance, error: PressPlanError):
        super().__init__(str(error))
        self.stage = stage
        self.error = error


class SchedulingEngine:
    """Assigns start/end times to eligible stages, job by job in FIFO order.

    For each stage the engine:
    1. Bounds the earliest start by now, the requested start, every
       predecessor in a compatible lane and lower-ordered members of its
       dependency group (deferring the stage while any of those is unresolved)
    2. Moves the start to the next working instant
    3. Allocates the stage's minutes in chunks limited by remaining work,
       the day's free capacity and the end of the current free run on the
       resource, rolling over to later days as needed

    A failure on any stage drops every placement of that job and returns the
    job's capacity; other jobs carry on.

    In replace mode a job's current schedule is freed (capacity and bookings)
    only when the engine reaches that job, and taken back if the job fails, so
    a failed job never shares its old slot with work placed after it.
    """

    def __init__(  # noqa: PLR0913 - keyword-only collaborators
        self,
        calendar: CalendarService,
        tracker: CapacityTracker,
        *,
        now: datetime,
        bookings: dict[str, ResourceBookings] | None = None,
        config: SchedulingConfig | None = None,
        start_from: datetime | None = None,
        replace: bool = False,
    ):
        """Initialize the engine.

        Args:
            calendar: Working calendar
            tracker: Capacity tracker for the run
            now: Current instant; nothing is placed before it
            bookings: Existing bookings per resource (other jobs' schedules)
            config: Scheduling configuration (horizon, retries)
            start_from: Optional request override for the earliest start
            replace: Free and reschedule stages that already have a schedule
        """
        self.calendar = calendar
        self.tracker = tracker
        self.bookings = bookings if bookings is not None else {}
        self.config = config or SchedulingConfig()
        floor = ceil_to_minute(ensure_utc(now))
        if start_from is not None:
            floor = max(floor, ceil_to_minute(ensure_utc(start_from)))
        self.floor = floor
        self.replace = replace

        # Per-job state, reset for every job
        self._job_commits: list[tuple[str, date, int]] = []
        self._job_bookings: dict[str, ResourceBookings] = {}
        self._job_vacated: list[tuple[str, date, int]] = []

    def schedule(self, graphs: list[JobGraph]) -> EngineResult:
        """Schedule every job graph in the given (FIFO) order."""
        result = EngineResult()
        for graph in graphs:
            logger.checks(f"Job {graph.job_id}: {len(graph.eligible)} stage(s) to schedule")
            self._job_commits = []
            self._job_bookings = {}
            self._job_vacated = []
            try:
                self._check_durations(graph)
                if self.replace:
                    self._vacate(graph)
                plans = self._schedule_job(graph)
            except PressPlanError as e:
                failure = self._fail_job(graph, e)
                result.failures.append(failure)
                continue
            result.plans.extend(plans)
            if self._job_vacated:
                result.vacated[graph.job_id] = self._job_vacated
        return result

    def _check_durations(self, graph: JobGraph) -> None:
        for stage in graph.eligible:
            if stage.total_minutes <= 0:
                raise _StageError(
                    stage,
                    InvalidDurationError(
                        f"Stage {stage.display_name} has non-positive duration "
                        f"({stage.estimated_duration_minutes} + {stage.setup_minutes} setup)"
                    ),
                )

    def _vacate(self, graph: JobGraph) -> None:
        """Free the job's current schedule so its stages can be placed again."""
        for part, minutes in graph.held_parts():
            assert part.scheduled_start is not None and part.scheduled_end is not None
            self._bookings_for(part.resource_id).remove_busy_period(
                part.scheduled_start, ceil_to_minute(part.scheduled_end)
            )
            day = self.calendar.local_date(part.scheduled_start)
            released = self.tracker.release(part.resource_id, day, minutes)
            self._job_vacated.append((part.resource_id, day, released))

    def _schedule_job(self, graph: JobGraph) -> list[StagePlan]:
        ends: dict[str, datetime] = {}
        plans: list[StagePlan] = []
        pending = list(graph.eligible)
        while pending:
            deferred: list[JobStageInstance] = []
            for stage in pending:
                try:
                    earliest = self._earliest_start(stage, graph, ends)
                except _Unresolved as e:
                    logger.checks(f"  Deferring {stage.display_name}: {e}")
                    deferred.append(stage)
                    continue

                try:
                    plan = self._allocate_with_retry(stage, earliest)
                except PressPlanError as e:
                    raise _StageError(stage, e) from e
                ends[stage.id] = plan.end
                plans.append(plan)

            if len(deferred) == len(pending):
                stage = deferred[0]
                raise _StageError(
                    stage,
                    UnresolvedDependencyError(
                        f"Prerequisites of stage {stage.display_name} can never be scheduled"
                    ),
                )
            pending = deferred

        return plans

    def _prerequisite_end(
        self, other: JobStageInstance, graph: JobGraph, ends: dict[str, datetime]
    ) -> datetime | None:
        if other.id in ends:
            return ends[other.id]
        if other.id in graph.anchor_ends:
            end = graph.anchor_ends[other.id]
            if end is None and other.status != StageStatus.COMPLETED:
                raise _Unresolved(f"{other.display_name} has no scheduled end")
            return end
        raise _Unresolved(f"{other.display_name} is not scheduled yet")

    def _earliest_start(
        self, stage: JobStageInstance, graph: JobGraph, ends: dict[str, datetime]
    ) -> datetime:
        earliest = self.floor
        for other in graph.predecessors(stage) + graph.group_members(stage):
            end = self._prerequisite_end(other, graph, ends)
            if end is not None and end > earliest:
                earliest = end
        return ceil_to_minute(earliest)

    def _bookings_for(self, resource_id: str) -> ResourceBookings:
        bookings = self.bookings.get(resource_id)
        if bookings is None:
            bookings = ResourceBookings(resource_id=resource_id)
            self.bookings[resource_id] = bookings
        if resource_id not in self._job_bookings:
            self._job_bookings[resource_id] = bookings.copy()
        return bookings

    def _allocate_with_retry(self, stage: JobStageInstance, earliest: datetime) -> StagePlan:
        attempts = self.config.max_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            mark = len(self._job_commits)
            saved = self._bookings_for(stage.resource_id).copy()
            try:
                return self._allocate(stage, earliest)
            except CapacityConflictError:
                # Undo this attempt only, then retry against fresh ledger state
                self._release(self._job_commits[mark:])
                del self._job_commits[mark:]
                self.bookings[stage.resource_id] = saved
                if attempt == attempts:
                    raise
                logger.checks(f"  Capacity conflict on {stage.display_name}, retrying")
        raise AssertionError("unreachable")

    def _allocate(self, stage: JobStageInstance, earliest: datetime) -> StagePlan:  # noqa: PLR0912
        resource_id = stage.resource_id
        bookings = self._bookings_for(resource_id)
        remaining = stage.total_minutes
        cursor = self.calendar.next_working_instant(earliest)
        last_day = self.calendar.local_date(cursor) + timedelta(days=self.config.horizon_days)
        placements: list[Placement] = []

        logger.checks(
            f"  Considering {stage.display_name} on {resource_id}: "
            f"{remaining} min from {cursor.isoformat()}"
        )

        while remaining > 0:
            cursor = self.calendar.next_working_instant(cursor)
            day = self.calendar.local_date(cursor)
            if day > last_day:
                raise SchedulingHorizonExceededError(
                    f"Stage {stage.display_name} still needs {remaining} min after "
                    f"{self.config.horizon_days} days"
                )

            free_from = bookings.next_available_time(cursor)
            if free_from != cursor:
                cursor = free_from
                continue

            segment = self.calendar.segment_at(cursor)
            assert segment is not None
            run_end = segment[1]
            next_busy = bookings.next_busy_start(cursor)
            if next_busy is not None and next_busy < run_end:
                run_end = next_busy

            available = self.tracker.available_minutes(resource_id, day)
            if available <= 0:
                if debug_enabled():
                    logger.debug(f"    {resource_id} {day}: no capacity left")
                cursor = self.calendar.next_working_day_start(day)
                continue

            chunk = min(remaining, available, minutes_between(cursor, run_end))
            if chunk <= 0:
                cursor = self.calendar.next_working_instant(run_end)
                continue

            end = cursor + timedelta(minutes=chunk)
            self.calendar.check_clear_of_breaks(cursor, end)
            if not bookings.is_available(cursor, end):
                raise CapacityConflictError(
                    f"{resource_id} is already booked within "
                    f"{cursor.isoformat()} - {end.isoformat()}"
                )
            self.tracker.commit(resource_id, day, chunk)
            self._job_commits.append((resource_id, day, chunk))
            bookings.add_busy_period(cursor, end)
            placements.append(
                Placement(
                    stage_id=stage.id,
                    job_id=stage.job_id,
                    resource_id=resource_id,
                    start=cursor,
                    end=end,
                    minutes=chunk,
                )
            )
            remaining -= chunk
            cursor = end

        for index, placement in enumerate(placements, start=1):
            placement.part_index = index
            placement.total_parts = len(placements)

        plan = StagePlan(stage=stage, placements=placements)
        logger.changes(
            f"  Scheduled {stage.display_name} on {resource_id}: "
            f"{plan.start.isoformat()} - {plan.end.isoformat()}"
            + (f" ({len(placements)} parts)" if len(placements) > 1 else "")
        )
        return plan

    def _release(self, commits: list[tuple[str, date, int]]) -> None:
        for resource_id, day, minutes in reversed(commits):
            self.tracker.release(resource_id, day, minutes)

    def _fail_job(self, graph: JobGraph, error: PressPlanError) -> JobFailure:
        """Back out everything the job committed and describe the failure."""
        stage_id = None
        if isinstance(error, _StageError):
            stage_id = error.stage.id
            error = error.error

        self._release(self._job_commits)
        self._job_commits = []
        for resource_id, saved in self._job_bookings.items():
            self.bookings[resource_id] = saved
        self._job_bookings = {}
        # The job keeps its current schedule
        for resource_id, day, minutes in self._job_vacated:
            self.tracker.reserve(resource_id, day, minutes)
        self._job_vacated = []

        error_code = getattr(error, "error_code", "SCHEDULING_ERROR")
        logger.warning(f"Job {graph.job_id} rolled back ({error_code}): {error}")
        return JobFailure(
            job_id=graph.job_id,
            stage_id=stage_id,
            error_code=error_code,
            details=str(error),
        )

