"""High-level scheduling service implementing the run request/response contract."""

import itertools
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import pydantic

from pressplan.logger import get_logger
from pressplan.models import PrecedenceViolation, StagePlan

from .calendar import CalendarService
from .capacity import CapacityTracker
from .config import CalendarConfig, SchedulingConfig
from .core import (
    EngineResult,
    FailureOut,
    ScheduleMode,
    ScheduleRequest,
    ScheduleResponse,
    ViolationOut,
)
from .engine import SchedulingEngine
from .loader import StageGraphLoader
from .validator import PrecedenceValidator
from .writer import ScheduleWriter

if TYPE_CHECKING:
    from pressplan.resources import ResourceConfig
    from pressplan.store import InMemoryScheduleStore

logger = get_logger()


@dataclass(frozen=True)
class RunToken:
    """Identifies one run and the jobs it claimed."""

    run_id: int
    job_ids: frozenset[str]


class RunRegistry:
    """Tracks the newest run per job so superseded runs can discard their results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._latest: dict[str, int] = {}

    def start(self, job_ids: list[str]) -> RunToken:
        """Claim the jobs for a new run, superseding any in-flight run for them."""
        with self._lock:
            run_id = next(self._counter)
            for job_id in job_ids:
                self._latest[job_id] = run_id
            return RunToken(run_id=run_id, job_ids=frozenset(job_ids))

    def stale_jobs(self, token: RunToken) -> set[str]:
        """Jobs of the token that a newer run has claimed since."""
        with self._lock:
            return {
                job_id for job_id in token.job_ids if self._latest.get(job_id) != token.run_id
            }

    def finish(self, token: RunToken) -> None:
        with self._lock:
            for job_id in token.job_ids:
                if self._latest.get(job_id) == token.run_id:
                    del self._latest[job_id]


class SchedulingService:
    """Runs the loader, engine, writer and validator for one request.

    This service coordinates:
    - StageGraphLoader (eligible stages in FIFO order, existing bookings)
    - SchedulingEngine (placements, per-job failure isolation)
    - ScheduleWriter (one transaction per run)
    - PrecedenceValidator (advisory report)
    """

    def __init__(  # noqa: PLR0913 - needs multiple optional config params
        self,
        store: "InMemoryScheduleStore",
        calendar_config: CalendarConfig | None = None,
        resource_config: "ResourceConfig | None" = None,
        config: SchedulingConfig | None = None,
        registry: RunRegistry | None = None,
        current_time: datetime | None = None,
    ):
        """Initialize scheduling service.

        Args:
            store: Schedule store (jobs, stages, capacity ledger)
            calendar_config: Working calendar configuration
            resource_config: Optional resource configuration
            config: Optional scheduling configuration
            registry: Run registry shared by concurrent runs (defaults to a private one)
            current_time: Fixed "now" (defaults to the wall clock at each run)
        """
        self.store = store
        self.config = config or SchedulingConfig()
        self.calendar = CalendarService(calendar_config, horizon_days=self.config.horizon_days)
        self.resource_config = resource_config
        self.registry = registry or RunRegistry()
        self.current_time = current_time
        self.loader = StageGraphLoader(store, resource_config, self.config)

    def now(self) -> datetime:
        return self.current_time or datetime.now(timezone.utc)

    def run_payload(self, payload: dict[str, Any]) -> ScheduleResponse:
        """Validate a wire-format request and run it."""
        try:
            request = ScheduleRequest.model_validate(payload)
        except pydantic.ValidationError as e:
            return ScheduleResponse(ok=False, error=str(e), error_code="INVALID_REQUEST")
        return self.run(request)

    def run(self, request: ScheduleRequest) -> ScheduleResponse:
        """Execute one scheduling run.

        Returns:
            ScheduleResponse; ``ok`` is False only when a single-mode target job failed
        """
        if request.mode == ScheduleMode.SINGLE:
            target_ids = list(request.job_ids or [])
        else:
            target_ids = [job.id for job in self.store.list_jobs()]

        logger.checks(
            f"Run mode={request.mode.value} jobs={len(target_ids)} commit={request.commit} "
            f"proposed={request.as_proposed} only_if_unset={request.only_if_unset}"
        )

        token = self.registry.start(target_ids)
        ledger = self.store.ledger if request.commit else self.store.ledger.copy()
        tracker = CapacityTracker(ledger, self.calendar, self.resource_config)
        try:
            return self._run(request, target_ids, token, tracker)
        except Exception:
            tracker.rollback()
            raise
        finally:
            self.registry.finish(token)

    def _run(
        self,
        request: ScheduleRequest,
        target_ids: list[str],
        token: RunToken,
        tracker: CapacityTracker,
    ) -> ScheduleResponse:
        job_filter = target_ids if request.mode == ScheduleMode.SINGLE else None
        graphs = self.loader.load_job_graphs(job_filter, request.only_if_unset)

        engine = SchedulingEngine(
            self.calendar,
            tracker,
            now=self.now(),
            bookings=self.loader.load_bookings(),
            config=self.config,
            start_from=request.start_from,
            replace=not request.only_if_unset,
        )
        result = engine.schedule(graphs)

        discarded = self.registry.stale_jobs(token) & {plan.stage.job_id for plan in result.plans}
        if discarded:
            logger.warning(f"Discarding results for superseded job(s): {sorted(discarded)}")
            self._release_plans(
                tracker, [plan for plan in result.plans if plan.stage.job_id in discarded]
            )
            # Their current schedule stays in the store, so it keeps its capacity
            for job_id in sorted(discarded):
                for resource_id, day, minutes in result.vacated.get(job_id, []):
                    tracker.reserve(resource_id, day, minutes)
            result.plans = [plan for plan in result.plans if plan.stage.job_id not in discarded]

        writer = ScheduleWriter(self.store)
        write_result = writer.write(
            result.plans,
            commit=request.commit,
            as_proposed=request.as_proposed,
            only_if_unset=request.only_if_unset,
        )
        if write_result.skipped_stage_ids:
            skipped = set(write_result.skipped_stage_ids)
            self._release_plans(
                tracker, [plan for plan in result.plans if plan.stage.id in skipped]
            )
            result.plans = [plan for plan in result.plans if plan.stage.id not in skipped]

        stages = self.store.list_stages() if request.commit else writer.preview(result.plans)
        scope = set(target_ids) if request.mode == ScheduleMode.SINGLE else None
        violations = PrecedenceValidator(stages, self.calendar).validate(scope)

        return self._response(
            request, target_ids, result, write_result.wrote_slots, violations, discarded
        )

    def _release_plans(self, tracker: CapacityTracker, plans: list[StagePlan]) -> None:
        for plan in plans:
            for placement in plan.placements:
                tracker.release(
                    placement.resource_id,
                    self.calendar.local_date(placement.start),
                    placement.minutes,
                )

    def _response(  # noqa: PLR0913
        self,
        request: ScheduleRequest,
        target_ids: list[str],
        result: EngineResult,
        wrote_slots: int,
        violations: list[PrecedenceViolation],
        discarded: set[str],
    ) -> ScheduleResponse:
        response = ScheduleResponse(
            ok=True,
            scheduled_count=len(result.plans),
            wrote_slots=wrote_slots,
            violations=[ViolationOut.from_violation(v) for v in violations],
            placements=result.placements_out(),
            failures=[
                FailureOut(
                    job_id=f.job_id,
                    stage_id=f.stage_id,
                    error_code=f.error_code,
                    details=f.details,
                )
                for f in result.failures
            ],
            discarded_jobs=sorted(discarded),
        )

        if request.mode == ScheduleMode.SINGLE:
            primary = [f for f in result.failures if f.job_id in target_ids]
            if primary:
                response.ok = False
                response.error = primary[0].details
                response.error_code = primary[0].error_code

        logger.changes(
            f"Run finished: {response.scheduled_count} stage(s) scheduled, "
            f"{response.wrote_slots} slot(s) written, {len(result.failures)} job failure(s), "
            f"{len(violations)} violation(s)"
        )
        return response
