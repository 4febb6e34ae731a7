"""Post-run precedence and overlap checks.

Findings are advisory: they are reported for human review and never block
or repair a schedule.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from pressplan.exceptions import BreakOverlapError
from pressplan.logger import get_logger
from pressplan.models import JobStageInstance, PrecedenceViolation

from .loader import lanes_compatible

if TYPE_CHECKING:
    from .calendar import CalendarService

logger = get_logger()

PRECEDENCE = "precedence"
DEPENDENCY_GROUP = "dependency_group"
RESOURCE_OVERLAP = "resource_overlap"
BREAK_OVERLAP = "break_overlap"


class _Span:
    """An original stage together with the time covered by all of its split parts."""

    def __init__(self, stage: JobStageInstance):
        self.stage = stage
        self.start: datetime | None = None
        self.end: datetime | None = None

    def extend(self, part: JobStageInstance) -> None:
        assert part.scheduled_start is not None and part.scheduled_end is not None
        if self.start is None or part.scheduled_start < self.start:
            self.start = part.scheduled_start
        if self.end is None or part.scheduled_end > self.end:
            self.end = part.scheduled_end


class PrecedenceValidator:
    """Scans scheduled stage instances for ordering and overlap anomalies."""

    def __init__(
        self, stages: list[JobStageInstance], calendar: "CalendarService | None" = None
    ):
        """Initialize the validator.

        Args:
            stages: Stage instances to check (committed or previewed)
            calendar: Optional calendar; enables the break check
        """
        self.stages = [s for s in stages if not s.superseded]
        self.calendar = calendar

    def _scheduled(self) -> list[JobStageInstance]:
        return [
            s for s in self.stages if s.scheduled_start is not None and s.scheduled_end is not None
        ]

    def validate(self, job_ids: set[str] | None = None) -> list[PrecedenceViolation]:
        """Run every check.

        Args:
            job_ids: Restrict findings to these jobs (overlaps are reported if
                either side belongs to one of them)
        """
        violations = self.check_precedence(job_ids)
        violations.extend(self.check_resource_overlap(job_ids))
        if self.calendar is not None:
            violations.extend(self.check_breaks(job_ids))
        for violation in violations:
            logger.checks(
                f"  {violation.violation_type}: {violation.stage1_name} / "
                f"{violation.stage2_name} ({violation.details})"
            )
        return violations

    def _spans(self) -> dict[str, _Span]:
        spans: dict[str, _Span] = {}
        for stage in self.stages:
            if not stage.is_split_part:
                spans[stage.id] = _Span(stage)
        for stage in self._scheduled():
            key = stage.parent_split_id or stage.id
            if key in spans:
                spans[key].extend(stage)
        return spans

    def check_precedence(self, job_ids: set[str] | None = None) -> list[PrecedenceViolation]:
        """Stages starting before a predecessor (or lower group member) ends."""
        by_job: dict[str, list[_Span]] = {}
        for span in self._spans().values():
            if span.start is None:
                continue
            if job_ids is not None and span.stage.job_id not in job_ids:
                continue
            by_job.setdefault(span.stage.job_id, []).append(span)

        violations: list[PrecedenceViolation] = []
        for job_id, spans in sorted(by_job.items()):
            spans.sort(key=lambda s: (s.stage.sequence_order, s.stage.id))
            for later in spans:
                for earlier in spans:
                    if earlier.stage.sequence_order >= later.stage.sequence_order:
                        continue
                    assert earlier.end is not None and later.start is not None
                    if later.start >= earlier.end:
                        continue

                    if lanes_compatible(earlier.stage, later.stage):
                        violation_type = PRECEDENCE
                    elif (
                        later.stage.dependency_group is not None
                        and later.stage.dependency_group == earlier.stage.dependency_group
                    ):
                        violation_type = DEPENDENCY_GROUP
                    else:
                        continue

                    violations.append(
                        PrecedenceViolation(
                            job_id=job_id,
                            violation_type=violation_type,
                            stage1_name=earlier.stage.display_name,
                            stage2_name=later.stage.display_name,
                            details=(
                                f"{later.stage.display_name} starts {later.start.isoformat()} "
                                f"before {earlier.stage.display_name} ends "
                                f"{earlier.end.isoformat()}"
                            ),
                        )
                    )
        return violations

    def check_resource_overlap(
        self, job_ids: set[str] | None = None
    ) -> list[PrecedenceViolation]:
        """Instances on the same resource whose intervals intersect."""
        by_resource: dict[str, list[JobStageInstance]] = {}
        for stage in self._scheduled():
            by_resource.setdefault(stage.resource_id, []).append(stage)

        violations: list[PrecedenceViolation] = []
        for resource_id, stages in sorted(by_resource.items()):
            stages.sort(key=lambda s: (s.scheduled_start, s.id))
            latest: JobStageInstance | None = None
            latest_end: datetime | None = None
            for stage in stages:
                assert stage.scheduled_start is not None and stage.scheduled_end is not None
                if latest is not None and latest_end is not None:
                    if stage.scheduled_start < latest_end and (
                        job_ids is None or {stage.job_id, latest.job_id} & job_ids
                    ):
                        violations.append(
                            PrecedenceViolation(
                                job_id=latest.job_id,
                                violation_type=RESOURCE_OVERLAP,
                                stage1_name=latest.display_name,
                                stage2_name=stage.display_name,
                                details=(
                                    f"Overlap on {resource_id}: {stage.scheduled_start.isoformat()}"
                                    f" starts before {latest_end.isoformat()}"
                                ),
                            )
                        )
                if latest_end is None or stage.scheduled_end > latest_end:
                    latest = stage
                    latest_end = stage.scheduled_end
        return violations

    def check_breaks(self, job_ids: set[str] | None = None) -> list[PrecedenceViolation]:
        """Instances whose interval intersects a configured break."""
        assert self.calendar is not None
        violations: list[PrecedenceViolation] = []
        for stage in self._scheduled():
            if job_ids is not None and stage.job_id not in job_ids:
                continue
            assert stage.scheduled_start is not None and stage.scheduled_end is not None
            try:
                self.calendar.check_clear_of_breaks(stage.scheduled_start, stage.scheduled_end)
            except BreakOverlapError as e:
                violations.append(
                    PrecedenceViolation(
                        job_id=stage.job_id,
                        violation_type=BREAK_OVERLAP,
                        stage1_name=stage.display_name,
                        stage2_name="break",
                        details=str(e),
                    )
                )
        return violations
