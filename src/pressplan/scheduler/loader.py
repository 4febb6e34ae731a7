"""Stage graph loading: eligible stages, precedence anchors and existing bookings."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from pressplan.logger import get_logger
from pressplan.models import (
    SCHEDULABLE_STATUSES,
    JobStageInstance,
    ProductionJob,
    StageStatus,
)

from .bookings import ResourceBookings
from .calendar import Interval, ceil_to_minute, minutes_between
from .config import SchedulingConfig
from .protocols import ScheduleStore

logger = get_logger()

if TYPE_CHECKING:
    from pressplan.resources import ResourceConfig


def lanes_compatible(earlier: JobStageInstance, later: JobStageInstance) -> bool:
    """True if ``later`` must wait for ``earlier`` when it has a lower sequence_order.

    A part stage follows its own lane and the main lane; a main-lane stage
    follows every lane.
    """
    return later.part is None or earlier.part is None or earlier.part == later.part


def _default_stage_list() -> list[JobStageInstance]:
    return []


@dataclass
class JobGraph:
    """One job's stages as the engine sees them.

    ``eligible`` stages are the ones to (re)schedule, in sequence_order.
    ``anchors`` are the job's other stages that still constrain them: already
    scheduled or completed instances, with ``anchor_ends`` holding each one's
    effective end (latest end over its split parts, None if it has no date).
    """

    job: ProductionJob
    eligible: list[JobStageInstance] = field(default_factory=_default_stage_list)
    anchors: list[JobStageInstance] = field(default_factory=_default_stage_list)
    anchor_ends: dict[str, datetime | None] = field(default_factory=dict)
    split_parts: dict[str, list[JobStageInstance]] = field(default_factory=dict)

    @property
    def job_id(self) -> str:
        return self.job.id

    def predecessors(self, stage: JobStageInstance) -> list[JobStageInstance]:
        """Stages of the job that must finish before ``stage`` may start."""
        return [
            other
            for other in self.eligible + self.anchors
            if other.sequence_order < stage.sequence_order and lanes_compatible(other, stage)
        ]

    def group_members(self, stage: JobStageInstance) -> list[JobStageInstance]:
        """Lower-ordered stages sharing the stage's dependency group, any lane."""
        if stage.dependency_group is None:
            return []
        return [
            other
            for other in self.eligible + self.anchors
            if other.id != stage.id
            and other.dependency_group == stage.dependency_group
            and other.sequence_order < stage.sequence_order
        ]

    def held_parts(self) -> list[tuple[JobStageInstance, int]]:
        """Current schedule of the eligible stages, with the minutes each part holds.

        Completed and undated parts hold nothing. Parts written without
        ``scheduled_minutes`` hold their wall-clock length.
        """
        held: list[tuple[JobStageInstance, int]] = []
        for stage in self.eligible:
            for part in [stage, *self.split_parts.get(stage.id, [])]:
                if part.status == StageStatus.COMPLETED:
                    continue
                if part.scheduled_start is None or part.scheduled_end is None:
                    continue
                minutes = part.scheduled_minutes or minutes_between(
                    part.scheduled_start, part.scheduled_end
                )
                if minutes > 0:
                    held.append((part, minutes))
        return held


class StageGraphLoader:
    """Reads jobs and stage instances from the store for a scheduling run."""

    def __init__(
        self,
        store: ScheduleStore,
        resource_config: "ResourceConfig | None" = None,
        config: SchedulingConfig | None = None,
    ) -> None:
        self.store = store
        self.resource_config = resource_config
        self.config = config or SchedulingConfig()

    def is_scheduled_resource(self, resource_id: str) -> bool:
        """False for resources whose category is excluded from capacity scheduling."""
        if self.resource_config is None:
            return True
        category = self.resource_config.get_category(resource_id)
        return category not in self.config.unscheduled_categories

    def _is_eligible(self, stage: JobStageInstance, only_if_unset: bool) -> bool:
        if stage.status not in SCHEDULABLE_STATUSES:
            return False
        return not (only_if_unset and stage.scheduled_start is not None)

    def load_job_graphs(
        self, job_ids: list[str] | None = None, only_if_unset: bool = True
    ) -> list[JobGraph]:
        """Build per-job stage graphs, oldest-approved job first.

        Args:
            job_ids: Jobs to load; None loads every job (full reschedule)
            only_if_unset: Only stages without a ``scheduled_start`` are eligible

        Returns:
            JobGraph per job that has at least one eligible stage, in FIFO order
        """
        jobs = self.store.list_jobs()
        if job_ids is not None:
            wanted = set(job_ids)
            for missing in sorted(wanted - {job.id for job in jobs}):
                logger.warning(f"Job '{missing}' not found, skipping")
            jobs = [job for job in jobs if job.id in wanted]
        jobs.sort(key=lambda job: job.fifo_key())

        stages = self.store.list_stages({job.id for job in jobs})
        by_job: dict[str, list[JobStageInstance]] = {}
        for stage in stages:
            by_job.setdefault(stage.job_id, []).append(stage)

        graphs: list[JobGraph] = []
        for job in jobs:
            graph = self._build_graph(job, by_job.get(job.id, []), only_if_unset)
            if graph.eligible:
                graphs.append(graph)
            else:
                logger.checks(f"Job {job.id}: nothing to schedule")
        return graphs

    def _build_graph(
        self, job: ProductionJob, stages: list[JobStageInstance], only_if_unset: bool
    ) -> JobGraph:
        graph = JobGraph(job=job)
        originals: list[JobStageInstance] = []

        for stage in stages:
            if stage.superseded:
                continue
            if stage.is_split_part:
                assert stage.parent_split_id is not None
                graph.split_parts.setdefault(stage.parent_split_id, []).append(stage)
                continue
            if not self.is_scheduled_resource(stage.resource_id):
                logger.debug(f"  Skipping {stage.id}: resource {stage.resource_id} not scheduled")
                continue
            originals.append(stage)

        originals.sort(key=lambda s: (s.sequence_order, s.id))
        for stage in originals:
            if self._is_eligible(stage, only_if_unset):
                graph.eligible.append(stage)
            else:
                graph.anchors.append(stage)
                graph.anchor_ends[stage.id] = self._effective_end(stage, graph)

        return graph

    @staticmethod
    def _effective_end(stage: JobStageInstance, graph: JobGraph) -> datetime | None:
        ends = [
            part.scheduled_end
            for part in [stage, *graph.split_parts.get(stage.id, [])]
            if part.scheduled_end is not None
        ]
        return max(ends) if ends else None

    def load_eligible_stages(
        self, job_ids: list[str] | None = None, only_if_unset: bool = True
    ) -> list[JobStageInstance]:
        """Eligible stages in FIFO job order, then sequence_order within a job."""
        return [
            stage
            for graph in self.load_job_graphs(job_ids, only_if_unset)
            for stage in graph.eligible
        ]

    def load_bookings(self) -> dict[str, ResourceBookings]:
        """Existing scheduled intervals per resource across all jobs.

        A replacing run frees a job's own intervals when it reaches that job.
        """
        periods: dict[str, list[Interval]] = {}
        for stage in self.store.list_stages():
            if stage.superseded or stage.scheduled_start is None or stage.scheduled_end is None:
                continue
            periods.setdefault(stage.resource_id, []).append(
                (stage.scheduled_start, ceil_to_minute(stage.scheduled_end))
            )

        return {
            resource_id: ResourceBookings(intervals, resource_id=resource_id)
            for resource_id, intervals in periods.items()
        }
