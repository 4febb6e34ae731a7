"""Persisting computed schedules to the store."""

import uuid
from dataclasses import dataclass, field

from pressplan.logger import get_logger
from pressplan.models import JobStageInstance, ScheduleStatus, StagePlan

from .protocols import ScheduleStore

logger = get_logger()


def _default_str_list() -> list[str]:
    return []


@dataclass
class WriteResult:
    """Counts of what one ``write`` call persisted."""

    wrote_slots: int = 0  # Stage instance rows written (originals plus split parts)
    updated_count: int = 0  # Original stage instances whose schedule changed
    skipped_stage_ids: list[str] = field(default_factory=_default_str_list)


def split_part_id(original_id: str) -> str:
    """Id for an additional instance created by splitting."""
    return f"{original_id}-{uuid.uuid4().hex[:12]}"


def plan_instances(
    plan: StagePlan, original: JobStageInstance, status: ScheduleStatus
) -> list[JobStageInstance]:
    """Stage instance rows for a plan.

    The first placement updates the original instance; every later placement
    becomes a new split instance pointing back at the original.
    """
    total = len(plan.placements)
    instances: list[JobStageInstance] = []
    for placement in plan.placements:
        instance = original.copy()
        if placement.part_index > 1:
            instance.id = split_part_id(original.id)
            instance.parent_split_id = original.id
        instance.scheduled_start = placement.start
        instance.scheduled_end = placement.end
        instance.scheduled_minutes = placement.minutes
        instance.schedule_status = status
        instance.is_split = total > 1
        instance.part_index = placement.part_index
        instance.total_parts = total
        instance.superseded = False
        instances.append(instance)
    return instances


class ScheduleWriter:
    """Writes stage plans to the store in one transaction per call."""

    def __init__(self, store: ScheduleStore):
        self.store = store

    def write(
        self,
        plans: list[StagePlan],
        *,
        commit: bool = True,
        as_proposed: bool = True,
        only_if_unset: bool = True,
    ) -> WriteResult:
        """Persist plans.

        Args:
            plans: Stage plans produced by the engine
            commit: False for a dry run; nothing is persisted
            as_proposed: Write with status "proposed" instead of "scheduled"
            only_if_unset: Skip stage instances that already have a scheduled_start

        Returns:
            WriteResult with written rows, updated stages and skipped stage ids
        """
        result = WriteResult()
        if not commit:
            logger.checks(f"Dry run: {len(plans)} stage plan(s) not written")
            return result

        status = ScheduleStatus.PROPOSED if as_proposed else ScheduleStatus.SCHEDULED
        with self.store.transaction():
            for plan in plans:
                current = self.store.get_stage(plan.stage.id)
                if current is None:
                    logger.warning(f"Stage {plan.stage.id} no longer exists, skipping")
                    result.skipped_stage_ids.append(plan.stage.id)
                    continue
                if only_if_unset and current.scheduled_start is not None:
                    logger.checks(f"  Skipping {current.display_name}: already scheduled")
                    result.skipped_stage_ids.append(current.id)
                    continue

                for old_part in self._live_split_parts(current):
                    old_part.superseded = True
                    self.store.save_stage(old_part)

                for instance in plan_instances(plan, current, status):
                    self.store.save_stage(instance)
                    result.wrote_slots += 1
                result.updated_count += 1

        logger.changes(
            f"Wrote {result.wrote_slots} slot(s) for {result.updated_count} stage(s) "
            f"as {status.value}"
        )
        return result

    def _live_split_parts(self, original: JobStageInstance) -> list[JobStageInstance]:
        return [
            stage
            for stage in self.store.list_stages({original.job_id})
            if stage.parent_split_id == original.id and not stage.superseded
        ]

    def preview(self, plans: list[StagePlan]) -> list[JobStageInstance]:
        """Stage instances as they would look after writing the plans (nothing persisted)."""
        planned = {plan.stage.id: plan for plan in plans}
        preview: list[JobStageInstance] = []
        for stage in self.store.list_stages():
            if stage.parent_split_id in planned:
                stage.superseded = True
            if stage.id in planned:
                preview.extend(plan_instances(planned[stage.id], stage, ScheduleStatus.PROPOSED))
                continue
            preview.append(stage)
        return preview

    def confirm(self, job_ids: list[str] | None = None) -> int:
        """Promote proposed schedules to scheduled.

        Returns:
            Number of stage instances promoted
        """
        wanted = set(job_ids) if job_ids is not None else None
        count = 0
        with self.store.transaction():
            for stage in self.store.list_stages(wanted):
                if stage.superseded or stage.schedule_status != ScheduleStatus.PROPOSED:
                    continue
                stage.schedule_status = ScheduleStatus.SCHEDULED
                self.store.save_stage(stage)
                count += 1
        logger.changes(f"Confirmed {count} proposed stage instance(s)")
        return count
