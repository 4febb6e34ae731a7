"""Data models for pressplan."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum


class StageStatus(str, Enum):
    """Operator-facing lifecycle of a stage instance."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class ScheduleStatus(str, Enum):
    """How far a stage instance's schedule has been finalized."""

    UNSCHEDULED = "unscheduled"
    PROPOSED = "proposed"  # Written for human review, not yet confirmed
    SCHEDULED = "scheduled"


class StageCategory(str, Enum):
    """Category of a production resource, set once in resource configuration."""

    PREPRESS = "prepress"
    PROOF = "proof"
    PRINTING = "printing"
    FINISHING = "finishing"
    BINDING = "binding"
    PACKAGING = "packaging"
    DISPATCH = "dispatch"
    OTHER = "other"


SCHEDULABLE_STATUSES = frozenset({StageStatus.PENDING, StageStatus.ACTIVE})


@dataclass
class ProductionJob:
    """A job (work order) entering production."""

    id: str
    wo_number: str = ""
    approved_at: datetime | None = None  # Proof approval time; drives FIFO order
    created_at: datetime | None = None

    def fifo_key(self) -> tuple[int, datetime, str]:
        """Sort key implementing oldest-approved-first.

        Approved jobs come before unapproved ones; unapproved jobs fall back to
        creation time. The job id breaks exact ties deterministically.
        """
        if self.approved_at is not None:
            return (0, self.approved_at, self.id)
        return (1, self.created_at or datetime.max.replace(tzinfo=timezone.utc), self.id)


@dataclass
class JobStageInstance:
    """One stage of one job's production path, bound to a resource."""

    id: str
    job_id: str
    resource_id: str
    sequence_order: int
    estimated_duration_minutes: int
    name: str = ""
    setup_minutes: int = 0
    status: StageStatus = StageStatus.PENDING
    part: str | None = None  # Parallel lane ("cover", "text"); None is the main lane
    dependency_group: str | None = None
    scheduled_start: datetime | None = None
    scheduled_end: datetime | None = None
    scheduled_minutes: int | None = None
    schedule_status: ScheduleStatus = ScheduleStatus.UNSCHEDULED
    is_split: bool = False
    part_index: int = 1
    total_parts: int = 1
    parent_split_id: str | None = None  # Set on split parts, points at the original instance
    superseded: bool = False

    @property
    def total_minutes(self) -> int:
        """Minutes to allocate: run time plus make-ready."""
        return self.estimated_duration_minutes + self.setup_minutes

    @property
    def is_split_part(self) -> bool:
        """True for additional instances created by splitting (not the original)."""
        return self.parent_split_id is not None

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def copy(self) -> JobStageInstance:
        return replace(self)


@dataclass
class ResourceCapacityDay:
    """Capacity ledger row for one resource on one plant-local date."""

    resource_id: str
    date: date
    capacity_minutes: int
    committed_minutes: int = 0
    version: int = 0

    @property
    def available_minutes(self) -> int:
        return self.capacity_minutes - self.committed_minutes


@dataclass
class PrecedenceViolation:
    """Advisory finding from the validator."""

    job_id: str
    violation_type: str
    stage1_name: str
    stage2_name: str
    details: str = ""


@dataclass
class Placement:
    """One contiguous booking of a stage on its resource."""

    stage_id: str
    job_id: str
    resource_id: str
    start: datetime
    end: datetime
    minutes: int
    part_index: int = 1
    total_parts: int = 1


@dataclass
class StagePlan:
    """All placements computed for one stage instance."""

    stage: JobStageInstance
    placements: list[Placement] = field(default_factory=list)

    @property
    def start(self) -> datetime:
        return self.placements[0].start

    @property
    def end(self) -> datetime:
        return self.placements[-1].end

    @property
    def scheduled_minutes(self) -> int:
        return sum(p.minutes for p in self.placements)
