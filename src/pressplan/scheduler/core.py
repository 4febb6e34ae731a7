"""Core types for the scheduling system: run request/response and engine results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pressplan.models import Placement, PrecedenceViolation, StagePlan
from pressplan.timezones import format_instant, parse_instant


class ScheduleMode(str, Enum):
    """Scope of a scheduling run."""

    SINGLE = "single"  # Incremental run for the given jobs (approval trigger)
    FULL = "full"  # Replay every eligible job (manual "reschedule all")


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ScheduleRequest(_WireModel):
    """Input of one scheduling run, using the camelCase wire names."""

    mode: ScheduleMode = ScheduleMode.FULL
    job_ids: list[str] | None = Field(default=None, alias="jobIds")
    commit: bool = True
    as_proposed: bool = Field(default=True, alias="asProposed")
    only_if_unset: bool = Field(default=True, alias="onlyIfUnset")
    start_from: datetime | None = Field(default=None, alias="startFrom")

    @field_validator("start_from", mode="before")
    @classmethod
    def parse_start_from(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return parse_instant(value)

    @model_validator(mode="after")
    def validate_targets(self) -> "ScheduleRequest":
        if self.mode == ScheduleMode.SINGLE and not self.job_ids:
            raise ValueError("mode 'single' requires jobIds")
        return self


class ViolationOut(_WireModel):
    job_id: str = Field(alias="jobId")
    violation_type: str = Field(alias="violationType")
    stage1_name: str = Field(alias="stage1Name")
    stage2_name: str = Field(alias="stage2Name")
    details: str = ""

    @classmethod
    def from_violation(cls, violation: PrecedenceViolation) -> "ViolationOut":
        return cls(
            job_id=violation.job_id,
            violation_type=violation.violation_type,
            stage1_name=violation.stage1_name,
            stage2_name=violation.stage2_name,
            details=violation.details,
        )


class PlacementOut(_WireModel):
    stage_id: str = Field(alias="stageId")
    job_id: str = Field(alias="jobId")
    resource_id: str = Field(alias="resourceId")
    start: str
    end: str
    minutes: int
    part_index: int = Field(alias="partIndex")
    total_parts: int = Field(alias="totalParts")


class FailureOut(_WireModel):
    job_id: str = Field(alias="jobId")
    stage_id: str | None = Field(default=None, alias="stageId")
    error_code: str = Field(alias="errorCode")
    details: str = ""


class ScheduleResponse(_WireModel):
    """Result of one scheduling run."""

    ok: bool
    scheduled_count: int = Field(default=0, alias="scheduledCount")
    wrote_slots: int = Field(default=0, alias="wroteSlots")
    violations: list[ViolationOut] = Field(default_factory=list[ViolationOut])
    error: str | None = None
    error_code: str | None = Field(default=None, alias="errorCode")
    placements: list[PlacementOut] = Field(default_factory=list[PlacementOut])
    failures: list[FailureOut] = Field(default_factory=list[FailureOut])
    discarded_jobs: list[str] = Field(default_factory=list[str], alias="discardedJobs")

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase names, omitting unset optional error fields."""
        data = self.model_dump(by_alias=True)
        for key in ("error", "errorCode"):
            if data[key] is None:
                del data[key]
        return data


@dataclass
class JobFailure:
    """A job whose placements were all dropped because one stage failed."""

    job_id: str
    stage_id: str | None
    error_code: str
    details: str


def _default_plans() -> list[StagePlan]:
    return []


def _default_failures() -> list[JobFailure]:
    return []


@dataclass
class EngineResult:
    """Output of one engine pass: successful stage plans and per-job failures."""

    plans: list[StagePlan] = field(default_factory=_default_plans)
    failures: list[JobFailure] = field(default_factory=_default_failures)
    # Capacity freed from the current schedule of each rescheduled job (replace mode)
    vacated: dict[str, list[tuple[str, date, int]]] = field(default_factory=dict)

    @property
    def placements(self) -> list[Placement]:
        return [placement for plan in self.plans for placement in plan.placements]

    def failed_job_ids(self) -> set[str]:
        return {failure.job_id for failure in self.failures}

    def placements_out(self) -> list[PlacementOut]:
        return [
            PlacementOut(
                stage_id=p.stage_id,
                job_id=p.job_id,
                resource_id=p.resource_id,
                start=format_instant(p.start) or "",
                end=format_instant(p.end) or "",
                minutes=p.minutes,
                part_index=p.part_index,
                total_parts=p.total_parts,
            )
            for p in self.placements
        ]
