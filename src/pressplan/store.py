"""In-memory schedule store and its YAML snapshot file.

The store stands in for the relational backend: it holds jobs, stage
instances and the capacity ledger, offers atomic compare-and-set on ledger
rows and an all-or-nothing transaction scope for stage writes. Snapshots
round-trip through a versioned YAML file so runs can be chained from the CLI.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, cast

import yaml

from .models import (
    JobStageInstance,
    ProductionJob,
    ResourceCapacityDay,
    ScheduleStatus,
    StageStatus,
)
from .timezones import format_instant, parse_instant

STORE_FILE_VERSION = 1


class InMemoryCapacityLedger:
    """Capacity rows keyed by (resource, local date), guarded by a lock."""

    def __init__(self, rows: list[ResourceCapacityDay] | None = None) -> None:
        self._rows: dict[tuple[str, date], ResourceCapacityDay] = {}
        self._lock = threading.Lock()
        for row in rows or []:
            self._rows[(row.resource_id, row.date)] = replace(row)

    def get(self, resource_id: str, day: date) -> ResourceCapacityDay | None:
        with self._lock:
            row = self._rows.get((resource_id, day))
            return replace(row) if row else None

    def insert_if_absent(self, row: ResourceCapacityDay) -> ResourceCapacityDay:
        with self._lock:
            key = (row.resource_id, row.date)
            if key not in self._rows:
                self._rows[key] = replace(row)
            return replace(self._rows[key])

    def compare_and_set(
        self, resource_id: str, day: date, expected_version: int, committed_minutes: int
    ) -> bool:
        with self._lock:
            row = self._rows.get((resource_id, day))
            if row is None or row.version != expected_version:
                return False
            row.committed_minutes = committed_minutes
            row.version += 1
            return True

    def rows(self) -> list[ResourceCapacityDay]:
        with self._lock:
            return [replace(self._rows[key]) for key in sorted(self._rows)]

    def copy(self) -> InMemoryCapacityLedger:
        """Independent ledger with the same rows (dry runs work on a copy)."""
        return InMemoryCapacityLedger(self.rows())


class InMemoryScheduleStore:
    """Jobs, stage instances and capacity ledger held in memory."""

    def __init__(
        self,
        jobs: list[ProductionJob] | None = None,
        stages: list[JobStageInstance] | None = None,
        capacity: list[ResourceCapacityDay] | None = None,
    ) -> None:
        self._jobs: dict[str, ProductionJob] = {job.id: job for job in jobs or []}
        self._stages: dict[str, JobStageInstance] = {}
        for stage in stages or []:
            self._stages[stage.id] = stage.copy()
        self.ledger = InMemoryCapacityLedger(capacity)
        self._lock = threading.RLock()

    def add_job(self, job: ProductionJob) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def list_jobs(self) -> list[ProductionJob]:
        with self._lock:
            return list(self._jobs.values())

    def get_job(self, job_id: str) -> ProductionJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list_stages(self, job_ids: set[str] | None = None) -> list[JobStageInstance]:
        with self._lock:
            return [
                stage.copy()
                for stage in self._stages.values()
                if job_ids is None or stage.job_id in job_ids
            ]

    def get_stage(self, stage_id: str) -> JobStageInstance | None:
        with self._lock:
            stage = self._stages.get(stage_id)
            return stage.copy() if stage else None

    def save_stage(self, stage: JobStageInstance) -> None:
        with self._lock:
            self._stages[stage.id] = stage.copy()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the store lock; restore the stage table if the block raises."""
        with self._lock:
            snapshot = copy.deepcopy(self._stages)
            try:
                yield
            except BaseException:
                self._stages = snapshot
                raise


def _job_to_dict(job: ProductionJob) -> dict[str, Any]:
    return {
        "wo_number": job.wo_number,
        "approved_at": format_instant(job.approved_at),
        "created_at": format_instant(job.created_at),
    }


def _stage_to_dict(stage: JobStageInstance) -> dict[str, Any]:
    data: dict[str, Any] = {
        "job_id": stage.job_id,
        "resource_id": stage.resource_id,
        "sequence_order": stage.sequence_order,
        "estimated_duration_minutes": stage.estimated_duration_minutes,
        "name": stage.name,
        "setup_minutes": stage.setup_minutes,
        "status": stage.status.value,
        "part": stage.part,
        "dependency_group": stage.dependency_group,
        "scheduled_start": format_instant(stage.scheduled_start),
        "scheduled_end": format_instant(stage.scheduled_end),
        "scheduled_minutes": stage.scheduled_minutes,
        "schedule_status": stage.schedule_status.value,
    }
    if stage.is_split:
        data.update(
            {
                "is_split": True,
                "part_index": stage.part_index,
                "total_parts": stage.total_parts,
                "parent_split_id": stage.parent_split_id,
            }
        )
    if stage.superseded:
        data["superseded"] = True
    return data


def write_store_file(path: Path, store: InMemoryScheduleStore) -> None:
    """Export the store contents to a snapshot file.

    Args:
        path: Path to write the snapshot
        store: Store to export
    """
    output: dict[str, Any] = {
        "version": STORE_FILE_VERSION,
        "jobs": {job.id: _job_to_dict(job) for job in store.list_jobs()},
        "stages": {stage.id: _stage_to_dict(stage) for stage in store.list_stages()},
        "capacity": [
            {
                "resource_id": row.resource_id,
                "date": row.date.isoformat(),
                "capacity_minutes": row.capacity_minutes,
                "committed_minutes": row.committed_minutes,
                "version": row.version,
            }
            for row in store.ledger.rows()
        ],
    }

    with path.open("w") as f:
        yaml.safe_dump(output, f, default_flow_style=False, sort_keys=False)


def _optional_instant(value: Any, what: str) -> Any:
    if value is None:
        return None
    try:
        return parse_instant(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp for {what}: {e}") from e


def _parse_job(job_id: str, raw: Any) -> ProductionJob:
    if not isinstance(raw, dict):
        raise ValueError(f"Job '{job_id}' must be a dict")
    data = cast(dict[str, Any], raw)
    return ProductionJob(
        id=str(job_id),
        wo_number=str(data.get("wo_number") or ""),
        approved_at=_optional_instant(data.get("approved_at"), f"job '{job_id}' approved_at"),
        created_at=_optional_instant(data.get("created_at"), f"job '{job_id}' created_at"),
    )


def _parse_stage(stage_id: str, raw: Any) -> JobStageInstance:
    if not isinstance(raw, dict):
        raise ValueError(f"Stage '{stage_id}' must be a dict")
    data = cast(dict[str, Any], raw)

    for required in ("job_id", "resource_id", "sequence_order", "estimated_duration_minutes"):
        if data.get(required) is None:
            raise ValueError(f"Stage '{stage_id}' missing '{required}'")

    try:
        status = StageStatus(data.get("status", StageStatus.PENDING.value))
        schedule_status = ScheduleStatus(
            data.get("schedule_status", ScheduleStatus.UNSCHEDULED.value)
        )
        sequence_order = int(data["sequence_order"])
        duration = int(data["estimated_duration_minutes"])
        setup = int(data.get("setup_minutes") or 0)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid field in stage '{stage_id}': {e}") from e

    scheduled_minutes = data.get("scheduled_minutes")
    return JobStageInstance(
        id=str(stage_id),
        job_id=str(data["job_id"]),
        resource_id=str(data["resource_id"]),
        sequence_order=sequence_order,
        estimated_duration_minutes=duration,
        name=str(data.get("name") or ""),
        setup_minutes=setup,
        status=status,
        part=data.get("part"),
        dependency_group=data.get("dependency_group"),
        scheduled_start=_optional_instant(data.get("scheduled_start"), f"stage '{stage_id}'"),
        scheduled_end=_optional_instant(data.get("scheduled_end"), f"stage '{stage_id}'"),
        scheduled_minutes=int(scheduled_minutes) if scheduled_minutes is not None else None,
        schedule_status=schedule_status,
        is_split=bool(data.get("is_split", False)),
        part_index=int(data.get("part_index", 1)),
        total_parts=int(data.get("total_parts", 1)),
        parent_split_id=data.get("parent_split_id"),
        superseded=bool(data.get("superseded", False)),
    )


def _parse_capacity_row(raw: Any) -> ResourceCapacityDay:
    if not isinstance(raw, dict):
        raise ValueError("Capacity rows must be dicts")
    data = cast(dict[str, Any], raw)
    try:
        return ResourceCapacityDay(
            resource_id=str(data["resource_id"]),
            date=date.fromisoformat(str(data["date"])),
            capacity_minutes=int(data["capacity_minutes"]),
            committed_minutes=int(data.get("committed_minutes", 0)),
            version=int(data.get("version", 0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid capacity row {data}: {e}") from e


def read_store_file(path: Path) -> InMemoryScheduleStore:
    """Load a store snapshot.

    Args:
        path: Path to the snapshot file

    Returns:
        InMemoryScheduleStore populated from the file

    Raises:
        ValueError: If the file format is invalid or the version is unsupported
    """
    with path.open() as f:
        raw_data: Any = yaml.safe_load(f)

    if not isinstance(raw_data, dict):
        raise ValueError(f"Invalid store file format: expected dict, got {type(raw_data)}")

    data = cast(dict[str, Any], raw_data)

    version = data.get("version")
    if version is None:
        raise ValueError("Store file missing 'version' field")
    if not isinstance(version, int):
        raise ValueError(f"Store file version must be int, got {type(version)}")
    if version != STORE_FILE_VERSION:
        raise ValueError(
            f"Unsupported store file version {version}, expected {STORE_FILE_VERSION}"
        )

    raw_jobs = data.get("jobs") or {}
    raw_stages = data.get("stages") or {}
    raw_capacity = data.get("capacity") or []
    if not isinstance(raw_jobs, dict):
        raise ValueError("Store file 'jobs' field must be a dict")
    if not isinstance(raw_stages, dict):
        raise ValueError("Store file 'stages' field must be a dict")
    if not isinstance(raw_capacity, list):
        raise ValueError("Store file 'capacity' field must be a list")

    jobs = [_parse_job(job_id, raw) for job_id, raw in cast(dict[str, Any], raw_jobs).items()]
    stages = [
        _parse_stage(stage_id, raw) for stage_id, raw in cast(dict[str, Any], raw_stages).items()
    ]
    known_jobs = {job.id for job in jobs}
    for stage in stages:
        if stage.job_id not in known_jobs:
            raise ValueError(f"Stage '{stage.id}' references unknown job '{stage.job_id}'")

    capacity = [_parse_capacity_row(raw) for raw in cast(list[Any], raw_capacity)]
    return InMemoryScheduleStore(jobs=jobs, stages=stages, capacity=capacity)
