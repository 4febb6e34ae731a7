"""Protocol definitions for the scheduling system's persistence collaborators."""

from contextlib import AbstractContextManager
from datetime import date
from typing import Protocol

from pressplan.models import JobStageInstance, ProductionJob, ResourceCapacityDay


class CapacityLedger(Protocol):
    """Per (resource, local date) capacity rows with compare-and-set updates."""

    def get(self, resource_id: str, day: date) -> ResourceCapacityDay | None:
        """Return a detached copy of the row, or None if it does not exist yet."""
        ...

    def insert_if_absent(self, row: ResourceCapacityDay) -> ResourceCapacityDay:
        """Create the row unless another writer already did; return the stored row."""
        ...

    def compare_and_set(
        self, resource_id: str, day: date, expected_version: int, committed_minutes: int
    ) -> bool:
        """Set committed minutes if the row is still at ``expected_version``.

        A successful update increments the row version.
        """
        ...

    def rows(self) -> list[ResourceCapacityDay]:
        """All rows, ordered by resource and date."""
        ...


class ScheduleStore(Protocol):
    """Read access to jobs and stages, write access to schedule fields."""

    ledger: CapacityLedger

    def list_jobs(self) -> list[ProductionJob]:
        """All jobs."""
        ...

    def get_job(self, job_id: str) -> ProductionJob | None:
        """Look up a job by id."""
        ...

    def list_stages(self, job_ids: set[str] | None = None) -> list[JobStageInstance]:
        """Detached copies of stage instances, optionally restricted to some jobs."""
        ...

    def get_stage(self, stage_id: str) -> JobStageInstance | None:
        """Detached copy of one stage instance."""
        ...

    def save_stage(self, stage: JobStageInstance) -> None:
        """Insert or replace a stage instance."""
        ...

    def transaction(self) -> AbstractContextManager[None]:
        """All-or-nothing scope for stage writes."""
        ...

