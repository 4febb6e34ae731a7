"""Pytest configuration and fixtures for pressplan tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import date, datetime, timezone
from typing import Any

import pytest

from pressplan.logger import reset_logger
from pressplan.models import JobStageInstance, ProductionJob
from pressplan.resources import ResourceConfig
from pressplan.scheduler import (
    CalendarConfig,
    CalendarService,
    CapacityTracker,
    EngineResult,
    SchedulingConfig,
    SchedulingEngine,
    StageGraphLoader,
)
from pressplan.store import InMemoryScheduleStore

# 2025-01-06 is a Monday
MONDAY = date(2025, 1, 6)
TUESDAY = date(2025, 1, 7)
WEDNESDAY = date(2025, 1, 8)


def utc(day: date, hour: int = 0, minute: int = 0) -> datetime:
    """UTC instant on a date."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


APPROVED = utc(date(2025, 1, 3), 9)  # Friday before the test week


def job(job_id: str, approved: datetime | None = APPROVED, **kwargs: Any) -> ProductionJob:
    """Create a job; pass approved=None for a job without proof approval."""
    return ProductionJob(id=job_id, approved_at=approved, **kwargs)


def stage(  # noqa: PLR0913 - test helper mirrors the dataclass
    stage_id: str,
    job_id: str,
    order: int,
    minutes: int,
    resource: str = "press",
    **kwargs: Any,
) -> JobStageInstance:
    """Create a pending stage instance."""
    return JobStageInstance(
        id=stage_id,
        job_id=job_id,
        resource_id=resource,
        sequence_order=order,
        estimated_duration_minutes=minutes,
        name=kwargs.pop("name", stage_id),
        **kwargs,
    )


@pytest.fixture(autouse=True)
def clean_logger() -> Iterator[None]:
    """Reset logger configuration between tests."""
    yield
    reset_logger()


@pytest.fixture
def calendar_config() -> CalendarConfig:
    """Monday to Friday, 08:00-16:30 UTC (510 minutes), no breaks."""
    return CalendarConfig()


@pytest.fixture
def calendar(calendar_config: CalendarConfig) -> CalendarService:
    return CalendarService(calendar_config)


@pytest.fixture
def run_engine() -> Callable[..., tuple[EngineResult, InMemoryScheduleStore]]:
    """Run loader and engine over jobs and stages held in a fresh store."""

    def _run(  # noqa: PLR0913 - mirrors service collaborators
        jobs: list[ProductionJob],
        stages: list[JobStageInstance],
        *,
        now: datetime | None = None,
        calendar_config: CalendarConfig | None = None,
        resource_config: ResourceConfig | None = None,
        config: SchedulingConfig | None = None,
        start_from: datetime | None = None,
        only_if_unset: bool = True,
    ) -> tuple[EngineResult, InMemoryScheduleStore]:
        store = InMemoryScheduleStore(jobs=jobs, stages=stages)
        effective_config = config or SchedulingConfig()
        calendar = CalendarService(calendar_config, horizon_days=effective_config.horizon_days)
        loader = StageGraphLoader(store, resource_config, effective_config)
        graphs = loader.load_job_graphs(None, only_if_unset)
        tracker = CapacityTracker(store.ledger, calendar, resource_config)
        engine = SchedulingEngine(
            calendar,
            tracker,
            now=now or utc(MONDAY, 8),
            bookings=loader.load_bookings(),
            config=effective_config,
            start_from=start_from,
            replace=not only_if_unset,
        )
        return engine.schedule(graphs), store

    return _run


def placements_by_stage(result: EngineResult) -> dict[str, list[tuple[datetime, datetime]]]:
    """Map stage id to its (start, end) placements."""
    return {
        plan.stage.id: [(p.start, p.end) for p in plan.placements] for plan in result.plans
    }
