"""Tests for the advisory precedence validator."""

from datetime import datetime, time
from typing import Any

from pressplan.models import JobStageInstance
from pressplan.scheduler import BreakPeriod, CalendarConfig, CalendarService, PrecedenceValidator
from pressplan.scheduler.validator import (
    BREAK_OVERLAP,
    DEPENDENCY_GROUP,
    PRECEDENCE,
    RESOURCE_OVERLAP,
)
from tests.conftest import MONDAY, TUESDAY, stage, utc


def scheduled(  # noqa: PLR0913
    stage_id: str, job_id: str, order: int, start: datetime, end: datetime, **kwargs: Any
) -> JobStageInstance:
    minutes = int((end - start).total_seconds() // 60)
    return stage(
        stage_id,
        job_id,
        order,
        minutes,
        scheduled_start=start,
        scheduled_end=end,
        scheduled_minutes=minutes,
        **kwargs,
    )


def test_clean_schedule_has_no_violations() -> None:
    stages = [
        scheduled("s1", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 10)),
        scheduled("s2", "J1", 2, utc(MONDAY, 10), utc(MONDAY, 11), resource="folder"),
    ]
    assert PrecedenceValidator(stages).validate() == []


def test_stage_starting_before_predecessor_ends() -> None:
    stages = [
        scheduled("s1", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 10)),
        scheduled("s2", "J1", 2, utc(MONDAY, 9), utc(MONDAY, 11), resource="folder"),
    ]
    (violation,) = PrecedenceValidator(stages).validate()
    assert violation.violation_type == PRECEDENCE
    assert violation.job_id == "J1"
    assert (violation.stage1_name, violation.stage2_name) == ("s1", "s2")


def test_split_parts_extend_the_span() -> None:
    stages = [
        scheduled("s1", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 16, 30), is_split=True, total_parts=2),
        scheduled(
            "s1-b",
            "J1",
            1,
            utc(TUESDAY, 8),
            utc(TUESDAY, 9, 30),
            is_split=True,
            part_index=2,
            total_parts=2,
            parent_split_id="s1",
        ),
        scheduled("s2", "J1", 2, utc(TUESDAY, 9), utc(TUESDAY, 10), resource="folder"),
    ]
    violations = PrecedenceValidator(stages).check_precedence()
    assert [v.violation_type for v in violations] == [PRECEDENCE]


def test_parallel_lanes_may_overlap() -> None:
    stages = [
        scheduled("cover", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 12), part="cover"),
        scheduled("text", "J1", 2, utc(MONDAY, 9), utc(MONDAY, 10), part="text", resource="b"),
    ]
    assert PrecedenceValidator(stages).validate() == []


def test_dependency_group_across_lanes() -> None:
    stages = [
        scheduled(
            "cover", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 12), part="cover", dependency_group="g"
        ),
        scheduled(
            "text",
            "J1",
            2,
            utc(MONDAY, 9),
            utc(MONDAY, 10),
            part="text",
            dependency_group="g",
            resource="b",
        ),
    ]
    (violation,) = PrecedenceValidator(stages).validate()
    assert violation.violation_type == DEPENDENCY_GROUP


def test_resource_overlap_between_jobs() -> None:
    stages = [
        scheduled("a", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 10)),
        scheduled("b", "J2", 1, utc(MONDAY, 9, 30), utc(MONDAY, 11)),
        scheduled("c", "J3", 1, utc(MONDAY, 11), utc(MONDAY, 12)),
    ]
    violations = PrecedenceValidator(stages).check_resource_overlap()
    assert len(violations) == 1
    assert violations[0].violation_type == RESOURCE_OVERLAP
    assert (violations[0].stage1_name, violations[0].stage2_name) == ("a", "b")


def test_job_filter() -> None:
    stages = [
        scheduled("a", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 10)),
        scheduled("b", "J2", 1, utc(MONDAY, 9), utc(MONDAY, 11)),
        scheduled("c1", "J3", 1, utc(MONDAY, 12), utc(MONDAY, 14), resource="x"),
        scheduled("c2", "J3", 2, utc(MONDAY, 13), utc(MONDAY, 15), resource="y"),
    ]
    validator = PrecedenceValidator(stages)
    assert validator.validate({"J3"})[0].violation_type == PRECEDENCE
    assert len(validator.validate({"J3"})) == 1
    assert [v.violation_type for v in validator.validate({"J2"})] == [RESOURCE_OVERLAP]


def test_superseded_instances_are_ignored() -> None:
    stages = [
        scheduled("a", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 10)),
        scheduled("old", "J2", 1, utc(MONDAY, 9), utc(MONDAY, 11), superseded=True),
    ]
    assert PrecedenceValidator(stages).validate() == []


def test_break_overlap_with_calendar() -> None:
    calendar = CalendarService(CalendarConfig(breaks=[BreakPeriod(start=time(12, 0), minutes=30)]))
    stages = [
        scheduled("ok", "J1", 1, utc(MONDAY, 8), utc(MONDAY, 12)),
        scheduled("lunch", "J2", 1, utc(MONDAY, 11, 30), utc(MONDAY, 13), resource="folder"),
    ]
    violations = PrecedenceValidator(stages, calendar).validate()
    assert [(v.violation_type, v.stage1_name) for v in violations] == [(BREAK_OVERLAP, "lunch")]

    # Without a calendar the break check is skipped
    assert PrecedenceValidator(stages).validate() == []


def test_unscheduled_stages_are_ignored() -> None:
    stages = [
        stage("s1", "J1", 1, 60),
        scheduled("s2", "J1", 2, utc(MONDAY, 8), utc(MONDAY, 9)),
    ]
    assert PrecedenceValidator(stages).validate() == []
