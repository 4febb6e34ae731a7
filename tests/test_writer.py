"""Tests for persisting stage plans."""

from datetime import datetime

from pressplan.models import JobStageInstance, Placement, ScheduleStatus, StagePlan
from pressplan.scheduler import ScheduleWriter
from pressplan.store import InMemoryScheduleStore
from tests.conftest import MONDAY, TUESDAY, WEDNESDAY, job, stage, utc


def make_plan(original: JobStageInstance, *spans: tuple[datetime, datetime]) -> StagePlan:
    placements = [
        Placement(
            stage_id=original.id,
            job_id=original.job_id,
            resource_id=original.resource_id,
            start=start,
            end=end,
            minutes=int((end - start).total_seconds() // 60),
            part_index=index,
            total_parts=len(spans),
        )
        for index, (start, end) in enumerate(spans, start=1)
    ]
    return StagePlan(stage=original, placements=placements)


def live_parts(store: InMemoryScheduleStore, original_id: str) -> list[JobStageInstance]:
    return sorted(
        (s for s in store.list_stages() if s.parent_split_id == original_id and not s.superseded),
        key=lambda s: s.part_index,
    )


class TestWrite:
    """Tests for ScheduleWriter.write."""

    def test_single_placement_updates_original(self) -> None:
        s1 = stage("s1", "J1", 1, 60)
        store = InMemoryScheduleStore(jobs=[job("J1")], stages=[s1])

        result = ScheduleWriter(store).write([make_plan(s1, (utc(MONDAY, 8), utc(MONDAY, 9)))])

        assert result.wrote_slots == 1
        assert result.updated_count == 1
        saved = store.get_stage("s1")
        assert saved is not None
        assert saved.scheduled_start == utc(MONDAY, 8)
        assert saved.scheduled_end == utc(MONDAY, 9)
        assert saved.scheduled_minutes == 60
        assert saved.schedule_status == ScheduleStatus.PROPOSED
        assert not saved.is_split

    def test_final_status(self) -> None:
        s1 = stage("s1", "J1", 1, 60)
        store = InMemoryScheduleStore(jobs=[job("J1")], stages=[s1])
        ScheduleWriter(store).write(
            [make_plan(s1, (utc(MONDAY, 8), utc(MONDAY, 9)))], as_proposed=False
        )
        saved = store.get_stage("s1")
        assert saved is not None
        assert saved.schedule_status == ScheduleStatus.SCHEDULED

    def test_split_creates_additional_instances(self) -> None:
        s1 = stage("s1", "J1", 1, 600, name="Print")
        store = InMemoryScheduleStore(jobs=[job("J1")], stages=[s1])
        plan = make_plan(
            s1,
            (utc(MONDAY, 8), utc(MONDAY, 16, 30)),
            (utc(TUESDAY, 8), utc(TUESDAY, 9, 30)),
        )

        result = ScheduleWriter(store).write([plan])

        assert result.wrote_slots == 2
        assert result.updated_count == 1
        original = store.get_stage("s1")
        assert original is not None
        assert original.is_split
        assert (original.part_index, original.total_parts) == (1, 2)
        assert original.scheduled_minutes == 510

        (part,) = live_parts(store, "s1")
        assert part.id.startswith("s1-")
        assert part.name == "Print"
        assert part.is_split_part
        assert (part.part_index, part.total_parts) == (2, 2)
        assert part.scheduled_start == utc(TUESDAY, 8)
        assert part.scheduled_minutes == 90

    def test_rewrite_supersedes_old_split_parts(self) -> None:
        s1 = stage("s1", "J1", 1, 600)
        store = InMemoryScheduleStore(jobs=[job("J1")], stages=[s1])
        writer = ScheduleWriter(store)
        writer.write(
            [
                make_plan(
                    s1,
                    (utc(MONDAY, 8), utc(MONDAY, 16, 30)),
                    (utc(TUESDAY, 8), utc(TUESDAY, 9, 30)),
                )
            ]
        )
        (old_part,) = live_parts(store, "s1")

        current = store.get_stage("s1")
        assert current is not None
        writer.write(
            [make_plan(current, (utc(WEDNESDAY, 8), utc(WEDNESDAY, 16, 30)))],
            only_if_unset=False,
        )

        assert live_parts(store, "s1") == []
        superseded = store.get_stage(old_part.id)
        assert superseded is not None
        assert superseded.superseded
        rewritten = store.get_stage("s1")
        assert rewritten is not None
        assert rewritten.scheduled_start == utc(WEDNESDAY, 8)
        assert not rewritten.is_split
        assert rewritten.total_parts == 1

    def test_only_if_unset_skips_scheduled_stage(self) -> None:
        s1 = stage("s1", "J1", 1, 60)
        store = InMemoryScheduleStore(jobs=[job("J1")], stages=[s1])
        # Another run scheduled the stage after this run loaded it
        concurrent = s1.copy()
        concurrent.scheduled_start = utc(TUESDAY, 8)
        concurrent.scheduled_end = utc(TUESDAY, 9)
        store.save_stage(concurrent)

        result = ScheduleWriter(store).write([make_plan(s1, (utc(MONDAY, 8), utc(MONDAY, 9)))])

        assert result.wrote_slots == 0
        assert result.skipped_stage_ids == ["s1"]
        saved = store.get_stage("s1")
        assert saved is not None
        assert saved.scheduled_start == utc(TUESDAY, 8)

    def test_missing_stage_is_skipped(self) -> None:
        store = InMemoryScheduleStore(jobs=[job("J1")])
        ghost = stage("ghost", "J1", 1, 60)
        result = ScheduleWriter(store).write([make_plan(ghost, (utc(MONDAY, 8), utc(MONDAY, 9)))])
        assert result.skipped_stage_ids == ["ghost"]
        assert store.list_stages() == []

    def test_dry_run_writes_nothing(self) -> None:
        s1 = stage("s1", "J1", 1, 60)
        store = InMemoryScheduleStore(jobs=[job("J1")], stages=[s1])

        result = ScheduleWriter(store).write(
            [make_plan(s1, (utc(MONDAY, 8), utc(MONDAY, 9)))], commit=False
        )

        assert result.wrote_slots == 0
        assert result.updated_count == 0
        saved = store.get_stage("s1")
        assert saved is not None
        assert saved.scheduled_start is None


class TestPreviewAndConfirm:
    """Tests for preview and confirm."""

    def test_preview_does_not_persist(self) -> None:
        s1 = stage("s1", "J1", 1, 600)
        s2 = stage("s2", "J1", 2, 60)
        store = InMemoryScheduleStore(jobs=[job("J1")], stages=[s1, s2])
        plan = make_plan(
            s1,
            (utc(MONDAY, 8), utc(MONDAY, 16, 30)),
            (utc(TUESDAY, 8), utc(TUESDAY, 9, 30)),
        )

        preview = ScheduleWriter(store).preview([plan])

        assert len(preview) == 3
        assert {s.id for s in preview if s.scheduled_start is None} == {"s2"}
        assert all(store.get_stage(s.id) is None for s in preview if s.is_split_part)

    def test_confirm_promotes_proposed(self) -> None:
        s1 = stage("s1", "J1", 1, 60)
        s2 = stage("s2", "J2", 1, 60)
        store = InMemoryScheduleStore(jobs=[job("J1"), job("J2")], stages=[s1, s2])
        writer = ScheduleWriter(store)
        writer.write(
            [
                make_plan(s1, (utc(MONDAY, 8), utc(MONDAY, 9))),
                make_plan(s2, (utc(MONDAY, 9), utc(MONDAY, 10))),
            ]
        )

        assert writer.confirm(["J1"]) == 1
        confirmed = store.get_stage("s1")
        untouched = store.get_stage("s2")
        assert confirmed is not None and untouched is not None
        assert confirmed.schedule_status == ScheduleStatus.SCHEDULED
        assert untouched.schedule_status == ScheduleStatus.PROPOSED

        assert writer.confirm() == 1
        assert writer.confirm() == 0
