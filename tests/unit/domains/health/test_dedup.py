"""Tests for duplicate medication schedule cleanup."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from buddymate.domains.health.dedup import (
    cleanup_duplicate_medications,
    get_duplicate_summary,
    group_by_medication,
    medication_key,
)
from buddymate.domains.health.models import MedicationSchedule


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


_BASE = datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


def _schedule(schedule_id: str, name: str, minutes: int = 0) -> MedicationSchedule:
    created = _BASE + timedelta(minutes=minutes)
    return MedicationSchedule(
        id=schedule_id,
        user_id="u1",
        medication_name=name,
        dosage="10mg",
        frequency="daily",
        created_at=created,
        updated_at=created,
        times=["08:00"],
    )


class FakeScheduleStore:
    """In-memory ScheduleStore whose deletes can be made to fail per id."""

    def __init__(self, schedules, *, failing=()):
        self.schedules = list(schedules)
        self.failing = set(failing)
        self.delete_calls: list[str] = []

    async def get_medication_schedules(self, user_id):
        return [s for s in self.schedules if s.user_id == user_id]

    async def delete_medication_schedule(self, schedule_id):
        self.delete_calls.append(schedule_id)
        if schedule_id in self.failing:
            raise RuntimeError("storage busy")
        before = len(self.schedules)
        self.schedules = [s for s in self.schedules if s.id != schedule_id]
        return len(self.schedules) < before


class TestGrouping:
    def test_key_ignores_case_and_whitespace(self):
        assert medication_key("  Lisinopril ") == medication_key("lisinopril")

    def test_groups_newest_first(self):
        groups = group_by_medication([
            _schedule("old", "Aspirin", 0),
            _schedule("new", "aspirin ", 30),
            _schedule("other", "Metformin", 10),
        ])
        assert [s.id for s in groups["aspirin"]] == ["new", "old"]
        assert [s.id for s in groups["metformin"]] == ["other"]

    def test_equal_created_at_keeps_input_order(self):
        groups = group_by_medication([
            _schedule("first", "Aspirin", 5),
            _schedule("second", "ASPIRIN", 5),
            _schedule("older", "aspirin", 0),
        ])
        assert [s.id for s in groups["aspirin"]] == ["first", "second", "older"]


class TestCleanup:
    def test_tie_keeps_first_in_input_order_on_every_run(self):
        for _ in range(3):
            store = FakeScheduleStore([
                _schedule("t1", "Warfarin", 15),
                _schedule("t2", "warfarin", 15),
                _schedule("t3", " Warfarin", 15),
            ])
            summary = _run(cleanup_duplicate_medications(store, "u1"))

            assert [s.id for s in store.schedules] == ["t1"]
            assert store.delete_calls == ["t2", "t3"]
            assert summary.duplicates_removed == 2

    def test_keeps_newest_of_each_medication(self):
        store = FakeScheduleStore([
            _schedule("a1", "Aspirin", 0),
            _schedule("a2", "ASPIRIN", 20),
            _schedule("a3", "aspirin", 10),
            _schedule("m1", "Metformin", 5),
        ])

        summary = _run(cleanup_duplicate_medications(store, "u1"))

        assert summary.total_medications == 4
        assert summary.duplicates_removed == 2
        assert summary.active_medications == 2
        assert summary.failed_deletions == 0
        assert sorted(s.id for s in store.schedules) == ["a2", "m1"]

    def test_no_duplicates_deletes_nothing(self):
        store = FakeScheduleStore([_schedule("a1", "Aspirin"), _schedule("m1", "Metformin")])
        summary = _run(cleanup_duplicate_medications(store, "u1"))
        assert summary.duplicates_removed == 0
        assert store.delete_calls == []

    def test_failed_deletion_does_not_stop_the_pass(self):
        store = FakeScheduleStore(
            [
                _schedule("a1", "Aspirin", 0),
                _schedule("a2", "Aspirin", 10),
                _schedule("a3", "Aspirin", 20),
            ],
            failing={"a2"},
        )

        summary = _run(cleanup_duplicate_medications(store, "u1"))

        assert summary.failed_deletions == 1
        assert summary.duplicates_removed == 1
        assert set(store.delete_calls) == {"a1", "a2"}
        assert sorted(s.id for s in store.schedules) == ["a2", "a3"]

    def test_running_twice_is_stable(self):
        store = FakeScheduleStore([_schedule("a1", "Aspirin", 0), _schedule("a2", "Aspirin", 5)])
        _run(cleanup_duplicate_medications(store, "u1"))
        second = _run(cleanup_duplicate_medications(store, "u1"))
        assert second.duplicates_removed == 0
        assert [s.id for s in store.schedules] == ["a2"]


class TestSummary:
    def test_preview_counts(self):
        store = FakeScheduleStore([
            _schedule("a1", "Aspirin", 0),
            _schedule("a2", "aspirin", 5),
            _schedule("a3", "Aspirin", 9),
            _schedule("m1", "Metformin"),
        ])

        summary = _run(get_duplicate_summary(store, "u1"))

        assert summary.total_medications == 4
        assert summary.unique_medications == 2
        assert summary.duplicates == 2
        assert len(summary.duplicate_groups) == 1
        group = summary.duplicate_groups[0]
        assert group.medication_name == "aspirin"
        assert group.count == 3
        assert group.entries[0].id == "a3"
        assert store.delete_calls == []
