"""Tests for CheckInService."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from buddymate.core.errors import ValidationError
from buddymate.domains.health.repository import HealthRepository
from buddymate.domains.health.service import CheckInService


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def service(store):
    return CheckInService(HealthRepository(store))


def _days_ago(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


class TestCreateCheckIn:
    def test_create_and_history(self, service):
        check_in = _run(service.create_check_in("u1", 4, 3, notes="slept well"))
        assert check_in.completed_at is not None
        assert [c.id for c in _run(service.get_check_in_history("u1"))] == [check_in.id]
        assert _run(service.get_check_in_history("u2")) == []

    @pytest.mark.parametrize("mood, energy", [(0, 3), (6, 3), (3, 0), (3, True)])
    def test_scores_must_be_one_to_five(self, service, mood, energy):
        with pytest.raises(ValidationError):
            _run(service.create_check_in("u1", mood, energy))
        assert _run(service.get_check_in_history("u1")) == []

    def test_completed_today(self, service):
        assert _run(service.has_completed_today_check_in("u1")) is False
        _run(service.create_check_in("u1", 3, 3))
        assert _run(service.has_completed_today_check_in("u1")) is True

    def test_yesterday_does_not_count_as_today(self, service):
        _run(service.create_check_in("u1", 3, 3, date=_days_ago(1)))
        assert _run(service.has_completed_today_check_in("u1")) is False


class TestSummary:
    def test_empty(self, service):
        summary = _run(service.get_check_in_summary("u1"))
        assert summary.total_check_ins == 0
        assert summary.recent_trend == "stable"
        assert summary.last_check_in is None

    def test_improving_trend(self, service):
        for days, score in ((4, 2), (3, 2), (2, 5), (1, 5)):
            _run(service.create_check_in("u1", score, score, date=_days_ago(days)))

        summary = _run(service.get_check_in_summary("u1"))

        assert summary.total_check_ins == 4
        assert summary.average_mood == 3.5
        assert summary.recent_trend == "improving"
        assert summary.last_check_in.date() == _days_ago(1).date()

    def test_declining_trend(self, service):
        for days, score in ((2, 5), (1, 1)):
            _run(service.create_check_in("u1", score, score, date=_days_ago(days)))
        assert _run(service.get_check_in_summary("u1")).recent_trend == "declining"

    def test_small_change_is_stable(self, service):
        for days, score in ((2, 3), (1, 3)):
            _run(service.create_check_in("u1", score, score, date=_days_ago(days)))
        assert _run(service.get_check_in_summary("u1")).recent_trend == "stable"

    def test_history_limit(self, service):
        for days in range(5):
            _run(service.create_check_in("u1", 3, 3, date=_days_ago(days)))
        assert len(_run(service.get_check_in_history("u1", limit=3))) == 3
