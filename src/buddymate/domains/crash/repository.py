"""Repository for the ``crash_reports`` ring buffer."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from buddymate.core.storage.kv_store import KeyValueStore
from buddymate.core.storage.repository import AggregateRepository
from buddymate.domains.crash.models import CrashReport

logger = logging.getLogger(__name__)

CRASH_REPORTS_KEY = "crash_reports"
MAX_CRASH_REPORTS = 100


class CrashReportRepository(AggregateRepository[list[CrashReport]]):
    """Most recent crash reports, newest first, capped at ``max_reports``."""

    storage_key = CRASH_REPORTS_KEY
    aggregate_type = list[CrashReport]
    default_factory = list

    def __init__(self, store: KeyValueStore, *, max_reports: int = MAX_CRASH_REPORTS) -> None:
        super().__init__(store)
        self.max_reports = max_reports

    async def add(self, report: CrashReport) -> None:
        reports = await self.get_all()
        await self.save_all([report, *reports][: self.max_reports])

    async def prune_older_than(self, days: int, *, now: datetime | None = None) -> int:
        """Drop reports at or before ``now - days``. Returns how many were removed."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        reports = await self.get_all()
        kept = [report for report in reports if report.timestamp > cutoff]
        removed = len(reports) - len(kept)
        if removed:
            await self.save_all(kept)
            logger.info("Pruned %d crash reports older than %d days", removed, days)
        return removed
