"""Repository for the ``health_data`` aggregate."""

from __future__ import annotations

from buddymate.core.storage.repository import AggregateRepository
from buddymate.domains.health.models import (
    DailyCheckIn,
    HealthData,
    MedicationLog,
    MedicationSchedule,
)

HEALTH_DATA_KEY = "health_data"


class HealthRepository(AggregateRepository[HealthData]):
    """Check-ins, medication schedules and medication logs.

    Usage::

        repo = HealthRepository(store)
        await repo.save_schedule(schedule)
        schedules = await repo.get_schedules(user_id)
    """

    storage_key = HEALTH_DATA_KEY
    aggregate_type = HealthData
    default_factory = HealthData

    # ------------------------------------------------------------------
    # Medication schedules
    # ------------------------------------------------------------------

    async def get_schedules(self, user_id: str) -> list[MedicationSchedule]:
        data = await self.get_all()
        return [s for s in data.medication_schedules if s.user_id == user_id]

    async def get_schedule(self, schedule_id: str) -> MedicationSchedule | None:
        return await self.find(schedule_id, collection="medication_schedules")

    async def save_schedule(self, schedule: MedicationSchedule) -> None:
        await self.upsert(schedule, collection="medication_schedules")

    async def delete_schedule(self, schedule_id: str) -> bool:
        return await self.remove(schedule_id, collection="medication_schedules")

    # ------------------------------------------------------------------
    # Medication logs
    # ------------------------------------------------------------------

    async def add_log(self, log: MedicationLog) -> None:
        await self.upsert(log, collection="medication_logs")

    async def get_logs(self, schedule_id: str, limit: int | None = None) -> list[MedicationLog]:
        """Logs for one schedule, newest ``scheduled_time`` first."""
        data = await self.get_all()
        logs = sorted(
            (log for log in data.medication_logs if log.schedule_id == schedule_id),
            key=lambda log: log.scheduled_time,
            reverse=True,
        )
        return logs[:limit] if limit is not None else logs

    # ------------------------------------------------------------------
    # Daily check-ins
    # ------------------------------------------------------------------

    async def add_check_in(self, check_in: DailyCheckIn) -> None:
        await self.upsert(check_in, collection="daily_check_ins")

    async def get_check_ins(self, user_id: str, limit: int | None = None) -> list[DailyCheckIn]:
        """Check-ins for one user, most recent ``date`` first."""
        data = await self.get_all()
        check_ins = sorted(
            (c for c in data.daily_check_ins if c.user_id == user_id),
            key=lambda c: c.date,
            reverse=True,
        )
        return check_ins[:limit] if limit is not None else check_ins
