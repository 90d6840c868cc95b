"""Medication schedules, dose logging, adherence and daily check-ins.

Every local write is followed by a sync operation queued with the
coordinator. The write is committed before the queueing happens, so a
connectivity problem never loses it.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from buddymate.core.errors import ValidationError
from buddymate.core.sync.coordinator import ChangeTracker, SyncCoordinator
from buddymate.domains.communication.repository import CommunicationRepository
from buddymate.domains.health.dedup import (
    CleanupSummary,
    DuplicateSummary,
    cleanup_duplicate_medications,
    get_duplicate_summary,
)
from buddymate.domains.health.models import (
    CheckInSummary,
    DailyCheckIn,
    MedicationLog,
    MedicationSchedule,
    MedicationStatus,
    WeeklyAdherence,
)
from buddymate.domains.health.repository import HealthRepository

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

# Fields callers may change through update_medication_schedule.
_UPDATABLE_FIELDS = {"medication_name", "dosage", "frequency", "times", "photo", "is_active"}

ESCALATION_WINDOW = timedelta(hours=24)
ESCALATION_MISSES = 2


@dataclass
class MissedMedicationAlert:
    schedule_id: str
    medication_name: str
    missed_time: datetime
    consecutive_misses: int
    notified_contacts: list[str]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def week_start(moment: datetime) -> datetime:
    """Midnight UTC on the Sunday starting ``moment``'s week."""
    days_since_sunday = (moment.weekday() + 1) % 7
    start = moment - timedelta(days=days_since_sunday)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def validate_schedule_fields(
    medication_name: str,
    dosage: str,
    frequency: str,
    times: list[str],
) -> None:
    """Raises ValidationError for blank fields or malformed ``HH:MM`` times."""
    for label, value in (
        ("Medication name", medication_name),
        ("Dosage", dosage),
        ("Frequency", frequency),
    ):
        if not value or not value.strip():
            raise ValidationError(f"{label} is required")
    for time_str in times:
        if not _TIME_RE.match(time_str):
            raise ValidationError(f"Invalid time format: {time_str!r}")


class MedicationService:
    """Medication schedules and dose logs for one device.

    Usage::

        service = MedicationService(HealthRepository(store), sync=coordinator)
        schedule = await service.create_medication_schedule(
            user_id, "Lisinopril", "10mg", "daily", ["08:00"]
        )
        await service.log_medication_taken(schedule.id, scheduled_time)
    """

    def __init__(
        self,
        repository: HealthRepository,
        *,
        sync: SyncCoordinator | None = None,
        contacts: CommunicationRepository | None = None,
    ) -> None:
        self._repo = repository
        self._contacts = contacts
        self._schedules = ChangeTracker(sync, "medication_schedule")
        self._logs = ChangeTracker(sync, "medication_log")

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def get_medication_schedules(self, user_id: str) -> list[MedicationSchedule]:
        return await self._repo.get_schedules(user_id)

    async def get_medication_schedule(self, schedule_id: str) -> MedicationSchedule | None:
        return await self._repo.get_schedule(schedule_id)

    async def create_medication_schedule(
        self,
        user_id: str,
        medication_name: str,
        dosage: str,
        frequency: str,
        times: list[str],
        photo: str | None = None,
    ) -> MedicationSchedule:
        """Create and persist an active schedule.

        Raises:
            ValidationError: Blank fields or bad ``HH:MM`` times. Nothing
                is written.
        """
        validate_schedule_fields(medication_name, dosage, frequency, times)
        now = _now()
        schedule = MedicationSchedule(
            id=str(uuid.uuid4()),
            user_id=user_id,
            medication_name=medication_name.strip(),
            dosage=dosage,
            frequency=frequency,
            times=list(times),
            photo=photo,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        await self._repo.save_schedule(schedule)
        logger.info("Created medication schedule %s (%s)", schedule.id, schedule.medication_name)
        await self._schedules.created(schedule)
        return schedule

    async def update_medication_schedule(
        self,
        schedule_id: str,
        updates: dict[str, Any],
    ) -> MedicationSchedule | None:
        """Apply ``updates`` to a schedule and bump ``updated_at``.

        Returns None if no schedule has that id.

        Raises:
            ValidationError: Unknown fields or invalid values.
        """
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        current = await self._repo.get_schedule(schedule_id)
        if current is None:
            return None

        updated = replace(current, **updates, updated_at=_now())
        validate_schedule_fields(
            updated.medication_name, updated.dosage, updated.frequency, updated.times
        )
        await self._repo.save_schedule(updated)
        await self._schedules.updated(updated)
        return updated

    async def deactivate_medication_schedule(self, schedule_id: str) -> bool:
        updated = await self.update_medication_schedule(schedule_id, {"is_active": False})
        return updated is not None

    async def delete_medication_schedule(self, schedule_id: str) -> bool:
        deleted = await self._repo.delete_schedule(schedule_id)
        if deleted:
            logger.info("Deleted medication schedule %s", schedule_id)
            await self._schedules.deleted(schedule_id)
        return deleted

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    async def cleanup_duplicates(self, user_id: str) -> CleanupSummary:
        return await cleanup_duplicate_medications(self, user_id)

    async def get_duplicate_summary(self, user_id: str) -> DuplicateSummary:
        return await get_duplicate_summary(self, user_id)

    # ------------------------------------------------------------------
    # Dose logs
    # ------------------------------------------------------------------

    async def _log(
        self,
        schedule_id: str,
        scheduled_time: datetime,
        status: MedicationStatus,
        notes: str | None = None,
    ) -> MedicationLog:
        log = MedicationLog(
            id=str(uuid.uuid4()),
            schedule_id=schedule_id,
            scheduled_time=scheduled_time,
            status=status,
            taken_at=_now() if status == "taken" else None,
            notes=notes,
        )
        await self._repo.add_log(log)
        await self._logs.created(log)
        return log

    async def log_medication_taken(
        self, schedule_id: str, scheduled_time: datetime, notes: str | None = None
    ) -> MedicationLog:
        return await self._log(schedule_id, scheduled_time, "taken", notes)

    async def log_medication_skipped(
        self, schedule_id: str, scheduled_time: datetime, notes: str | None = None
    ) -> MedicationLog:
        return await self._log(schedule_id, scheduled_time, "skipped", notes)

    async def log_medication_missed(
        self, schedule_id: str, scheduled_time: datetime
    ) -> MedicationLog:
        log = await self._log(schedule_id, scheduled_time, "missed")
        await self.check_for_escalation(schedule_id)
        return log

    async def get_medication_logs(
        self, schedule_id: str, limit: int | None = None
    ) -> list[MedicationLog]:
        return await self._repo.get_logs(schedule_id, limit)

    async def check_for_escalation(self, schedule_id: str) -> MissedMedicationAlert | None:
        """Alert emergency contacts after repeated misses within 24 hours.

        Delivery is outside this layer; the alert is logged and returned.
        """
        recent = await self._repo.get_logs(schedule_id, limit=10)
        cutoff = _now() - ESCALATION_WINDOW
        missed = [log for log in recent if log.status == "missed" and log.scheduled_time >= cutoff]
        if len(missed) < ESCALATION_MISSES:
            return None

        schedule = await self._repo.get_schedule(schedule_id)
        if schedule is None:
            return None

        names: list[str] = []
        if self._contacts is not None:
            names = [c.name for c in await self._contacts.get_contacts() if c.is_emergency_contact]

        alert = MissedMedicationAlert(
            schedule_id=schedule_id,
            medication_name=schedule.medication_name,
            missed_time=missed[0].scheduled_time,
            consecutive_misses=len(missed),
            notified_contacts=names,
        )
        logger.warning(
            "Missed medication %s %d times in 24h, escalating to %d emergency contacts",
            schedule.medication_name,
            alert.consecutive_misses,
            len(names),
        )
        return alert

    # ------------------------------------------------------------------
    # Adherence
    # ------------------------------------------------------------------

    async def get_weekly_adherence(
        self,
        user_id: str,
        start: datetime | None = None,
    ) -> list[WeeklyAdherence]:
        """Per-schedule adherence for the week beginning ``start``.

        Expected doses are ``7 * len(times)``; percentage is taken over
        expected, rounded.
        """
        start = start or week_start(_now())
        end = start + timedelta(days=7) - timedelta(milliseconds=1)

        summaries: list[WeeklyAdherence] = []
        for schedule in await self.get_medication_schedules(user_id):
            logs = [
                log
                for log in await self._repo.get_logs(schedule.id)
                if start <= log.scheduled_time <= end
            ]
            expected = 7 * len(schedule.times)
            taken = sum(1 for log in logs if log.status == "taken")
            summaries.append(
                WeeklyAdherence(
                    schedule_id=schedule.id,
                    medication_name=schedule.medication_name,
                    total_doses=expected,
                    taken_doses=taken,
                    missed_doses=sum(1 for log in logs if log.status == "missed"),
                    skipped_doses=sum(1 for log in logs if log.status == "skipped"),
                    adherence_percentage=round(taken / expected * 100) if expected else 0,
                    week_start=start,
                    week_end=end,
                )
            )
        return summaries

    async def get_adherence_insights(self, user_id: str) -> list[str]:
        adherence = await self.get_weekly_adherence(user_id)
        if not adherence:
            return ["Set up your medication schedule to track adherence."]

        average = sum(a.adherence_percentage for a in adherence) / len(adherence)
        if average >= 90:
            insights = ["Excellent medication adherence! Keep up the great work!"]
        elif average >= 75:
            insights = ["Good medication adherence. Try to maintain consistency."]
        elif average >= 50:
            insights = ["Your medication adherence could improve. Consider setting more reminders."]
        else:
            insights = ["Let's work on improving your medication routine. Consider talking to your doctor."]

        low = [a.medication_name for a in adherence if a.adherence_percentage < 70]
        if low:
            insights.append(f"Pay special attention to: {', '.join(low)}")
        return insights


class CheckInService:
    """Daily mood and energy check-ins."""

    def __init__(self, repository: HealthRepository, *, sync: SyncCoordinator | None = None) -> None:
        self._repo = repository
        self._tracker = ChangeTracker(sync, "daily_check_in")

    async def create_check_in(
        self,
        user_id: str,
        mood: int,
        energy_level: int,
        *,
        date: datetime | None = None,
        concerns: str | None = None,
        notes: str | None = None,
    ) -> DailyCheckIn:
        for label, value in (("mood", mood), ("energy_level", energy_level)):
            if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 5:
                raise ValidationError(f"{label} must be an integer from 1 to 5")

        now = _now()
        check_in = DailyCheckIn(
            id=str(uuid.uuid4()),
            user_id=user_id,
            date=date or now,
            mood=mood,
            energy_level=energy_level,
            completed_at=now,
            concerns=concerns,
            notes=notes,
        )
        await self._repo.add_check_in(check_in)
        await self._tracker.created(check_in)
        return check_in

    async def get_check_in_history(self, user_id: str, limit: int = 30) -> list[DailyCheckIn]:
        return await self._repo.get_check_ins(user_id, limit)

    async def has_completed_today_check_in(self, user_id: str) -> bool:
        latest = await self._repo.get_check_ins(user_id, 1)
        return bool(latest) and latest[0].date.date() == _now().date()

    async def get_check_in_summary(self, user_id: str, days: int = 7) -> CheckInSummary:
        check_ins = await self._repo.get_check_ins(user_id, days)
        if not check_ins:
            return CheckInSummary(
                total_check_ins=0, average_mood=0.0, average_energy=0.0, recent_trend="stable"
            )

        mid = len(check_ins) // 2
        recent, older = check_ins[:mid], check_ins[mid:]
        trend = "stable"
        if recent and older:
            recent_avg = sum(c.mood + c.energy_level for c in recent) / (len(recent) * 2)
            older_avg = sum(c.mood + c.energy_level for c in older) / (len(older) * 2)
            if recent_avg - older_avg > 0.5:
                trend = "improving"
            elif recent_avg - older_avg < -0.5:
                trend = "declining"

        return CheckInSummary(
            total_check_ins=len(check_ins),
            average_mood=sum(c.mood for c in check_ins) / len(check_ins),
            average_energy=sum(c.energy_level for c in check_ins) / len(check_ins),
            recent_trend=trend,
            last_check_in=check_ins[0].date,
        )
