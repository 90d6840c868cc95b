"""Health records: daily check-ins, medication schedules and dose logs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

MedicationStatus = Literal["taken", "missed", "skipped"]


@dataclass
class DailyCheckIn:
    id: str
    user_id: str
    date: datetime
    mood: int  # 1 (very sad) .. 5 (very happy)
    energy_level: int  # 1..5
    completed_at: datetime
    concerns: str | None = None
    notes: str | None = None


@dataclass
class MedicationSchedule:
    """A medication the user takes at fixed ``HH:MM`` times each day."""

    id: str
    user_id: str
    medication_name: str
    dosage: str
    frequency: str
    created_at: datetime
    updated_at: datetime
    times: list[str] = field(default_factory=list)
    photo: str | None = None
    is_active: bool = True


@dataclass
class MedicationLog:
    """One scheduled dose and what happened to it.

    ``schedule_id`` may point at a schedule that has since been deleted.
    """

    id: str
    schedule_id: str
    scheduled_time: datetime
    status: MedicationStatus
    taken_at: datetime | None = None
    notes: str | None = None


@dataclass
class HealthData:
    """The ``health_data`` aggregate."""

    daily_check_ins: list[DailyCheckIn] = field(default_factory=list)
    medication_schedules: list[MedicationSchedule] = field(default_factory=list)
    medication_logs: list[MedicationLog] = field(default_factory=list)


@dataclass
class WeeklyAdherence:
    schedule_id: str
    medication_name: str
    total_doses: int
    taken_doses: int
    missed_doses: int
    skipped_doses: int
    adherence_percentage: int
    week_start: datetime
    week_end: datetime


@dataclass
class CheckInSummary:
    total_check_ins: int
    average_mood: float
    average_energy: float
    recent_trend: Literal["improving", "stable", "declining"]
    last_check_in: datetime | None = None
