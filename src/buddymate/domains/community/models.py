"""Community records: resources, events, activities and activity payloads.

Routine items, daily routines, achievements and progress trackers are all
stored inside ``CommunityData.activities``. Each such record is an
``Activity`` whose ``kind`` says what it holds and whose ``payload`` carries
the typed record as JSON. Plain user activities have ``kind == "activity"``
and no payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

TimeOfDay = Literal["morning", "afternoon", "evening", "anytime"]
AchievementCategory = Literal["health", "social", "activity", "learning"]
AchievementLevel = Literal["bronze", "silver", "gold"]

PLAIN_ACTIVITY = "activity"
SPECIAL_KINDS = frozenset({"routine_item", "daily_routine", "achievement", "progress"})
ACTIVITY_KINDS = SPECIAL_KINDS | {PLAIN_ACTIVITY}


# ---------------------------------------------------------------------------
# Aggregate records
# ---------------------------------------------------------------------------

@dataclass
class Coordinates:
    latitude: float
    longitude: float


@dataclass
class Accessibility:
    wheelchair_accessible: bool = False
    hearing_loop: bool = False
    large_text: bool = False


@dataclass
class CommunityResource:
    id: str
    name: str
    category: str  # healthcare, transportation, social, emergency
    description: str
    address: str
    phone_number: str
    hours: str
    is_verified: bool = False
    website: str | None = None
    distance: float | None = None
    rating: float | None = None
    coordinates: Coordinates | None = None
    services: list[str] | None = None
    accessibility: Accessibility | None = None


@dataclass
class CommunityEvent:
    id: str
    title: str
    description: str
    location: str
    start_time: datetime
    end_time: datetime
    category: str  # social, educational, health, recreational
    current_participants: int = 0
    is_registered: bool = False
    max_participants: int | None = None


@dataclass
class Activity:
    """One entry of ``CommunityData.activities``.

    ``kind``, ``category`` and ``difficulty`` are free strings so records
    written by other app versions still load.
    """

    id: str
    title: str
    description: str
    user_id: str
    kind: str = PLAIN_ACTIVITY  # one of ACTIVITY_KINDS
    category: str = "exercise"
    difficulty: str = "easy"
    estimated_duration: int = 0  # minutes
    instructions: list[str] = field(default_factory=list)
    is_completed: bool = False
    completed_at: datetime | None = None
    payload: dict[str, Any] | None = None


@dataclass
class CommunityData:
    """The ``community_data`` aggregate."""

    resources: list[CommunityResource] = field(default_factory=list)
    activities: list[Activity] = field(default_factory=list)
    events: list[CommunityEvent] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Activity payloads
# ---------------------------------------------------------------------------

@dataclass
class RoutineItem:
    id: str
    title: str
    user_id: str
    time_of_day: TimeOfDay = "anytime"
    description: str | None = None
    is_completed: bool = False
    completed_at: datetime | None = None
    is_recurring: bool = True
    recurring_days: list[int] = field(default_factory=lambda: [0, 1, 2, 3, 4, 5, 6])
    order: int = 0
    reminder_enabled: bool = False
    reminder_time: str | None = None  # HH:MM


@dataclass
class DailyRoutine:
    id: str
    user_id: str
    date: str  # YYYY-MM-DD
    items: list[RoutineItem] = field(default_factory=list)
    completed_count: int = 0
    total_count: int = 0

    def recount(self) -> None:
        self.total_count = len(self.items)
        self.completed_count = sum(1 for item in self.items if item.is_completed)


@dataclass
class Achievement:
    id: str
    title: str
    description: str
    icon_name: str
    user_id: str
    category: AchievementCategory
    level: AchievementLevel
    progress: float = 0.0  # 0..100
    is_earned: bool = False
    earned_at: datetime | None = None


@dataclass
class ActivityProgress:
    id: str
    user_id: str
    activity_id: str
    started_at: datetime
    current_step_index: int = 0
    total_steps: int = 0
    is_completed: bool = False
    completed_at: datetime | None = None


@dataclass
class ActivityStep:
    id: str
    activity_id: str
    order: int
    instruction: str
    has_voice_instruction: bool = False
    estimated_duration: float | None = None  # seconds


@dataclass
class ActivitySuggestion:
    id: str
    activity: Activity
    reason: str
    suggested_at: datetime
    user_id: str
