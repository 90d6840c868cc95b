"""Routines, achievements and activity progress.

These records have no storage key of their own. Each one is kept inside
``CommunityData.activities`` as an :class:`Activity` with a ``kind`` and a
JSON ``payload``. The repositories here find records by ``kind`` and decode
the payload; an activity whose payload is missing or malformed is skipped
with a warning, never treated as corrupt data.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Generic, TypeVar, get_args

from buddymate.core.errors import DecodeError, ValidationError
from buddymate.core.storage.codec import decode_data, to_primitive
from buddymate.core.sync.coordinator import ChangeTracker, SyncCoordinator
from buddymate.domains.community.models import (
    PLAIN_ACTIVITY,
    Achievement,
    Activity,
    ActivityProgress,
    ActivityStep,
    ActivitySuggestion,
    CommunityData,
    DailyRoutine,
    RoutineItem,
    TimeOfDay,
)
from buddymate.domains.community.repository import CommunityRepository
from buddymate.domains.community.seeds import (
    load_default_achievements,
    load_default_routine_items,
)

logger = logging.getLogger(__name__)

P = TypeVar("P")

MAX_SUGGESTIONS = 3

# Progress added per qualifying event, as a percentage of the goal.
EARLY_BIRD_STEP = 33.33  # 3 days
CONSISTENCY_STEP = 14.29  # 7 days
KNOWLEDGE_STEP = 33.33  # 3 activities


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return _now().date()


# ---------------------------------------------------------------------------
# Payload <-> Activity
# ---------------------------------------------------------------------------

def routine_item_activity(item: RoutineItem) -> Activity:
    return Activity(
        id=item.id,
        kind="routine_item",
        title=item.title,
        description=item.description or "",
        user_id=item.user_id,
        category="exercise",
        payload=to_primitive(item),
    )


def daily_routine_activity(routine: DailyRoutine) -> Activity:
    return Activity(
        id=routine.id,
        kind="daily_routine",
        title=f"Daily Routine: {routine.date}",
        description=(
            f"Daily routine with {routine.completed_count}/{routine.total_count} items completed"
        ),
        user_id=routine.user_id,
        category="exercise",
        estimated_duration=60,
        instructions=[item.title for item in routine.items],
        is_completed=routine.completed_count == routine.total_count,
        payload=to_primitive(routine),
    )


def achievement_activity(achievement: Achievement) -> Activity:
    return Activity(
        id=achievement.id,
        kind="achievement",
        title=achievement.title,
        description=achievement.description,
        user_id=achievement.user_id,
        category="social",
        is_completed=achievement.is_earned,
        completed_at=achievement.earned_at,
        payload=to_primitive(achievement),
    )


def progress_activity(progress: ActivityProgress) -> Activity:
    return Activity(
        id=progress.id,
        kind="progress",
        title=f"Progress: {progress.activity_id}",
        description="Activity progress tracking",
        user_id=progress.user_id,
        category="exercise",
        is_completed=progress.is_completed,
        completed_at=progress.completed_at,
        payload=to_primitive(progress),
    )


class _PayloadStore(Generic[P]):
    """Typed view over the activities of one ``kind``.

    ``put`` and ``drop`` change an in-memory aggregate so callers can batch
    several changes into one blob write.
    """

    def __init__(
        self,
        community: CommunityRepository,
        kind: str,
        payload_type: type,
        to_activity: Callable[[Any], Activity],
    ) -> None:
        self._community = community
        self.kind = kind
        self._payload_type = payload_type
        self._to_activity = to_activity

    def decode(self, activity: Activity) -> P | None:
        if activity.kind != self.kind or activity.payload is None:
            return None
        result = decode_data(activity.payload, self._payload_type)
        if isinstance(result, DecodeError):
            logger.warning("Skipping %s activity %s: %s", self.kind, activity.id, result)
            return None
        return result

    def records(self, aggregate: CommunityData, user_id: str | None = None) -> list[P]:
        out: list[P] = []
        for activity in aggregate.activities:
            if user_id is not None and activity.user_id != user_id:
                continue
            record = self.decode(activity)
            if record is not None:
                out.append(record)
        return out

    def _index_of(self, aggregate: CommunityData, record_id: str) -> int | None:
        for index, activity in enumerate(aggregate.activities):
            if activity.kind != self.kind:
                continue
            if activity.id == record_id:
                return index
            # Migrated progress records keep their old activity id.
            if isinstance(activity.payload, dict) and activity.payload.get("id") == record_id:
                return index
        return None

    def put(self, aggregate: CommunityData, record: Any) -> None:
        activity = self._to_activity(record)
        index = self._index_of(aggregate, record.id)
        if index is None:
            aggregate.activities.append(activity)
        else:
            activity.id = aggregate.activities[index].id
            aggregate.activities[index] = activity

    def drop(self, aggregate: CommunityData, record_id: str) -> bool:
        index = self._index_of(aggregate, record_id)
        if index is None:
            return False
        del aggregate.activities[index]
        return True

    async def load(self, user_id: str | None = None) -> list[P]:
        return self.records(await self._community.get_all(), user_id)

    async def get(self, record_id: str) -> P | None:
        aggregate = await self._community.get_all()
        index = self._index_of(aggregate, record_id)
        return None if index is None else self.decode(aggregate.activities[index])

    async def save(self, record: Any) -> None:
        aggregate = await self._community.get_all()
        self.put(aggregate, record)
        await self._community.save_all(aggregate)

    async def save_many(self, records: list[Any]) -> None:
        aggregate = await self._community.get_all()
        for record in records:
            self.put(aggregate, record)
        await self._community.save_all(aggregate)

    async def delete(self, record_id: str) -> bool:
        aggregate = await self._community.get_all()
        if not self.drop(aggregate, record_id):
            return False
        await self._community.save_all(aggregate)
        return True


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

class RoutineRepository:
    """Routine template items and per-day routines.

    The template is seeded from ``seed_data/routine_items.yaml`` the first
    time a user has none.
    """

    def __init__(self, community: CommunityRepository) -> None:
        self.items: _PayloadStore[RoutineItem] = _PayloadStore(
            community, "routine_item", RoutineItem, routine_item_activity
        )
        self.routines: _PayloadStore[DailyRoutine] = _PayloadStore(
            community, "daily_routine", DailyRoutine, daily_routine_activity
        )

    async def get_template_items(self, user_id: str) -> list[RoutineItem]:
        items = await self.items.load(user_id)
        if not items:
            items = load_default_routine_items(user_id)
            await self.items.save_many(items)
            logger.info("Seeded %d routine items for %s", len(items), user_id)
        return sorted(items, key=lambda item: item.order)

    async def save_template_item(self, item: RoutineItem) -> None:
        await self.items.save(item)

    async def delete_template_item(self, item_id: str) -> bool:
        return await self.items.delete(item_id)

    async def find_routine(self, user_id: str, day: date) -> DailyRoutine | None:
        key = day.isoformat()
        for routine in await self.routines.load(user_id):
            if routine.date == key:
                return routine
        return None

    async def get_routine(self, routine_id: str) -> DailyRoutine | None:
        return await self.routines.get(routine_id)

    async def save_routine(self, routine: DailyRoutine) -> None:
        await self.routines.save(routine)


class AchievementRepository:
    """Per-user achievements, seeded from ``seed_data/achievements.yaml``."""

    def __init__(self, community: CommunityRepository) -> None:
        self._store: _PayloadStore[Achievement] = _PayloadStore(
            community, "achievement", Achievement, achievement_activity
        )

    async def get_achievements(self, user_id: str) -> list[Achievement]:
        achievements = await self._store.load(user_id)
        if not achievements:
            achievements = load_default_achievements(user_id)
            await self._store.save_many(achievements)
            logger.info("Seeded %d achievements for %s", len(achievements), user_id)
        return achievements

    async def get_achievement(self, achievement_id: str) -> Achievement | None:
        return await self._store.get(achievement_id)

    async def save_achievement(self, achievement: Achievement) -> None:
        await self._store.save(achievement)


class ProgressRepository:
    def __init__(self, community: CommunityRepository) -> None:
        self.store: _PayloadStore[ActivityProgress] = _PayloadStore(
            community, "progress", ActivityProgress, progress_activity
        )

    async def get_progress(self, progress_id: str) -> ActivityProgress | None:
        return await self.store.get(progress_id)

    async def list_progress(self, user_id: str) -> list[ActivityProgress]:
        return await self.store.load(user_id)

    async def save_progress(self, progress: ActivityProgress) -> None:
        await self.store.save(progress)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ActivitiesService:
    """Daily routines, achievements, suggestions and guided activities.

    Usage::

        service = ActivitiesService(CommunityRepository(store), sync=coordinator)
        routine = await service.get_daily_routine(user_id)
        await service.update_routine_item_status(
            user_id, routine.id, routine.items[0].id, True
        )
    """

    def __init__(
        self,
        community: CommunityRepository,
        *,
        sync: SyncCoordinator | None = None,
    ) -> None:
        self._community = community
        self.routines = RoutineRepository(community)
        self.achievements = AchievementRepository(community)
        self.progress = ProgressRepository(community)
        self._track_activity = ChangeTracker(sync, "activity")
        self._track_routine = ChangeTracker(sync, "daily_routine")
        self._track_routine_item = ChangeTracker(sync, "routine_item")
        self._track_achievement = ChangeTracker(sync, "achievement")
        self._track_progress = ChangeTracker(sync, "activity_progress")

    # ------------------------------------------------------------------
    # Plain activities
    # ------------------------------------------------------------------

    async def get_user_activities(self, user_id: str) -> list[Activity]:
        return [
            a for a in await self._community.get_activities(kind=PLAIN_ACTIVITY)
            if a.user_id == user_id
        ]

    async def add_activity(
        self,
        user_id: str,
        title: str,
        description: str,
        *,
        category: str = "exercise",
        difficulty: str = "easy",
        estimated_duration: int = 0,
        instructions: list[str] | None = None,
    ) -> Activity:
        if not title or not title.strip():
            raise ValidationError("Activity title is required")
        activity = Activity(
            id=str(uuid.uuid4()),
            kind=PLAIN_ACTIVITY,
            title=title.strip(),
            description=description,
            user_id=user_id,
            category=category,
            difficulty=difficulty,
            estimated_duration=estimated_duration,
            instructions=list(instructions or []),
        )
        await self._community.save_activity(activity)
        await self._track_activity.created(activity)
        return activity

    # ------------------------------------------------------------------
    # Daily routine
    # ------------------------------------------------------------------

    async def create_daily_routine(self, user_id: str, day: date | None = None) -> DailyRoutine:
        day = day or _today()
        templates = await self.routines.get_template_items(user_id)
        routine = DailyRoutine(
            id=f"routine-{uuid.uuid4().hex}",
            user_id=user_id,
            date=day.isoformat(),
            items=[replace(item, is_completed=False, completed_at=None) for item in templates],
        )
        routine.recount()
        await self.routines.save_routine(routine)
        await self._track_routine.created(routine)
        return routine

    async def get_daily_routine(self, user_id: str, day: date | None = None) -> DailyRoutine:
        """The routine for ``day`` (default today), created from the template if missing."""
        day = day or _today()
        routine = await self.routines.find_routine(user_id, day)
        if routine is None:
            routine = await self.create_daily_routine(user_id, day)
        return routine

    async def update_routine_item_status(
        self,
        user_id: str,
        routine_id: str,
        item_id: str,
        is_completed: bool,
    ) -> DailyRoutine | None:
        """Tick or untick an item. Returns None if routine or item is unknown."""
        routine = await self.routines.get_routine(routine_id)
        if routine is None or routine.user_id != user_id:
            return None

        for index, item in enumerate(routine.items):
            if item.id == item_id:
                routine.items[index] = replace(
                    item,
                    is_completed=is_completed,
                    completed_at=_now() if is_completed else None,
                )
                break
        else:
            return None

        routine.recount()
        await self.routines.save_routine(routine)
        await self._track_routine.updated(routine)

        if is_completed:
            await self.check_for_achievements(user_id, routine)
        return routine

    async def add_routine_item(
        self,
        user_id: str,
        title: str,
        *,
        time_of_day: str = "anytime",
        description: str | None = None,
        is_recurring: bool = True,
        reminder_time: str | None = None,
    ) -> RoutineItem:
        """Add an item to today's routine. Recurring items also join the template."""
        if not title or not title.strip():
            raise ValidationError("Routine item title is required")
        if time_of_day not in get_args(TimeOfDay):
            raise ValidationError(f"Unknown time of day: {time_of_day!r}")
        routine = await self.get_daily_routine(user_id)
        item = RoutineItem(
            id=f"routine-item-{uuid.uuid4().hex}",
            title=title.strip(),
            user_id=user_id,
            time_of_day=time_of_day,  # type: ignore[arg-type]
            description=description,
            is_recurring=is_recurring,
            order=len(routine.items),
            reminder_enabled=reminder_time is not None,
            reminder_time=reminder_time,
        )
        routine.items.append(item)
        routine.recount()
        await self.routines.save_routine(routine)
        await self._track_routine.updated(routine)

        if is_recurring:
            await self.routines.save_template_item(item)
            await self._track_routine_item.created(item)
        return item

    async def remove_routine_item(self, user_id: str, routine_id: str, item_id: str) -> bool:
        routine = await self.routines.get_routine(routine_id)
        if routine is None or routine.user_id != user_id:
            return False

        kept = [item for item in routine.items if item.id != item_id]
        if len(kept) == len(routine.items):
            return False
        routine.items = kept
        routine.recount()
        await self.routines.save_routine(routine)
        await self._track_routine.updated(routine)

        if await self.routines.delete_template_item(item_id):
            await self._track_routine_item.deleted(item_id)
        return True

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    async def get_achievements(self, user_id: str) -> list[Achievement]:
        return await self.achievements.get_achievements(user_id)

    async def update_achievement_progress(
        self,
        user_id: str,
        achievement_id: str,
        progress: float,
    ) -> Achievement | None:
        """Set progress, clamped to 0..100. Reaching 100 earns the achievement."""
        achievement = await self.achievements.get_achievement(achievement_id)
        if achievement is None or achievement.user_id != user_id:
            return None

        achievement.progress = min(100.0, max(0.0, float(progress)))
        if achievement.progress >= 100 and not achievement.is_earned:
            achievement.is_earned = True
            achievement.earned_at = _now()
            logger.info("Achievement earned: %s (%s)", achievement.title, user_id)

        await self.achievements.save_achievement(achievement)
        await self._track_achievement.updated(achievement)
        return achievement

    async def _bump(self, achievements: list[Achievement], title: str, step: float) -> None:
        for achievement in achievements:
            if achievement.title == title:
                await self.update_achievement_progress(
                    achievement.user_id, achievement.id, min(100.0, achievement.progress + step)
                )
                return

    async def check_for_achievements(self, user_id: str, routine: DailyRoutine | None = None) -> None:
        """Advance routine-based achievements from the state of ``routine``."""
        routine = routine or await self.get_daily_routine(user_id)
        achievements = await self.get_achievements(user_id)

        morning = [item for item in routine.items if item.time_of_day == "morning"]
        if morning and all(item.is_completed for item in morning):
            await self._bump(achievements, "Early Bird", EARLY_BIRD_STEP)

        if routine.total_count and routine.completed_count == routine.total_count:
            await self._bump(achievements, "Consistency Champion", CONSISTENCY_STEP)

    # ------------------------------------------------------------------
    # Suggestions and guided activities
    # ------------------------------------------------------------------

    async def get_activity_suggestions(self, user_id: str) -> list[ActivitySuggestion]:
        activities = await self._community.get_activities(kind=PLAIN_ACTIVITY)
        now = _now()
        return [
            ActivitySuggestion(
                id=str(uuid.uuid4()),
                activity=activity,
                reason="Based on your interests",
                suggested_at=now,
                user_id=user_id,
            )
            for activity in activities[:MAX_SUGGESTIONS]
        ]

    async def get_activity_steps(self, activity_id: str) -> list[ActivityStep]:
        activity = await self._community.get_activity(activity_id)
        if activity is None or not activity.instructions:
            return []
        per_step = activity.estimated_duration * 60 / len(activity.instructions)
        return [
            ActivityStep(
                id=str(uuid.uuid4()),
                activity_id=activity_id,
                order=index,
                instruction=instruction,
                estimated_duration=per_step,
            )
            for index, instruction in enumerate(activity.instructions)
        ]

    async def start_activity(self, user_id: str, activity_id: str) -> ActivityProgress:
        activity = await self._community.get_activity(activity_id)
        if activity is None:
            raise ValidationError(f"Activity not found: {activity_id}")
        progress = ActivityProgress(
            id=str(uuid.uuid4()),
            user_id=user_id,
            activity_id=activity_id,
            started_at=_now(),
            total_steps=len(activity.instructions),
        )
        await self.progress.save_progress(progress)
        await self._track_progress.created(progress)
        return progress

    async def update_activity_progress(
        self,
        user_id: str,
        progress_id: str,
        current_step_index: int,
    ) -> ActivityProgress | None:
        """Move to ``current_step_index``; the last step completes the activity.

        Progress and the completed activity are written in one blob write.
        """
        aggregate = await self._community.get_all()
        store = self.progress.store
        progress = next(
            (p for p in store.records(aggregate, user_id) if p.id == progress_id),
            None,
        )
        if progress is None:
            return None

        progress.current_step_index = current_step_index
        completed_activity: Activity | None = None
        if current_step_index >= progress.total_steps - 1 and not progress.is_completed:
            progress.is_completed = True
            progress.completed_at = _now()
            for index, activity in enumerate(aggregate.activities):
                if activity.id == progress.activity_id:
                    completed_activity = replace(
                        activity, is_completed=True, completed_at=progress.completed_at
                    )
                    aggregate.activities[index] = completed_activity
                    break

        store.put(aggregate, progress)
        await self._community.save_all(aggregate)
        await self._track_progress.updated(progress)

        if completed_activity is not None:
            await self._track_activity.updated(completed_activity)
            if completed_activity.category == "educational":
                await self._bump(await self.get_achievements(user_id), "Knowledge Seeker", KNOWLEDGE_STEP)
        return progress
