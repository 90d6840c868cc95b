"""Duplicate medication schedule cleanup.

Concurrent or repeated setup flows can leave several schedules for the same
medication. Schedules are grouped by case-insensitive, whitespace-trimmed
``medication_name``; within a group the most recently created one survives
and the rest are deleted one by one.

Deletion is best-effort: a failure on one duplicate is logged, counted, and
does not stop the rest of the pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from buddymate.core.errors import DuplicateResolutionError
from buddymate.domains.health.models import MedicationSchedule

logger = logging.getLogger(__name__)


class ScheduleStore(Protocol):
    async def get_medication_schedules(self, user_id: str) -> list[MedicationSchedule]: ...

    async def delete_medication_schedule(self, schedule_id: str) -> bool: ...


@dataclass
class CleanupSummary:
    total_medications: int
    duplicates_removed: int
    active_medications: int
    failed_deletions: int = 0


@dataclass
class DuplicateGroup:
    medication_name: str
    count: int
    entries: list[MedicationSchedule] = field(default_factory=list)


@dataclass
class DuplicateSummary:
    total_medications: int
    unique_medications: int
    duplicates: int
    duplicate_groups: list[DuplicateGroup] = field(default_factory=list)


def medication_key(name: str) -> str:
    return name.strip().lower()


def group_by_medication(
    schedules: list[MedicationSchedule],
) -> dict[str, list[MedicationSchedule]]:
    """Group schedules by normalized name, newest ``created_at`` first.

    Ties keep their input order.
    """
    groups: dict[str, list[MedicationSchedule]] = {}
    for schedule in schedules:
        groups.setdefault(medication_key(schedule.medication_name), []).append(schedule)
    for key, group in groups.items():
        groups[key] = sorted(group, key=lambda s: s.created_at, reverse=True)
    return groups


async def cleanup_duplicate_medications(
    schedules: ScheduleStore,
    user_id: str,
) -> CleanupSummary:
    """Delete all but the newest schedule of each medication.

    Args:
        schedules: Source of schedules and the delete operation to use,
            normally the ``MedicationService``.
        user_id: Whose schedules to clean up.

    Raises:
        StorageError: If the schedules cannot be read.
    """
    all_schedules = await schedules.get_medication_schedules(user_id)
    groups = group_by_medication(all_schedules)
    logger.info(
        "Duplicate cleanup for %s: %d schedules in %d groups",
        user_id,
        len(all_schedules),
        len(groups),
    )

    removed = 0
    failed = 0
    for name, group in groups.items():
        if len(group) < 2:
            continue
        survivor, *duplicates = group
        logger.info("Keeping %s for %r, removing %d duplicates", survivor.id, name, len(duplicates))

        for duplicate in duplicates:
            try:
                deleted = await schedules.delete_medication_schedule(duplicate.id)
            except Exception as exc:
                error = DuplicateResolutionError(duplicate.id, f"Failed to delete {duplicate.id}: {exc}")
                logger.warning("%s", error)
                failed += 1
                continue
            if deleted:
                removed += 1
            else:
                logger.debug("Duplicate %s was already gone", duplicate.id)

    logger.info("Duplicate cleanup complete: %d removed, %d failed", removed, failed)
    return CleanupSummary(
        total_medications=len(all_schedules),
        duplicates_removed=removed,
        active_medications=len(groups),
        failed_deletions=failed,
    )


async def get_duplicate_summary(schedules: ScheduleStore, user_id: str) -> DuplicateSummary:
    """Preview what :func:`cleanup_duplicate_medications` would remove."""
    all_schedules = await schedules.get_medication_schedules(user_id)
    groups = group_by_medication(all_schedules)
    duplicate_groups = [
        DuplicateGroup(medication_name=name, count=len(group), entries=group)
        for name, group in groups.items()
        if len(group) > 1
    ]
    return DuplicateSummary(
        total_medications=len(all_schedules),
        unique_medications=len(groups),
        duplicates=sum(group.count - 1 for group in duplicate_groups),
        duplicate_groups=duplicate_groups,
    )
