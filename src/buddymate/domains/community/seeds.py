"""Default routine items and achievements, read from YAML."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any

import yaml

from buddymate.domains.community.models import Achievement, RoutineItem

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).parent / "seed_data"
ROUTINE_ITEMS_FILE = SEED_DIR / "routine_items.yaml"
ACHIEVEMENTS_FILE = SEED_DIR / "achievements.yaml"


def _load_entries(path: Path, section: str) -> list[dict[str, Any]]:
    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}
    entries = data.get(section, [])
    if not isinstance(entries, list):
        raise ValueError(f"{path.name}: '{section}' must be a list")
    return entries


def load_default_routine_items(user_id: str, path: Path = ROUTINE_ITEMS_FILE) -> list[RoutineItem]:
    """Fresh routine template items for ``user_id``, with new ids."""
    items = [
        RoutineItem(
            id=f"routine-item-{uuid.uuid4().hex}",
            title=entry["title"],
            description=entry.get("description"),
            user_id=user_id,
            time_of_day=entry.get("time_of_day", "anytime"),
            is_recurring=entry.get("is_recurring", True),
            recurring_days=entry.get("recurring_days", [0, 1, 2, 3, 4, 5, 6]),
            order=index,
            reminder_enabled=entry.get("reminder_enabled", False),
            reminder_time=entry.get("reminder_time"),
        )
        for index, entry in enumerate(_load_entries(path, "items"))
    ]
    logger.debug("Loaded %d default routine items from %s", len(items), path.name)
    return items


def load_default_achievements(user_id: str, path: Path = ACHIEVEMENTS_FILE) -> list[Achievement]:
    """Fresh unearned achievements for ``user_id``, with new ids."""
    return [
        Achievement(
            id=str(uuid.uuid4()),
            title=entry["title"],
            description=entry["description"].strip(),
            icon_name=entry.get("icon_name", "star"),
            user_id=user_id,
            category=entry["category"],
            level=entry["level"],
        )
        for entry in _load_entries(path, "achievements")
    ]
