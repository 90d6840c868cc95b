"""Upgrade activity records written before ``kind`` existed.

Older app versions told special activities apart by title prefix and kept
their data in JSON-string sideband fields:

    ===================  ===============  ==========================
    title prefix         kind             sideband field
    ===================  ===============  ==========================
    ``Routine:``         routine_item     (none; built from the title)
    ``Daily Routine:``   daily_routine    ``routineData``
    ``Achievement:``     achievement      ``achievementData``
    ``Progress:``        progress         ``progressId``/``progressData``
    ===================  ===============  ==========================

A prefix alone is not enough for the sideband kinds. A missing sideband
means the record is a plain activity that happens to share the prefix.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from buddymate.domains.community.models import ACTIVITY_KINDS, PLAIN_ACTIVITY

logger = logging.getLogger(__name__)

ROUTINE_PREFIX = "Routine:"
DAILY_ROUTINE_PREFIX = "Daily Routine:"
ACHIEVEMENT_PREFIX = "Achievement:"
PROGRESS_PREFIX = "Progress:"

SIDEBAND_FIELDS = ("routineData", "achievementData", "progressId", "progressData")


def is_legacy(raw: dict[str, Any]) -> bool:
    return "kind" not in raw or any(name in raw for name in SIDEBAND_FIELDS)


def infer_kind(raw: dict[str, Any]) -> str:
    """Work out what a legacy activity dict holds."""
    kind = raw.get("kind")
    if isinstance(kind, str) and kind in ACTIVITY_KINDS:
        return kind

    if "routineData" in raw:
        return "daily_routine"
    if "achievementData" in raw:
        return "achievement"
    if "progressData" in raw or "progressId" in raw:
        return "progress"

    title = raw.get("title")
    if isinstance(title, str) and title.startswith(ROUTINE_PREFIX):
        return "routine_item"
    return PLAIN_ACTIVITY


def time_of_day_from_title(title: str) -> str:
    lowered = title.lower()
    for part in ("morning", "afternoon", "evening"):
        if part in lowered:
            return part
    return "anytime"


def _parse_sideband(raw: dict[str, Any], name: str) -> dict[str, Any] | None:
    value = raw.get(name)
    if isinstance(value, dict):
        return value
    if not isinstance(value, str):
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        logger.warning("Unreadable %s on activity %s: %s", name, raw.get("id"), exc)
        return None
    return parsed if isinstance(parsed, dict) else None


def _routine_item_payload(raw: dict[str, Any]) -> dict[str, Any]:
    title = str(raw.get("title", ""))
    stripped = title[len(ROUTINE_PREFIX):].strip() if title.startswith(ROUTINE_PREFIX) else title
    payload: dict[str, Any] = {
        "id": raw.get("id"),
        "title": stripped,
        "userId": raw.get("userId", ""),
        "timeOfDay": time_of_day_from_title(title),
    }
    if raw.get("description"):
        payload["description"] = raw["description"]
    return payload


def _daily_routine_payload(data: dict[str, Any]) -> dict[str, Any]:
    # Old routines stored a full timestamp; routines are now keyed by day.
    date = data.get("date")
    if isinstance(date, str) and len(date) > 10 and date[4] == "-":
        data = {**data, "date": date[:10]}
    return data


def upgrade_activity(raw: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``raw`` with ``kind`` set and sideband moved to ``payload``.

    Records that already carry a known ``kind`` and no sideband are
    returned unchanged.
    """
    if not is_legacy(raw):
        return raw

    kind = infer_kind(raw)
    upgraded = {k: v for k, v in raw.items() if k not in SIDEBAND_FIELDS}
    upgraded["kind"] = kind

    payload: dict[str, Any] | None = None
    if kind == "routine_item":
        payload = raw.get("payload") if isinstance(raw.get("payload"), dict) else _routine_item_payload(raw)
    elif kind == "daily_routine":
        payload = _parse_sideband(raw, "routineData")
        if payload is not None:
            payload = _daily_routine_payload(payload)
    elif kind == "achievement":
        payload = _parse_sideband(raw, "achievementData")
    elif kind == "progress":
        payload = _parse_sideband(raw, "progressData")

    if payload is not None:
        upgraded["payload"] = payload
    elif kind != PLAIN_ACTIVITY and not isinstance(raw.get("payload"), dict):
        logger.warning("Activity %s looks like a %s but has no usable data", raw.get("id"), kind)
    return upgraded


def upgrade_community_document(document: Any) -> tuple[Any, int]:
    """Upgrade every legacy activity in a parsed ``community_data`` document.

    Returns the (possibly new) document and how many activities changed.
    Non-dict input is returned untouched for the codec to reject.
    """
    if not isinstance(document, dict) or not isinstance(document.get("activities"), list):
        return document, 0

    changed = 0
    activities = []
    for item in document["activities"]:
        if isinstance(item, dict) and is_legacy(item):
            activities.append(upgrade_activity(item))
            changed += 1
        else:
            activities.append(item)
    if not changed:
        return document, 0
    return {**document, "activities": activities}, changed
