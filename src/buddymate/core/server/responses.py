"""JSON response helpers shared by the tool modules."""

from __future__ import annotations

import json
from datetime import date
from typing import Any

from buddymate.core.storage.codec import to_primitive


def ok(**fields: Any) -> str:
    """``{"status": "ok", ...}`` with records rendered in their stored camelCase shape."""
    return json.dumps({"status": "ok", **to_primitive(fields)}, indent=2)


def error(message: str, **fields: Any) -> str:
    return json.dumps({"status": "error", "message": message, **to_primitive(fields)})


def not_found(kind: str, record_id: str) -> str:
    return error(f"{kind} not found: {record_id}")


def parse_day(value: str) -> date | None:
    """``YYYY-MM-DD`` tool argument, or None for an empty string."""
    return date.fromisoformat(value) if value else None
