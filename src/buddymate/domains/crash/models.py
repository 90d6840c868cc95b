"""Crash report records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ErrorType = Literal["crash", "error", "warning", "info"]


@dataclass
class CrashReport:
    """A sanitized error report. Never holds raw PII."""

    id: str
    timestamp: datetime
    error_type: ErrorType
    message: str
    app_version: str
    is_emergency_related: bool = False
    stack: str | None = None
    user_agent: str | None = None
    user_id: str | None = None  # hashed
    context: dict[str, Any] | None = None


@dataclass
class ErrorMetrics:
    total_errors: int = 0
    crash_count: int = 0
    emergency_errors: int = 0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    last_crash_time: datetime | None = None
