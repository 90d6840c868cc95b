"""Privacy-conscious crash and error reporting.

Messages, stack traces and context are scrubbed with the sanitizer before
anything is stored, and the user id is replaced by a one-way digest.
Reports that mention emergency features are flagged so they can be
prioritised.

Reporting never raises into the code that is already handling an error:
storage failures are logged and the report is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from buddymate.core.errors import StorageError
from buddymate.core.privacy.sanitizer import (
    hash_value,
    is_emergency_related,
    sanitize_context,
    sanitize_stack,
    sanitize_text,
)
from buddymate.core.storage.kv_store import KeyValueStore
from buddymate.domains.crash.models import CrashReport, ErrorMetrics, ErrorType
from buddymate.domains.crash.repository import CrashReportRepository

logger = logging.getLogger(__name__)

USER_ID_KEY = "user_id"


def format_stack(error: BaseException | None) -> str | None:
    if error is None:
        return None
    if error.__traceback__ is None:
        return f"{type(error).__name__}: {error}"
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class CrashReporter:
    """Writes sanitized crash reports into the ring buffer.

    Usage::

        reporter = CrashReporter(CrashReportRepository(store), store, app_version="1.0.0")
        try:
            ...
        except Exception as exc:
            await reporter.log_crash("Emergency call failed", exc, {"screen": "sos"})
    """

    def __init__(
        self,
        repository: CrashReportRepository,
        store: KeyValueStore,
        *,
        app_version: str = "1.0.0",
        user_agent: str | None = None,
    ) -> None:
        self._repo = repository
        self._store = store
        self._app_version = app_version
        self._user_agent = user_agent
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    async def log_crash(
        self,
        message: str,
        error: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> CrashReport | None:
        report = await self._report("crash", message, error, context)
        if report is not None and report.is_emergency_related:
            lowered = report.message.lower()
            if "emergency" in lowered or "critical" in lowered:
                logger.critical("Critical emergency system error, manual intervention may be required (%s)", report.id)
            else:
                logger.error("Emergency-related crash recorded (%s)", report.id)
        return report

    async def log_error(
        self,
        message: str,
        error: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> CrashReport | None:
        return await self._report("error", message, error, context)

    async def log_warning(self, message: str, context: dict[str, Any] | None = None) -> CrashReport | None:
        return await self._report("warning", message, None, context, check_emergency=False)

    async def log_info(self, message: str, context: dict[str, Any] | None = None) -> CrashReport | None:
        return await self._report("info", message, None, context, check_emergency=False)

    async def _report(
        self,
        error_type: ErrorType,
        message: str,
        error: BaseException | None,
        context: dict[str, Any] | None,
        *,
        check_emergency: bool = True,
    ) -> CrashReport | None:
        try:
            report = CrashReport(
                id=f"crash_{uuid.uuid4().hex}",
                timestamp=datetime.now(timezone.utc),
                error_type=error_type,
                message=sanitize_text(message) or "",
                stack=sanitize_stack(format_stack(error)),
                user_agent=self._user_agent if error_type == "crash" else None,
                app_version=self._app_version,
                user_id=await self._anonymized_user_id(),
                context=sanitize_context(context),
                is_emergency_related=check_emergency and is_emergency_related(message, context),
            )
            await self._repo.add(report)
        except StorageError:
            logger.exception("Failed to store %s report, report lost", error_type)
            return None
        logger.debug("Recorded %s report %s", error_type, report.id)
        return report

    async def _anonymized_user_id(self) -> str | None:
        user_id = await self._store.get(USER_ID_KEY)
        return hash_value(user_id) if user_id else None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def get_error_metrics(self) -> ErrorMetrics:
        reports = await self._repo.get_all()
        crashes = [r for r in reports if r.error_type == "crash"]
        return ErrorMetrics(
            total_errors=len(reports),
            crash_count=len(crashes),
            emergency_errors=sum(1 for r in reports if r.is_emergency_related),
            errors_by_type=dict(Counter(r.error_type for r in reports)),
            last_crash_time=max((c.timestamp for c in crashes), default=None),
        )

    async def export_reports(self) -> list[CrashReport]:
        return await self._repo.get_all()

    async def clear_reports(self) -> None:
        await self._repo.clear()

    # ------------------------------------------------------------------
    # Event loop integration
    # ------------------------------------------------------------------

    def install_loop_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        """Record unhandled task exceptions as crash reports."""
        previous = loop.get_exception_handler()

        def _handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
            error = context.get("exception")
            message = context.get("message", "Unhandled exception in event loop")
            task = loop.create_task(self.log_crash(message, error, {"source": "event_loop"}))
            self._pending.add(task)
            task.add_done_callback(self._report_task_done)
            if previous is not None:
                previous(loop, context)
            else:
                loop.default_exception_handler(context)

        loop.set_exception_handler(_handler)

    def _report_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Crash report task failed: %s", exc, exc_info=exc)

    @property
    def pending_reports(self) -> int:
        """Loop-handler reports not yet written."""
        return len(self._pending)
