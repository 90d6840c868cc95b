"""MCP tools for medication schedules, dose logs, adherence and check-ins.

Schedule and log writes are queued for sync. Duplicate cleanup keeps the
newest schedule per medication name and reports what it removed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from buddymate.core.errors import ValidationError
from buddymate.core.server.responses import error, not_found, ok
from buddymate.core.storage.codec import parse_datetime

if TYPE_CHECKING:
    from buddymate.domains.health.service import CheckInService, MedicationService

logger = logging.getLogger(__name__)


def register_medication_tools(
    mcp: FastMCP,
    medications: MedicationService,
    check_ins: CheckInService,
) -> None:
    """Register medication and check-in tools on the MCP server."""

    # --- Schedules ---

    @mcp.tool
    async def list_medication_schedules(ctx: Context, user_id: str, active_only: bool = False) -> str:
        """List a user's medication schedules.

        Args:
            user_id: Owner of the schedules.
            active_only: Only return schedules that have not been deactivated.
        """
        schedules = await medications.get_medication_schedules(user_id)
        if active_only:
            schedules = [s for s in schedules if s.is_active]
        return ok(count=len(schedules), schedules=schedules)

    @mcp.tool
    async def create_medication_schedule(
        ctx: Context,
        user_id: str,
        medication_name: str,
        dosage: str,
        frequency: str,
        times: list[str],
        photo: str = "",
    ) -> str:
        """Create a medication schedule.

        Args:
            user_id: Owner of the schedule.
            medication_name: Name of the medication (e.g., 'Lisinopril').
            dosage: Dose per intake (e.g., '10mg').
            frequency: How often it is taken (e.g., 'daily').
            times: Intake times as HH:MM strings.
            photo: Optional photo URL of the medication.
        """
        try:
            schedule = await medications.create_medication_schedule(
                user_id, medication_name, dosage, frequency, times, photo or None
            )
        except ValidationError as exc:
            return error(str(exc))
        return ok(schedule=schedule)

    @mcp.tool
    async def update_medication_schedule(
        ctx: Context,
        schedule_id: str,
        medication_name: str = "",
        dosage: str = "",
        frequency: str = "",
        times: list[str] | None = None,
        is_active: bool | None = None,
    ) -> str:
        """Change fields of an existing schedule. Empty arguments are left as they are.

        Args:
            schedule_id: Schedule to change.
            medication_name: New medication name.
            dosage: New dosage.
            frequency: New frequency.
            times: New intake times as HH:MM strings.
            is_active: Activate or deactivate the schedule.
        """
        updates: dict = {
            name: value
            for name, value in (
                ("medication_name", medication_name),
                ("dosage", dosage),
                ("frequency", frequency),
            )
            if value
        }
        if times is not None:
            updates["times"] = times
        if is_active is not None:
            updates["is_active"] = is_active
        if not updates:
            return error("No fields to update")

        try:
            schedule = await medications.update_medication_schedule(schedule_id, updates)
        except ValidationError as exc:
            return error(str(exc))
        if schedule is None:
            return not_found("Medication schedule", schedule_id)
        return ok(schedule=schedule)

    @mcp.tool
    async def delete_medication_schedule(ctx: Context, schedule_id: str) -> str:
        """Permanently delete a medication schedule. Its dose logs are kept.

        Args:
            schedule_id: Schedule to delete.
        """
        if not await medications.delete_medication_schedule(schedule_id):
            return not_found("Medication schedule", schedule_id)
        return ok(deleted=schedule_id)

    # --- Duplicates ---

    @mcp.tool
    async def get_duplicate_summary(ctx: Context, user_id: str) -> str:
        """Report medications that have more than one schedule (read only).

        Args:
            user_id: Owner of the schedules.
        """
        summary = await medications.get_duplicate_summary(user_id)
        return ok(summary=summary)

    @mcp.tool
    async def cleanup_duplicate_medications(ctx: Context, user_id: str) -> str:
        """Delete duplicate schedules, keeping the newest one per medication name.

        Names are compared case-insensitively after trimming whitespace.
        Deletions that fail are counted and left for a later run.

        Args:
            user_id: Owner of the schedules.
        """
        summary = await medications.cleanup_duplicates(user_id)
        logger.info(
            "Duplicate cleanup for %s removed %d schedules (%d failed)",
            user_id,
            summary.duplicates_removed,
            summary.failed_deletions,
        )
        return ok(summary=summary)

    # --- Dose logs ---

    @mcp.tool
    async def log_medication(
        ctx: Context,
        schedule_id: str,
        scheduled_time: str,
        status: str = "taken",
        notes: str = "",
    ) -> str:
        """Record what happened to a scheduled dose.

        Two missed doses within 24 hours raise an escalation alert.

        Args:
            schedule_id: Schedule the dose belongs to.
            scheduled_time: When the dose was due (ISO 8601).
            status: 'taken', 'skipped' or 'missed'.
            notes: Optional notes (ignored for missed doses).
        """
        try:
            due = parse_datetime(scheduled_time)
        except ValueError:
            return error(f"Invalid scheduled_time: {scheduled_time!r}")

        if status == "taken":
            log = await medications.log_medication_taken(schedule_id, due, notes or None)
        elif status == "skipped":
            log = await medications.log_medication_skipped(schedule_id, due, notes or None)
        elif status == "missed":
            log = await medications.log_medication_missed(schedule_id, due)
        else:
            return error(f"Unknown status {status!r}, expected taken, skipped or missed")
        return ok(log=log)

    @mcp.tool
    async def get_medication_logs(ctx: Context, schedule_id: str, limit: int = 20) -> str:
        """Most recent dose logs for a schedule, newest first.

        Args:
            schedule_id: Schedule to read logs for.
            limit: Maximum number of logs to return.
        """
        logs = await medications.get_medication_logs(schedule_id, limit)
        return ok(count=len(logs), logs=logs)

    @mcp.tool
    async def get_weekly_adherence(ctx: Context, user_id: str, week_start: str = "") -> str:
        """Per-medication adherence for one week, with plain-language insights.

        Args:
            user_id: Owner of the schedules.
            week_start: Start of the week (ISO 8601). Defaults to the current week.
        """
        try:
            start = parse_datetime(week_start) if week_start else None
        except ValueError:
            return error(f"Invalid week_start: {week_start!r}")
        adherence = await medications.get_weekly_adherence(user_id, start)
        insights = await medications.get_adherence_insights(user_id)
        return ok(adherence=adherence, insights=insights)

    # --- Check-ins ---

    @mcp.tool
    async def create_check_in(
        ctx: Context,
        user_id: str,
        mood: int,
        energy_level: int,
        concerns: str = "",
        notes: str = "",
    ) -> str:
        """Record today's mood and energy check-in.

        Args:
            user_id: Who is checking in.
            mood: Mood from 1 (low) to 5 (great).
            energy_level: Energy from 1 (low) to 5 (high).
            concerns: Optional concerns to note.
            notes: Optional free-form notes.
        """
        try:
            check_in = await check_ins.create_check_in(
                user_id, mood, energy_level, concerns=concerns or None, notes=notes or None
            )
        except ValidationError as exc:
            return error(str(exc))
        return ok(check_in=check_in)

    @mcp.tool
    async def get_check_in_summary(ctx: Context, user_id: str, days: int = 7) -> str:
        """Average mood and energy over recent check-ins, with the trend.

        Args:
            user_id: Whose check-ins to summarise.
            days: How many recent check-ins to include.
        """
        summary = await check_ins.get_check_in_summary(user_id, days)
        completed_today = await check_ins.has_completed_today_check_in(user_id)
        return ok(summary=summary, completed_today=completed_today)
