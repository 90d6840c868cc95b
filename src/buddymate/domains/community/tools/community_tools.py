"""MCP tools for community resources, events, daily routines and activities."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from buddymate.core.errors import ValidationError
from buddymate.core.server.responses import error, not_found, ok, parse_day
from buddymate.core.storage.codec import parse_datetime

if TYPE_CHECKING:
    from buddymate.domains.community.activities import ActivitiesService
    from buddymate.domains.community.service import CommunityService

logger = logging.getLogger(__name__)


def register_community_tools(
    mcp: FastMCP,
    community: CommunityService,
    activities: ActivitiesService,
) -> None:
    """Register community, routine and activity tools on the MCP server."""

    # --- Resources and events ---

    @mcp.tool
    async def list_community_resources(ctx: Context, category: str = "") -> str:
        """List local resources, optionally filtered by category.

        Args:
            category: 'healthcare', 'transportation', 'social' or 'emergency'.
        """
        resources = await community.get_resources(category or None)
        return ok(count=len(resources), resources=resources)

    @mcp.tool
    async def add_community_resource(
        ctx: Context,
        name: str,
        category: str,
        description: str,
        address: str,
        phone_number: str,
        hours: str,
        website: str = "",
    ) -> str:
        """Add a local resource such as a clinic or a transport service.

        Args:
            name: Resource name.
            category: 'healthcare', 'transportation', 'social' or 'emergency'.
            description: What the resource offers.
            address: Street address.
            phone_number: Contact number.
            hours: Opening hours in free text.
            website: Optional website URL.
        """
        try:
            resource = await community.add_resource(
                name=name,
                category=category,
                description=description,
                address=address,
                phone_number=phone_number,
                hours=hours,
                website=website or None,
            )
        except ValidationError as exc:
            return error(str(exc))
        return ok(resource=resource)

    @mcp.tool
    async def list_community_events(ctx: Context) -> str:
        """List community events, soonest first."""
        events = await community.get_events()
        return ok(count=len(events), events=events)

    @mcp.tool
    async def add_community_event(
        ctx: Context,
        title: str,
        description: str,
        location: str,
        start_time: str,
        end_time: str,
        category: str,
        max_participants: int | None = None,
    ) -> str:
        """Add a community event.

        Args:
            title: Event title.
            description: What happens at the event.
            location: Where it takes place.
            start_time: Start (ISO 8601).
            end_time: End (ISO 8601).
            category: 'social', 'educational', 'health' or 'recreational'.
            max_participants: Optional capacity.
        """
        try:
            event = await community.add_event(
                title=title,
                description=description,
                location=location,
                start_time=parse_datetime(start_time),
                end_time=parse_datetime(end_time),
                category=category,
                max_participants=max_participants,
            )
        except ValueError as exc:
            return error(f"Invalid event time: {exc}")
        except ValidationError as exc:
            return error(str(exc))
        return ok(event=event)

    @mcp.tool
    async def register_for_event(ctx: Context, event_id: str) -> str:
        """Register for a community event.

        Args:
            event_id: Event to register for.
        """
        try:
            event = await community.register_for_event(event_id)
        except ValidationError as exc:
            return error(str(exc))
        if event is None:
            return not_found("Event", event_id)
        return ok(event=event)

    # --- Daily routine ---

    @mcp.tool
    async def get_daily_routine(ctx: Context, user_id: str, day: str = "") -> str:
        """Get the routine for a day, creating it from the template if needed.

        Args:
            user_id: Whose routine.
            day: Date as YYYY-MM-DD. Defaults to today.
        """
        try:
            routine = await activities.get_daily_routine(user_id, parse_day(day))
        except ValueError:
            return error(f"Invalid day: {day!r}")
        return ok(routine=routine)

    @mcp.tool
    async def set_routine_item_status(
        ctx: Context, user_id: str, routine_id: str, item_id: str, is_completed: bool
    ) -> str:
        """Tick or untick a routine item. Completing items can earn achievements.

        Args:
            user_id: Whose routine.
            routine_id: Routine containing the item.
            item_id: Item to change.
            is_completed: New completion state.
        """
        routine = await activities.update_routine_item_status(user_id, routine_id, item_id, is_completed)
        if routine is None:
            return not_found("Routine item", item_id)
        return ok(routine=routine)

    @mcp.tool
    async def add_routine_item(
        ctx: Context,
        user_id: str,
        title: str,
        time_of_day: str = "anytime",
        description: str = "",
        is_recurring: bool = True,
        reminder_time: str = "",
    ) -> str:
        """Add an item to today's routine. Recurring items repeat every day.

        Args:
            user_id: Whose routine.
            title: What to do.
            time_of_day: 'morning', 'afternoon', 'evening' or 'anytime'.
            description: Optional details.
            is_recurring: Also add the item to future routines.
            reminder_time: Optional reminder as HH:MM.
        """
        try:
            item = await activities.add_routine_item(
                user_id,
                title,
                time_of_day=time_of_day,
                description=description or None,
                is_recurring=is_recurring,
                reminder_time=reminder_time or None,
            )
        except ValidationError as exc:
            return error(str(exc))
        return ok(item=item)

    @mcp.tool
    async def remove_routine_item(ctx: Context, user_id: str, routine_id: str, item_id: str) -> str:
        """Remove an item from a routine and from the recurring template.

        Args:
            user_id: Whose routine.
            routine_id: Routine containing the item.
            item_id: Item to remove.
        """
        if not await activities.remove_routine_item(user_id, routine_id, item_id):
            return not_found("Routine item", item_id)
        return ok(removed=item_id)

    # --- Achievements and activities ---

    @mcp.tool
    async def list_achievements(ctx: Context, user_id: str) -> str:
        """List achievements and progress toward each.

        Args:
            user_id: Whose achievements.
        """
        achievements = await activities.get_achievements(user_id)
        earned = sum(1 for a in achievements if a.is_earned)
        return ok(earned=earned, achievements=achievements)

    @mcp.tool
    async def get_activity_suggestions(ctx: Context, user_id: str) -> str:
        """Suggest up to three activities the user has not completed.

        Args:
            user_id: Who the suggestions are for.
        """
        suggestions = await activities.get_activity_suggestions(user_id)
        return ok(suggestions=suggestions)

    @mcp.tool
    async def add_activity(
        ctx: Context,
        user_id: str,
        title: str,
        description: str,
        category: str = "exercise",
        difficulty: str = "easy",
        estimated_duration: int = 0,
        instructions: list[str] | None = None,
    ) -> str:
        """Add a guided activity with step-by-step instructions.

        Args:
            user_id: Who the activity is for.
            title: Activity title.
            description: What the activity involves.
            category: e.g. 'exercise', 'educational', 'social', 'creative'.
            difficulty: 'easy', 'medium' or 'hard'.
            estimated_duration: Minutes the activity takes.
            instructions: Ordered steps.
        """
        try:
            activity = await activities.add_activity(
                user_id,
                title,
                description,
                category=category,
                difficulty=difficulty,
                estimated_duration=estimated_duration,
                instructions=instructions,
            )
        except ValidationError as exc:
            return error(str(exc))
        return ok(activity=activity)

    @mcp.tool
    async def start_activity(ctx: Context, user_id: str, activity_id: str) -> str:
        """Start a guided activity and return its steps.

        Args:
            user_id: Who is doing the activity.
            activity_id: Activity to start.
        """
        try:
            progress = await activities.start_activity(user_id, activity_id)
        except ValidationError as exc:
            return error(str(exc))
        steps = await activities.get_activity_steps(activity_id)
        return ok(progress=progress, steps=steps)

    @mcp.tool
    async def update_activity_progress(
        ctx: Context, user_id: str, progress_id: str, current_step_index: int
    ) -> str:
        """Move to a step of a started activity. The last step completes it.

        Args:
            user_id: Who is doing the activity.
            progress_id: Progress returned by start_activity.
            current_step_index: Zero-based index of the current step.
        """
        progress = await activities.update_activity_progress(user_id, progress_id, current_step_index)
        if progress is None:
            return not_found("Activity progress", progress_id)
        return ok(progress=progress)
