"""Community resources and events."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any

from buddymate.core.errors import ValidationError
from buddymate.core.sync.coordinator import ChangeTracker, SyncCoordinator
from buddymate.domains.community.models import (
    CommunityData,
    CommunityEvent,
    CommunityResource,
)
from buddymate.domains.community.repository import CommunityRepository

logger = logging.getLogger(__name__)

RESOURCE_CATEGORIES = ("healthcare", "transportation", "social", "emergency")
EVENT_CATEGORIES = ("social", "educational", "health", "recreational")


def validate_resource(resource: CommunityResource) -> None:
    if not resource.name or not resource.name.strip():
        raise ValidationError("Resource name is required")
    if resource.category not in RESOURCE_CATEGORIES:
        raise ValidationError(f"Unknown resource category: {resource.category!r}")
    if resource.rating is not None and not 0 <= resource.rating <= 5:
        raise ValidationError("Rating must be between 0 and 5")


def validate_event(event: CommunityEvent) -> None:
    if not event.title or not event.title.strip():
        raise ValidationError("Event title is required")
    if event.category not in EVENT_CATEGORIES:
        raise ValidationError(f"Unknown event category: {event.category!r}")
    if event.end_time < event.start_time:
        raise ValidationError("Event cannot end before it starts")


class CommunityService:
    def __init__(
        self,
        repository: CommunityRepository,
        *,
        sync: SyncCoordinator | None = None,
    ) -> None:
        self._repo = repository
        self._resources = ChangeTracker(sync, "community_resource")
        self._events = ChangeTracker(sync, "community_event")

    async def get_community_data(self) -> CommunityData:
        return await self._repo.get_all()

    async def save_community_data(self, data: CommunityData) -> None:
        """Replace the whole aggregate. Not queued for sync record by record."""
        await self._repo.save_all(data)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def get_resources(self, category: str | None = None) -> list[CommunityResource]:
        return await self._repo.get_resources(category)

    async def add_resource(self, **fields: Any) -> CommunityResource:
        resource = CommunityResource(id=str(uuid.uuid4()), **fields)
        validate_resource(resource)
        await self._repo.save_resource(resource)
        await self._resources.created(resource)
        return resource

    async def update_resource(
        self, resource_id: str, updates: dict[str, Any]
    ) -> CommunityResource | None:
        current = await self._repo.find(resource_id, collection="resources")
        if current is None:
            return None
        updated = replace(current, **updates)
        validate_resource(updated)
        await self._repo.save_resource(updated)
        await self._resources.updated(updated)
        return updated

    async def delete_resource(self, resource_id: str) -> bool:
        deleted = await self._repo.delete_resource(resource_id)
        if deleted:
            await self._resources.deleted(resource_id)
        return deleted

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def get_events(self) -> list[CommunityEvent]:
        return sorted(await self._repo.get_events(), key=lambda e: e.start_time)

    async def add_event(self, **fields: Any) -> CommunityEvent:
        event = CommunityEvent(id=str(uuid.uuid4()), **fields)
        validate_event(event)
        await self._repo.save_event(event)
        await self._events.created(event)
        return event

    async def register_for_event(self, event_id: str) -> CommunityEvent | None:
        """Returns None for an unknown event.

        Raises:
            ValidationError: If the event is full.
        """
        event = await self._repo.get_event(event_id)
        if event is None:
            return None
        if event.max_participants and event.current_participants >= event.max_participants:
            raise ValidationError("Event has reached maximum participants")
        updated = replace(
            event,
            current_participants=event.current_participants + 1,
            is_registered=True,
        )
        await self._repo.save_event(updated)
        await self._events.updated(updated)
        logger.info("Registered for event %s", event_id)
        return updated
