"""Repository for the ``community_data`` aggregate."""

from __future__ import annotations

import logging
from typing import Any

from buddymate.core.storage.repository import AggregateRepository
from buddymate.domains.community.legacy import upgrade_community_document
from buddymate.domains.community.models import (
    Activity,
    CommunityData,
    CommunityEvent,
    CommunityResource,
)

logger = logging.getLogger(__name__)

COMMUNITY_DATA_KEY = "community_data"


class CommunityRepository(AggregateRepository[CommunityData]):
    """Resources, events and the shared activity collection.

    Legacy activities are upgraded in memory on every read, so records
    written by older versions are usable before the stored blob is migrated.
    """

    storage_key = COMMUNITY_DATA_KEY
    aggregate_type = CommunityData
    default_factory = CommunityData

    def upgrade_document(self, document: Any) -> Any:
        document, upgraded = upgrade_community_document(document)
        if upgraded:
            logger.debug("Upgraded %d legacy activities on read", upgraded)
        return document

    # Activities

    async def get_activities(self, *, kind: str | None = None) -> list[Activity]:
        activities = (await self.get_all()).activities
        if kind is None:
            return activities
        return [a for a in activities if a.kind == kind]

    async def get_activity(self, activity_id: str) -> Activity | None:
        return await self.find(activity_id, collection="activities")

    async def save_activity(self, activity: Activity) -> None:
        await self.upsert(activity, collection="activities")

    async def delete_activity(self, activity_id: str) -> bool:
        return await self.remove(activity_id, collection="activities")

    # Resources

    async def get_resources(self, category: str | None = None) -> list[CommunityResource]:
        resources = (await self.get_all()).resources
        if category is None:
            return resources
        return [r for r in resources if r.category == category]

    async def save_resource(self, resource: CommunityResource) -> None:
        await self.upsert(resource, collection="resources")

    async def delete_resource(self, resource_id: str) -> bool:
        return await self.remove(resource_id, collection="resources")

    # Events

    async def get_events(self) -> list[CommunityEvent]:
        return (await self.get_all()).events

    async def get_event(self, event_id: str) -> CommunityEvent | None:
        return await self.find(event_id, collection="events")

    async def save_event(self, event: CommunityEvent) -> None:
        await self.upsert(event, collection="events")
