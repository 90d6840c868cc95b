"""Data migrations owned by the community domain."""

from __future__ import annotations

import logging

from buddymate.core.storage.kv_store import KeyValueStore
from buddymate.core.storage.migration import Migration, load_document, save_document
from buddymate.domains.community.legacy import upgrade_community_document
from buddymate.domains.community.repository import COMMUNITY_DATA_KEY

logger = logging.getLogger(__name__)


async def _activity_kinds(store: KeyValueStore) -> None:
    community = await load_document(store, COMMUNITY_DATA_KEY)
    upgraded, changed = upgrade_community_document(community)
    if changed:
        await save_document(store, COMMUNITY_DATA_KEY, upgraded)
        logger.info("Upgraded %d legacy activities", changed)


COMMUNITY_MIGRATIONS: tuple[Migration, ...] = (
    Migration("2.0.0", "Infer activity kind and move sideband data into payload", _activity_kinds),
)
