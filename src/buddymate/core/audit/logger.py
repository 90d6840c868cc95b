"""Data-sharing audit log.

Every change to what a family member may see is recorded here, in the
secure namespace, so the user can review who was granted or denied access
to which data types and when. Entries carry contact ids and data-type
names only, never the shared data itself.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from buddymate.core.errors import DecodeError, StorageError
from buddymate.core.storage.codec import decode, encode
from buddymate.core.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DATA_SHARING_LOG_KEY = "data_sharing_log"
MAX_LOG_ENTRIES = 1000


@dataclass
class DataSharingLogEntry:
    """A single audit log entry."""

    id: str
    action: str  # permission_granted, permission_revoked, permission_enabled, ...
    contact_id: str
    timestamp: datetime
    data_types: list[str] = field(default_factory=list)


class DataSharingLog:
    """Append-only (capped) list of data-sharing events in the secure namespace.

    Writes never raise: a failed write is logged and the event is lost, so
    a broken audit store cannot block a permission change the user made.

    Usage::

        audit = DataSharingLog(store)
        await audit.log_event("permission_granted", contact.id, ["healthData"])
        entries = await audit.get_entries()
    """

    def __init__(self, store: KeyValueStore, *, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self._store = store
        self._max_entries = max_entries

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    async def log_event(self, action: str, contact_id: str, data_types: list[str]) -> str:
        """Append an entry and return its id, or ``""`` if it could not be stored."""
        entry = DataSharingLogEntry(
            id=f"log_{uuid.uuid4().hex}",
            action=action,
            contact_id=contact_id,
            data_types=list(data_types),
            timestamp=datetime.now(timezone.utc),
        )
        try:
            entries = await self.get_entries()
            entries.append(entry)
            if len(entries) > self._max_entries:
                entries = entries[-self._max_entries:]
            await self._save(entries)
        except StorageError:
            logger.exception("Failed to write data-sharing event %s, event lost", action)
            return ""
        return entry.id

    async def prune_older_than(self, days: int, *, now: datetime | None = None) -> int:
        """Drop entries at or before ``now - days``. Returns how many were removed.

        Raises:
            StorageError: If the pruned log cannot be written.
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        entries = await self.get_entries()
        kept = [entry for entry in entries if entry.timestamp > cutoff]
        removed = len(entries) - len(kept)
        if removed:
            await self._save(kept)
            logger.info("Pruned %d data-sharing entries older than %d days", removed, days)
        return removed

    async def clear(self) -> None:
        await self._store.remove(DATA_SHARING_LOG_KEY, secure=True)

    async def _save(self, entries: list[DataSharingLogEntry]) -> None:
        await self._store.set(DATA_SHARING_LOG_KEY, encode(entries), secure=True)

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    async def get_entries(
        self,
        *,
        contact_id: str | None = None,
        action: str | None = None,
    ) -> list[DataSharingLogEntry]:
        """Entries in the order they were written, optionally filtered."""
        raw = await self._store.get(DATA_SHARING_LOG_KEY, secure=True)
        if raw is None:
            return []
        entries = decode(raw, list[DataSharingLogEntry])
        if isinstance(entries, DecodeError):
            logger.warning("Data-sharing log could not be decoded, treating as empty: %s", entries)
            return []
        if contact_id is not None:
            entries = [e for e in entries if e.contact_id == contact_id]
        if action is not None:
            entries = [e for e in entries if e.action == action]
        return entries

    async def count_events(self, *, since: datetime | None = None) -> int:
        entries = await self.get_entries()
        if since is None:
            return len(entries)
        return sum(1 for entry in entries if entry.timestamp >= since)
