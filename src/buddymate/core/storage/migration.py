"""Versioned data migrations with pre-migration backups.

Core migrations cover the shared documents; domains contribute their own
(see ``buddymate.domains.community.migrations``) and the container passes
the combined tuple to ``DataMigration``.

The last applied migration is recorded under ``migration_version``. Before
pending migrations run, every item in both namespaces is copied into a
``backup_<timestamp>`` item in the secure namespace; the newest
``keep_backups`` are retained.

Migrations work on the parsed JSON documents rather than the typed
records, so they can repair shapes the current codec would reject.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from buddymate.core.errors import BuddyMateError, StorageError
from buddymate.core.storage.codec import format_datetime
from buddymate.core.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

MIGRATION_VERSION_KEY = "migration_version"
APP_VERSION_KEY = "app_version"
INITIAL_SETUP_KEY = "initial_setup"
BACKUP_PREFIX = "backup_"
DEFAULT_KEEP_BACKUPS = 5
BASE_VERSION = "0.0.0"


class MigrationError(BuddyMateError):
    """Raised when a migration step or a backup restore fails."""


@dataclass(frozen=True)
class Migration:
    version: str
    description: str
    migrate: Callable[[KeyValueStore], Awaitable[None]]


def parse_version(version: str) -> tuple[int, ...]:
    """``"1.10.0"`` -> ``(1, 10, 0)``. Non-numeric parts count as 0."""
    parts = []
    for part in version.split("."):
        parts.append(int(part) if part.isdigit() else 0)
    return tuple(parts)


def compare_versions(left: str, right: str) -> int:
    """-1, 0 or 1, treating missing trailing parts as 0."""
    a, b = parse_version(left), parse_version(right)
    width = max(len(a), len(b))
    a += (0,) * (width - len(a))
    b += (0,) * (width - len(b))
    return (a > b) - (a < b)


# ---------------------------------------------------------------------------
# JSON document helpers
# ---------------------------------------------------------------------------


async def load_document(store: KeyValueStore, key: str, *, secure: bool = False) -> Any | None:
    raw = await store.get(key, secure=secure)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Skipping migration of %s: stored value is not JSON", key)
        return None


async def save_document(store: KeyValueStore, key: str, document: Any, *, secure: bool = False) -> None:
    await store.set(key, json.dumps(document), secure=secure)


def _now_iso() -> str:
    return format_datetime(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


async def _initial_setup(store: KeyValueStore) -> None:
    await store.set(INITIAL_SETUP_KEY, "true")


async def _profile_last_active(store: KeyValueStore) -> None:
    profile = await load_document(store, "user_profile", secure=True)
    if isinstance(profile, dict) and not profile.get("lastActive"):
        profile["lastActive"] = _now_iso()
        await save_document(store, "user_profile", profile, secure=True)


async def _schedule_timestamps(store: KeyValueStore) -> None:
    health = await load_document(store, "health_data")
    if not isinstance(health, dict) or not isinstance(health.get("medicationSchedules"), list):
        return
    now = _now_iso()
    filled = 0
    for schedule in health["medicationSchedules"]:
        if not isinstance(schedule, dict):
            continue
        if not schedule.get("createdAt") or not schedule.get("updatedAt"):
            filled += 1
        schedule["createdAt"] = schedule.get("createdAt") or now
        schedule["updatedAt"] = schedule.get("updatedAt") or schedule["createdAt"]
    if filled:
        await save_document(store, "health_data", health)
        logger.info("Filled timestamps on %d medication schedules", filled)


async def _voice_messages(store: KeyValueStore) -> None:
    # Voice messages need no structural change; the version is only recorded.
    return None


MIGRATIONS: tuple[Migration, ...] = (
    Migration("1.0.0", "Initial data structure setup", _initial_setup),
    Migration("1.1.0", "Add lastActive to the user profile", _profile_last_active),
    Migration("1.2.0", "Add createdAt and updatedAt to medication schedules", _schedule_timestamps),
    Migration("1.3.0", "Add voice message type", _voice_messages),
)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class DataMigration:
    """Applies pending migrations in version order.

    Usage::

        migration = DataMigration(store)
        await migration.initialize_app(settings.app_version)
    """

    def __init__(
        self,
        store: KeyValueStore,
        migrations: tuple[Migration, ...] = MIGRATIONS,
        *,
        keep_backups: int = DEFAULT_KEEP_BACKUPS,
    ) -> None:
        self._store = store
        self._migrations = migrations
        self._keep_backups = keep_backups

    async def get_current_version(self) -> str:
        return await self._store.get(MIGRATION_VERSION_KEY) or BASE_VERSION

    async def set_current_version(self, version: str) -> None:
        await self._store.set(MIGRATION_VERSION_KEY, version)

    async def get_app_version(self) -> str:
        return await self._store.get(APP_VERSION_KEY) or "1.0.0"

    async def set_app_version(self, version: str) -> None:
        await self._store.set(APP_VERSION_KEY, version)

    async def get_pending_migrations(self) -> list[Migration]:
        current = await self.get_current_version()
        pending = [m for m in self._migrations if compare_versions(current, m.version) < 0]
        return sorted(pending, key=lambda m: parse_version(m.version))

    async def needs_migration(self) -> bool:
        return bool(await self.get_pending_migrations())

    async def run_migration(self, migration: Migration) -> None:
        logger.info("Running migration %s: %s", migration.version, migration.description)
        try:
            await migration.migrate(self._store)
            await self.set_current_version(migration.version)
        except StorageError as exc:
            raise MigrationError(f"Migration {migration.version} failed: {exc}") from exc
        logger.info("Migration %s completed", migration.version)

    async def run_pending_migrations(self) -> list[str]:
        """Apply every pending migration. Returns the versions applied."""
        pending = await self.get_pending_migrations()
        if not pending:
            logger.info("No pending migrations")
            return []
        for migration in pending:
            await self.run_migration(migration)
        return [m.version for m in pending]

    async def initialize_app(self, app_version: str) -> list[str]:
        """Record the app version, then back up and migrate if anything is pending."""
        await self.set_app_version(app_version)
        if not await self.needs_migration():
            return []
        backup_key = await self.create_backup()
        logger.info("Backup %s created before migrating", backup_key)
        applied = await self.run_pending_migrations()
        await self.cleanup_backups()
        return applied

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def create_backup(self) -> str:
        """Snapshot both namespaces (backups excluded). Returns the backup key."""
        stamp = _now_iso().replace(":", "-").replace(".", "-")
        backup_key = f"{BACKUP_PREFIX}{stamp}"
        snapshot: dict[str, dict[str, str]] = {"plain": {}, "secure": {}}
        for namespace, secure in (("plain", False), ("secure", True)):
            for key in await self._store.get_all_keys(secure=secure):
                if key.startswith(BACKUP_PREFIX):
                    continue
                value = await self._store.get(key, secure=secure)
                if value is not None:
                    snapshot[namespace][key] = value
        await self._store.set(backup_key, json.dumps(snapshot), secure=True)
        return backup_key

    async def restore_from_backup(self, backup_key: str) -> None:
        """Replace every non-backup item with the contents of ``backup_key``."""
        raw = await self._store.get(backup_key, secure=True)
        if raw is None:
            raise MigrationError(f"Backup not found: {backup_key}")
        try:
            snapshot = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MigrationError(f"Backup {backup_key} is corrupt: {exc}") from exc

        for secure in (False, True):
            for key in await self._store.get_all_keys(secure=secure):
                if not key.startswith(BACKUP_PREFIX):
                    await self._store.remove(key, secure=secure)
        for namespace, secure in (("plain", False), ("secure", True)):
            for key, value in snapshot.get(namespace, {}).items():
                await self._store.set(key, value, secure=secure)
        logger.info("Data restored from backup %s", backup_key)

    async def list_backups(self) -> list[str]:
        """Backup keys, newest first."""
        keys = await self._store.get_all_keys(secure=True)
        return sorted((k for k in keys if k.startswith(BACKUP_PREFIX)), reverse=True)

    async def cleanup_backups(self, keep: int | None = None) -> int:
        keep = self._keep_backups if keep is None else keep
        stale = (await self.list_backups())[keep:]
        for key in stale:
            await self._store.remove(key, secure=True)
        if stale:
            logger.info("Removed %d old backups", len(stale))
        return len(stale)
