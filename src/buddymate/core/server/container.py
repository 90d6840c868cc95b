"""Wires storage, sync and the domain services from Settings.

The container is what the tool server and the integration tests share:
build it once, ``await start()`` it, then hand it to ``create_app``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from buddymate.core.audit.logger import DataSharingLog
from buddymate.core.config.settings import Settings
from buddymate.core.storage.database import StoreDatabase
from buddymate.core.storage.encryption import ValueEncryptor
from buddymate.core.storage.kv_store import KeyValueStore, SQLiteKeyValueStore
from buddymate.core.storage.migration import MIGRATIONS, DataMigration, Migration
from buddymate.core.sync.coordinator import SyncCoordinator
from buddymate.core.sync.network import ConnectivityMonitor
from buddymate.core.sync.remote import MCPRemoteBackend, RemoteBackend
from buddymate.domains.auth.service import AuthService
from buddymate.domains.communication.repository import CommunicationRepository
from buddymate.domains.communication.service import CommunicationService
from buddymate.domains.community.activities import ActivitiesService
from buddymate.domains.community.migrations import COMMUNITY_MIGRATIONS
from buddymate.domains.community.repository import CommunityRepository
from buddymate.domains.community.service import CommunityService
from buddymate.domains.crash.reporter import CrashReporter
from buddymate.domains.crash.repository import CrashReportRepository
from buddymate.domains.health.repository import HealthRepository
from buddymate.domains.health.service import CheckInService, MedicationService
from buddymate.domains.privacy.repository import PrivacySettingsRepository
from buddymate.domains.privacy.service import PrivacyService

logger = logging.getLogger(__name__)

APP_MIGRATIONS: tuple[Migration, ...] = MIGRATIONS + COMMUNITY_MIGRATIONS


@dataclass
class Container:
    settings: Settings
    database: StoreDatabase | None
    store: KeyValueStore
    network: ConnectivityMonitor
    sync: SyncCoordinator
    migration: DataMigration
    communication: CommunicationService
    medications: MedicationService
    check_ins: CheckInService
    community: CommunityService
    activities: ActivitiesService
    privacy: PrivacyService
    crash: CrashReporter
    auth: AuthService

    async def start(self) -> list[str]:
        """Run pending migrations and load the sync queue. Returns applied versions."""
        applied = await self.migration.initialize_app(self.settings.app_version)
        await self.sync.initialize()
        return applied

    def close(self) -> None:
        self.sync.close()
        if self.database is not None:
            self.database.close()


def _open_store(settings: Settings) -> tuple[StoreDatabase, SQLiteKeyValueStore]:
    encryptor: ValueEncryptor | None = None
    if settings.encryption_key:
        encryptor = ValueEncryptor(settings.encryption_key)
    else:
        logger.warning(
            "No ENCRYPTION_KEY configured; secure items will be stored unencrypted. "
            "Set ENCRYPTION_KEY to encrypt the secure namespace."
        )
    database = StoreDatabase(settings.db_path)
    database.initialize()
    logger.info("Key-value store opened: %s (schema v%d)", settings.db_path, database.get_schema_version())
    return database, SQLiteKeyValueStore(database, encryptor)


def _remote_backend(settings: Settings) -> RemoteBackend | None:
    if not settings.sync_server_url:
        logger.info("No SYNC_SERVER_URL configured; changes stay queued locally")
        return None
    from fastmcp import Client as MCPClient

    logger.info("Sync remote configured for %s", settings.sync_server_url)
    return MCPRemoteBackend(MCPClient(settings.sync_server_url))


def build_container(
    settings: Settings,
    *,
    store_override: KeyValueStore | None = None,
    remote_override: RemoteBackend | None = None,
    network_override: ConnectivityMonitor | None = None,
) -> Container:
    """Build every component. Overrides exist for tests."""
    database: StoreDatabase | None = None
    if store_override is not None:
        store = store_override
    else:
        database, store = _open_store(settings)

    network = network_override or ConnectivityMonitor()
    remote = remote_override if remote_override is not None else _remote_backend(settings)
    sync = SyncCoordinator(
        store,
        network,
        remote,
        max_retries=settings.sync_max_retries,
        backoff_base=settings.sync_backoff_base_seconds,
        backoff_max=settings.sync_backoff_max_seconds,
    )

    communication_repo = CommunicationRepository(store)
    health_repo = HealthRepository(store)
    community_repo = CommunityRepository(store)
    crash_repo = CrashReportRepository(store, max_reports=settings.max_crash_reports)

    return Container(
        settings=settings,
        database=database,
        store=store,
        network=network,
        sync=sync,
        migration=DataMigration(store, APP_MIGRATIONS),
        communication=CommunicationService(communication_repo, sync=sync),
        medications=MedicationService(health_repo, sync=sync, contacts=communication_repo),
        check_ins=CheckInService(health_repo, sync=sync),
        community=CommunityService(community_repo, sync=sync),
        activities=ActivitiesService(community_repo, sync=sync),
        privacy=PrivacyService(
            PrivacySettingsRepository(store, default_retention_days=settings.data_retention_days),
            DataSharingLog(store),
            crash_reports=crash_repo,
        ),
        crash=CrashReporter(crash_repo, store, app_version=settings.app_version),
        auth=AuthService(store),
    )
