"""Repository for ``privacy_settings`` (secure namespace)."""

from __future__ import annotations

from buddymate.core.storage.kv_store import KeyValueStore
from buddymate.core.storage.repository import AggregateRepository
from buddymate.domains.privacy.models import DEFAULT_RETENTION_DAYS, PrivacySettings

PRIVACY_SETTINGS_KEY = "privacy_settings"


class PrivacySettingsRepository(AggregateRepository[PrivacySettings]):
    storage_key = PRIVACY_SETTINGS_KEY
    aggregate_type = PrivacySettings
    secure = True

    def __init__(self, store: KeyValueStore, *, default_retention_days: int = DEFAULT_RETENTION_DAYS) -> None:
        super().__init__(store)
        self.default_retention_days = default_retention_days

    def default_factory(self) -> PrivacySettings:
        return PrivacySettings(data_retention_days=self.default_retention_days)
