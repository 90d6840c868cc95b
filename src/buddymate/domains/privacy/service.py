"""Privacy settings, family access permissions and retention cleanup.

Every permission change is written to the data-sharing audit log. The
retention sweep removes audit entries and crash reports older than the
user's ``data_retention_days``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from buddymate.core.audit.logger import DataSharingLog, DataSharingLogEntry
from buddymate.core.errors import StorageError, ValidationError
from buddymate.core.storage.codec import camel_case, format_datetime, to_primitive
from buddymate.domains.crash.repository import CrashReportRepository
from buddymate.domains.privacy.models import (
    DataSharingPermissions,
    FamilyAccessPermission,
    PrivacySettings,
    permission_field,
)
from buddymate.domains.privacy.repository import PrivacySettingsRepository

logger = logging.getLogger(__name__)

_SETTINGS_UPDATABLE = {
    "data_retention_days",
    "share_anonymous_usage_data",
    "allow_emergency_data_sharing",
    "encryption_enabled",
    "biometric_auth_required",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RetentionCleanup:
    retention_days: int
    log_entries_removed: int = 0
    crash_reports_removed: int = 0


class PrivacyService:
    """Manage what family members may see and how long records are kept.

    Usage::

        privacy = PrivacyService(
            PrivacySettingsRepository(store),
            DataSharingLog(store),
            crash_reports=CrashReportRepository(store),
        )
        await privacy.grant_family_access("c1", "Jane", {"healthData": True})
        await privacy.check_family_permission("c1", "healthData")  # True
    """

    def __init__(
        self,
        repository: PrivacySettingsRepository,
        audit: DataSharingLog,
        *,
        crash_reports: CrashReportRepository | None = None,
    ) -> None:
        self._repo = repository
        self._audit = audit
        self._crash_reports = crash_reports

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_privacy_settings(self) -> PrivacySettings:
        return await self._repo.get_all()

    async def update_privacy_settings(self, updates: dict[str, Any]) -> PrivacySettings:
        """Apply a partial update. Permissions are managed by the family methods."""
        unknown = set(updates) - _SETTINGS_UPDATABLE
        if unknown:
            raise ValidationError(f"Cannot update privacy fields: {', '.join(sorted(unknown))}")
        days = updates.get("data_retention_days")
        if days is not None and (isinstance(days, bool) or not isinstance(days, int) or days < 1):
            raise ValidationError(f"data_retention_days must be a positive integer, got {days!r}")

        settings = replace(await self._repo.get_all(), **updates)
        await self._repo.save_all(settings)
        logger.info("Privacy settings updated: %s", ", ".join(sorted(updates)))
        return settings

    async def reset_privacy_settings(self) -> PrivacySettings:
        """Restore defaults and clear the audit log."""
        settings = self._repo.default_factory()
        await self._repo.save_all(settings)
        await self._audit.clear()
        logger.info("Privacy settings reset to defaults")
        return settings

    # ------------------------------------------------------------------
    # Family access
    # ------------------------------------------------------------------

    async def grant_family_access(
        self,
        contact_id: str,
        contact_name: str,
        permissions: dict[str, bool] | None = None,
    ) -> FamilyAccessPermission:
        """Grant (or replace) a contact's permissions on top of the defaults.

        ``permissions`` keys may be camelCase (``healthData``) or snake_case.
        """
        granted = {permission_field(name): bool(value) for name, value in (permissions or {}).items()}
        permission = FamilyAccessPermission(
            contact_id=contact_id,
            contact_name=contact_name,
            permissions=DataSharingPermissions(**granted),
            granted_at=_now(),
        )

        settings = await self._repo.get_all()
        settings.family_access_permissions = [
            p for p in settings.family_access_permissions if p.contact_id != contact_id
        ]
        settings.family_access_permissions.append(permission)
        await self._repo.save_all(settings)

        await self._audit.log_event(
            "permission_granted", contact_id, [camel_case(name) for name in granted]
        )
        return permission

    async def revoke_family_access(self, contact_id: str) -> bool:
        """Remove a contact's permissions. Returns False if none were granted."""
        settings = await self._repo.get_all()
        kept = [p for p in settings.family_access_permissions if p.contact_id != contact_id]
        if len(kept) == len(settings.family_access_permissions):
            return False
        settings.family_access_permissions = kept
        await self._repo.save_all(settings)
        await self._audit.log_event("permission_revoked", contact_id, [])
        return True

    async def check_family_permission(self, contact_id: str, data_type: str) -> bool:
        """Whether the contact may see ``data_type``; records the access time.

        Fails closed: an unreadable or unwritable settings blob denies access.
        """
        attribute = permission_field(data_type)
        try:
            settings = await self._repo.get_all()
            for permission in settings.family_access_permissions:
                if permission.contact_id == contact_id:
                    permission.last_accessed = _now()
                    await self._repo.save_all(settings)
                    return getattr(permission.permissions, attribute)
        except StorageError:
            logger.exception("Permission check for contact %s failed, denying", contact_id)
        return False

    async def get_family_access_permissions(self) -> list[FamilyAccessPermission]:
        settings = await self._repo.get_all()
        return settings.family_access_permissions

    async def update_family_permission(
        self, contact_id: str, data_type: str, allowed: bool
    ) -> FamilyAccessPermission:
        attribute = permission_field(data_type)
        settings = await self._repo.get_all()
        for permission in settings.family_access_permissions:
            if permission.contact_id == contact_id:
                break
        else:
            raise ValidationError(f"Family member {contact_id} not found in permissions")

        setattr(permission.permissions, attribute, allowed)
        await self._repo.save_all(settings)
        await self._audit.log_event(
            "permission_enabled" if allowed else "permission_disabled",
            contact_id,
            [camel_case(attribute)],
        )
        return permission

    # ------------------------------------------------------------------
    # Audit log and retention
    # ------------------------------------------------------------------

    async def get_data_sharing_log(self, *, contact_id: str | None = None) -> list[DataSharingLogEntry]:
        return await self._audit.get_entries(contact_id=contact_id)

    async def cleanup_old_data(self, *, now: datetime | None = None) -> RetentionCleanup:
        """Drop audit entries and crash reports older than the retention window.

        Running it twice in a row removes nothing the second time.
        """
        settings = await self._repo.get_all()
        now = now or _now()
        result = RetentionCleanup(retention_days=settings.data_retention_days)
        result.log_entries_removed = await self._audit.prune_older_than(
            settings.data_retention_days, now=now
        )
        if self._crash_reports is not None:
            result.crash_reports_removed = await self._crash_reports.prune_older_than(
                settings.data_retention_days, now=now
            )
        logger.info(
            "Cleaned up data older than %d days (%d log entries, %d crash reports)",
            result.retention_days,
            result.log_entries_removed,
            result.crash_reports_removed,
        )
        return result

    async def export_privacy_settings(self) -> str:
        """Settings plus the full audit log as indented JSON, for user review."""
        export = {
            "settings": to_primitive(await self._repo.get_all()),
            "dataSharingLog": to_primitive(await self._audit.get_entries()),
            "exportedAt": format_datetime(_now()),
        }
        return json.dumps(export, indent=2)

