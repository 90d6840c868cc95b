"""Tests for privacy settings, family permissions and retention cleanup."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from buddymate.core.audit.logger import DataSharingLog
from buddymate.core.errors import ValidationError
from buddymate.domains.crash.models import CrashReport
from buddymate.domains.crash.repository import CrashReportRepository
from buddymate.domains.privacy.models import DATA_TYPES, permission_field
from buddymate.domains.privacy.repository import PRIVACY_SETTINGS_KEY, PrivacySettingsRepository
from buddymate.domains.privacy.service import PrivacyService


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def crash_reports(store):
    return CrashReportRepository(store)


@pytest.fixture
def privacy(store, crash_reports):
    return PrivacyService(
        PrivacySettingsRepository(store, default_retention_days=90),
        DataSharingLog(store),
        crash_reports=crash_reports,
    )


class TestDataTypes:
    def test_camel_and_snake_names(self):
        assert permission_field("healthData") == "health_data"
        assert permission_field("health_data") == "health_data"
        assert "emergencyData" in DATA_TYPES

    def test_unknown(self):
        with pytest.raises(ValidationError, match="Unknown data type"):
            permission_field("bankData")


class TestSettings:
    def test_defaults(self, privacy):
        settings = _run(privacy.get_privacy_settings())
        assert settings.data_retention_days == 90
        assert settings.allow_emergency_data_sharing is True
        assert settings.family_access_permissions == []

    def test_update_persists_in_secure_namespace(self, privacy, store):
        _run(privacy.update_privacy_settings({"data_retention_days": 30, "biometric_auth_required": True}))
        settings = _run(privacy.get_privacy_settings())
        assert settings.data_retention_days == 30
        assert settings.biometric_auth_required is True
        assert _run(store.get(PRIVACY_SETTINGS_KEY)) is None
        assert _run(store.get(PRIVACY_SETTINGS_KEY, secure=True)) is not None

    @pytest.mark.parametrize(
        "updates",
        [
            {"family_access_permissions": []},
            {"data_retention_days": 0},
            {"data_retention_days": True},
            {"data_retention_days": "30"},
        ],
    )
    def test_invalid_updates(self, privacy, updates):
        with pytest.raises(ValidationError):
            _run(privacy.update_privacy_settings(updates))
        assert _run(privacy.get_privacy_settings()).data_retention_days == 90

    def test_reset_restores_defaults_and_clears_log(self, privacy):
        _run(privacy.update_privacy_settings({"data_retention_days": 30}))
        _run(privacy.grant_family_access("c1", "Jane", {"healthData": True}))

        settings = _run(privacy.reset_privacy_settings())

        assert settings.data_retention_days == 90
        assert _run(privacy.get_family_access_permissions()) == []
        assert _run(privacy.get_data_sharing_log()) == []


class TestFamilyAccess:
    def test_grant_and_check(self, privacy):
        _run(privacy.grant_family_access("c1", "Jane", {"healthData": True, "activity_data": True}))

        assert _run(privacy.check_family_permission("c1", "healthData")) is True
        assert _run(privacy.check_family_permission("c1", "activityData")) is True
        assert _run(privacy.check_family_permission("c1", "locationData")) is False
        assert _run(privacy.check_family_permission("c1", "emergencyData")) is True

        [entry] = _run(privacy.get_data_sharing_log())
        assert entry.action == "permission_granted"
        assert sorted(entry.data_types) == ["activityData", "healthData"]

    def test_check_records_access_time(self, privacy):
        _run(privacy.grant_family_access("c1", "Jane"))
        _run(privacy.check_family_permission("c1", "healthData"))
        [permission] = _run(privacy.get_family_access_permissions())
        assert permission.last_accessed is not None

    def test_unknown_contact_denied(self, privacy):
        assert _run(privacy.check_family_permission("nobody", "emergencyData")) is False

    def test_unknown_data_type_rejected(self, privacy):
        with pytest.raises(ValidationError):
            _run(privacy.check_family_permission("c1", "bankData"))

    def test_storage_failure_denies(self, broken_store):
        privacy = PrivacyService(PrivacySettingsRepository(broken_store), DataSharingLog(broken_store))
        assert _run(privacy.check_family_permission("c1", "healthData")) is False

    def test_grant_replaces_existing(self, privacy):
        _run(privacy.grant_family_access("c1", "Jane", {"healthData": True}))
        _run(privacy.grant_family_access("c1", "Jane", {"locationData": True}))

        [permission] = _run(privacy.get_family_access_permissions())
        assert permission.permissions.health_data is False
        assert permission.permissions.location_data is True

    def test_revoke(self, privacy):
        _run(privacy.grant_family_access("c1", "Jane", {"healthData": True}))
        assert _run(privacy.revoke_family_access("c1")) is True
        assert _run(privacy.revoke_family_access("c1")) is False
        assert _run(privacy.check_family_permission("c1", "healthData")) is False
        actions = [e.action for e in _run(privacy.get_data_sharing_log(contact_id="c1"))]
        assert actions == ["permission_granted", "permission_revoked"]

    def test_update_single_permission(self, privacy):
        _run(privacy.grant_family_access("c1", "Jane"))
        _run(privacy.update_family_permission("c1", "communication_data", True))
        _run(privacy.update_family_permission("c1", "emergencyData", False))

        assert _run(privacy.check_family_permission("c1", "communicationData")) is True
        assert _run(privacy.check_family_permission("c1", "emergencyData")) is False
        log = _run(privacy.get_data_sharing_log())
        assert [(e.action, e.data_types) for e in log[1:]] == [
            ("permission_enabled", ["communicationData"]),
            ("permission_disabled", ["emergencyData"]),
        ]

    def test_update_unknown_contact(self, privacy):
        with pytest.raises(ValidationError, match="not found"):
            _run(privacy.update_family_permission("nobody", "healthData", True))


class TestRetention:
    def test_cleanup_prunes_log_and_crash_reports(self, privacy, crash_reports):
        _run(privacy.update_privacy_settings({"data_retention_days": 30}))
        _run(privacy.grant_family_access("c1", "Jane"))
        now = datetime.now(timezone.utc)
        _run(crash_reports.add(CrashReport(
            id="crash_old",
            timestamp=now - timedelta(days=40),
            error_type="error",
            message="old",
            app_version="1.0.0",
        )))
        _run(crash_reports.add(CrashReport(
            id="crash_new",
            timestamp=now,
            error_type="error",
            message="new",
            app_version="1.0.0",
        )))

        result = _run(privacy.cleanup_old_data(now=now + timedelta(days=31)))

        assert result.retention_days == 30
        assert result.log_entries_removed == 1
        assert result.crash_reports_removed == 2

        again = _run(privacy.cleanup_old_data(now=now + timedelta(days=31)))
        assert again.log_entries_removed == 0
        assert again.crash_reports_removed == 0

    def test_recent_data_kept(self, privacy, crash_reports):
        _run(privacy.grant_family_access("c1", "Jane"))
        result = _run(privacy.cleanup_old_data())
        assert result.log_entries_removed == 0
        assert len(_run(privacy.get_data_sharing_log())) == 1


class TestExport:
    def test_export_contains_settings_and_log(self, privacy):
        _run(privacy.grant_family_access("c1", "Jane", {"healthData": True}))
        exported = json.loads(_run(privacy.export_privacy_settings()))

        assert exported["settings"]["dataRetentionDays"] == 90
        assert exported["settings"]["familyAccessPermissions"][0]["contactName"] == "Jane"
        assert exported["dataSharingLog"][0]["action"] == "permission_granted"
        assert exported["exportedAt"].endswith("Z")
