"""MCP tools for privacy settings, family access and retention cleanup.

Permission changes are audit-logged. The data-sharing log holds contact ids
and data type names only, never the shared data.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from buddymate.core.errors import ValidationError
from buddymate.core.server.responses import error, ok

if TYPE_CHECKING:
    from buddymate.domains.crash.reporter import CrashReporter
    from buddymate.domains.privacy.service import PrivacyService

logger = logging.getLogger(__name__)


def register_privacy_tools(
    mcp: FastMCP,
    privacy: PrivacyService,
    crash: CrashReporter,
) -> None:
    """Register privacy, audit and crash metric tools on the MCP server."""

    @mcp.tool
    async def get_privacy_settings(ctx: Context) -> str:
        """Current privacy settings, including family access permissions."""
        return ok(settings=await privacy.get_privacy_settings())

    @mcp.tool
    async def update_privacy_settings(
        ctx: Context,
        data_retention_days: int | None = None,
        share_anonymous_usage_data: bool | None = None,
        allow_emergency_data_sharing: bool | None = None,
        biometric_auth_required: bool | None = None,
    ) -> str:
        """Change privacy settings. Omitted arguments are left as they are.

        Args:
            data_retention_days: Days to keep audit entries and crash reports.
            share_anonymous_usage_data: Opt in or out of anonymous usage data.
            allow_emergency_data_sharing: Allow sharing data in an emergency.
            biometric_auth_required: Require biometric unlock.
        """
        updates = {
            name: value
            for name, value in (
                ("data_retention_days", data_retention_days),
                ("share_anonymous_usage_data", share_anonymous_usage_data),
                ("allow_emergency_data_sharing", allow_emergency_data_sharing),
                ("biometric_auth_required", biometric_auth_required),
            )
            if value is not None
        }
        try:
            settings = await privacy.update_privacy_settings(updates)
        except ValidationError as exc:
            return error(str(exc))
        return ok(settings=settings)

    @mcp.tool
    async def grant_family_access(
        ctx: Context,
        contact_id: str,
        contact_name: str,
        permissions: dict[str, bool] | None = None,
    ) -> str:
        """Grant a family member access to selected data types.

        Emergency data is shared by default; everything else is off unless
        listed here.

        Args:
            contact_id: Family member's contact id.
            contact_name: Family member's display name.
            permissions: Data types to allow or deny, e.g. {"healthData": true}.
        """
        try:
            permission = await privacy.grant_family_access(contact_id, contact_name, permissions)
        except ValidationError as exc:
            return error(str(exc))
        return ok(permission=permission)

    @mcp.tool
    async def revoke_family_access(ctx: Context, contact_id: str) -> str:
        """Remove all of a family member's access.

        Args:
            contact_id: Family member's contact id.
        """
        revoked = await privacy.revoke_family_access(contact_id)
        return ok(revoked=revoked, contact_id=contact_id)

    @mcp.tool
    async def update_family_permission(ctx: Context, contact_id: str, data_type: str, allowed: bool) -> str:
        """Allow or deny one data type for a family member.

        Args:
            contact_id: Family member's contact id.
            data_type: healthData, locationData, communicationData, activityData or emergencyData.
            allowed: Whether the data type may be shared.
        """
        try:
            permission = await privacy.update_family_permission(contact_id, data_type, allowed)
        except ValidationError as exc:
            return error(str(exc))
        return ok(permission=permission)

    @mcp.tool
    async def check_family_permission(ctx: Context, contact_id: str, data_type: str) -> str:
        """Whether a family member may see a data type. Records the access time.

        Args:
            contact_id: Family member's contact id.
            data_type: Data type to check.
        """
        try:
            allowed = await privacy.check_family_permission(contact_id, data_type)
        except ValidationError as exc:
            return error(str(exc))
        return ok(contact_id=contact_id, data_type=data_type, allowed=allowed)

    @mcp.tool
    async def get_data_sharing_log(ctx: Context, contact_id: str = "") -> str:
        """Review permission changes, optionally for one family member.

        Args:
            contact_id: Only return entries for this contact.
        """
        entries = await privacy.get_data_sharing_log(contact_id=contact_id or None)
        return ok(count=len(entries), entries=entries)

    @mcp.tool
    async def export_privacy_settings(ctx: Context) -> str:
        """Export privacy settings and the data-sharing log for review."""
        return json.dumps({"status": "ok", "export": json.loads(await privacy.export_privacy_settings())}, indent=2)

    @mcp.tool
    async def reset_privacy_settings(ctx: Context) -> str:
        """Restore default privacy settings and clear the data-sharing log."""
        return ok(settings=await privacy.reset_privacy_settings())

    @mcp.tool
    async def cleanup_old_data(ctx: Context) -> str:
        """Delete audit entries and crash reports older than the retention period.

        Safe to run repeatedly: a second run removes nothing new.
        """
        result = await privacy.cleanup_old_data()
        return ok(cleanup=result)

    @mcp.tool
    async def get_error_metrics(ctx: Context) -> str:
        """Counts of stored crash and error reports. Reports contain no personal data."""
        return ok(metrics=await crash.get_error_metrics())
