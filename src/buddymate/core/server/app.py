"""BuddyMate data layer MCP server: application factory.

This module provides:
- create_app() for testability (integration tests pass a prepared container)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import asyncio
import logging

from fastmcp import Context, FastMCP

from buddymate.core.config.settings import get_settings
from buddymate.core.errors import SyncError
from buddymate.core.server.container import Container, build_container
from buddymate.core.server.responses import error, ok
from buddymate.core.sync.coordinator import with_timeout
from buddymate.domains.auth.tools.auth_tools import register_auth_tools
from buddymate.domains.communication.tools.communication_tools import register_communication_tools
from buddymate.domains.community.tools.community_tools import register_community_tools
from buddymate.domains.health.tools.medication_tools import register_medication_tools
from buddymate.domains.privacy.tools.privacy_tools import register_privacy_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "BuddyMate Data Layer"


def register_sync_tools(mcp: FastMCP, container: Container) -> None:
    """Register sync queue and connectivity tools on the MCP server."""
    sync = container.sync
    timeout = container.settings.load_timeout_seconds

    @mcp.tool
    async def sync_status(ctx: Context) -> str:
        """Connectivity, sync state, pending operation count and last sync time."""
        return ok(sync=sync.get_sync_status())

    @mcp.tool
    async def list_pending_operations(ctx: Context) -> str:
        """Local changes waiting to be pushed, oldest first."""
        operations = sync.get_pending_operations()
        return ok(count=len(operations), operations=operations)

    @mcp.tool
    async def sync_all(ctx: Context) -> str:
        """Push all pending local changes to the sync server now.

        Operations the server keeps rejecting are dropped after the retry
        limit. If the server is unreachable the queue is left intact.
        """
        try:
            result = await sync.sync_all()
        except SyncError as exc:
            return error(str(exc), sync=sync.get_sync_status())
        return ok(result=result, sync=sync.get_sync_status())

    @mcp.tool
    async def set_connectivity(ctx: Context, online: bool) -> str:
        """Report a connectivity change. Going online resumes any pending sync.

        Args:
            online: Whether the device now has a connection.
        """
        try:
            await with_timeout(container.network.set_online(online), timeout)
        except TimeoutError as exc:
            return error(str(exc), sync=sync.get_sync_status())
        return ok(sync=sync.get_sync_status())

    @mcp.tool
    async def clear_sync_queue(ctx: Context) -> str:
        """Discard every pending operation without pushing it."""
        dropped = len(sync.get_pending_operations())
        try:
            await sync.clear_sync_queue()
        except SyncError as exc:
            return error(str(exc), sync=sync.get_sync_status())
        return ok(cleared=dropped)


def create_app(*, container_override: Container | None = None) -> FastMCP:
    """Create and configure the BuddyMate MCP server.

    Without an override the container is built from Settings and started
    here (migrations, sync queue load), so this must be called outside a
    running event loop.
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Offline-first data layer for the BuddyMate senior companion app. "
            "Manages contacts, medications, routines, community resources, "
            "privacy permissions and the sync queue on the local device."
        ),
    )

    # --- Container ---
    if container_override is not None:
        container = container_override
    else:
        container = build_container(settings)
        applied = asyncio.run(container.start())
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))

    @server.tool
    async def health_check() -> dict:
        """Check server health and return basic status information."""
        status = container.sync.get_sync_status()
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": container.settings.app_version,
            "migration_version": await container.migration.get_current_version(),
            "storage": container.database.path if container.database is not None else "external",
            "secure_storage_encrypted": bool(container.settings.encryption_key),
            "sync_remote_configured": bool(container.settings.sync_server_url),
            "sync_state": status.state.value,
            "pending_operations": status.pending_operations,
        }

    # --- Register domain tools ---
    register_communication_tools(server, container.communication)
    register_medication_tools(server, container.medications, container.check_ins)
    register_community_tools(server, container.community, container.activities)
    register_privacy_tools(server, container.privacy, container.crash)
    register_auth_tools(server, container.auth)
    register_sync_tools(server, container)
    logger.info("BuddyMate tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
