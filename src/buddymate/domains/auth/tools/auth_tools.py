"""MCP tools for PIN setup and verification."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from buddymate.core.errors import ValidationError
from buddymate.core.server.responses import error, ok

if TYPE_CHECKING:
    from buddymate.domains.auth.service import AuthService

logger = logging.getLogger(__name__)


def register_auth_tools(mcp: FastMCP, auth: AuthService) -> None:
    """Register PIN tools on the MCP server."""

    @mcp.tool
    async def setup_pin(ctx: Context, pin: str) -> str:
        """Set the unlock PIN (4-6 digits). Replaces any existing PIN.

        Args:
            pin: New PIN.
        """
        try:
            await auth.setup_pin(pin)
        except ValidationError as exc:
            return error(str(exc))
        return ok(pin_set=True)

    @mcp.tool
    async def verify_pin(ctx: Context, pin: str) -> str:
        """Check a PIN against the stored one.

        Args:
            pin: PIN to check.
        """
        result = await auth.authenticate_with_pin(pin)
        return ok(result=result)

    @mcp.tool
    async def change_pin(ctx: Context, current_pin: str, new_pin: str) -> str:
        """Replace the PIN after confirming the current one.

        Args:
            current_pin: The PIN in use now.
            new_pin: New PIN (4-6 digits).
        """
        try:
            changed = await auth.change_pin(current_pin, new_pin)
        except ValidationError as exc:
            return error(str(exc))
        if not changed:
            return error("Current PIN is incorrect")
        return ok(pin_set=True)

    @mcp.tool
    async def pin_status(ctx: Context) -> str:
        """Whether a PIN has been set up."""
        return ok(pin_set=await auth.is_pin_setup())

    @mcp.tool
    async def remove_pin(ctx: Context, current_pin: str) -> str:
        """Remove the PIN after confirming it.

        Args:
            current_pin: The PIN in use now.
        """
        result = await auth.authenticate_with_pin(current_pin)
        if not result.success:
            return error(result.error or "PIN check failed")
        await auth.remove_pin()
        return ok(pin_set=False)
