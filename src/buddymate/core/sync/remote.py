"""Remote delivery of queued sync operations.

The coordinator only depends on :class:`RemoteBackend`. The shipped
implementation talks to a sync server that exposes an
``apply_sync_operation`` tool over MCP.

Usage::

    from fastmcp import Client

    backend = MCPRemoteBackend(Client(settings.sync_server_url))
    await backend.push(operation)
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from buddymate.core.errors import SyncError
from buddymate.core.storage.codec import to_primitive

if TYPE_CHECKING:
    from buddymate.core.sync.coordinator import SyncOperation

logger = logging.getLogger(__name__)

APPLY_TOOL = "apply_sync_operation"


class RemoteUnavailableError(SyncError):
    """The sync server could not be reached."""


class RemoteRejectedError(SyncError):
    """The sync server refused a single operation."""


@runtime_checkable
class RemoteBackend(Protocol):
    async def push(self, operation: SyncOperation) -> None:
        """Deliver one operation.

        Raises:
            RemoteUnavailableError: Transport failure; the run should stop.
            Exception: Any other failure is treated as a rejection of
                this operation and retried.
        """
        ...


class MCPRemoteBackend:
    """Pushes sync operations to a remote FastMCP server.

    Args:
        mcp_client: A ``fastmcp.Client`` (or compatible) pointed at the
            sync server.
    """

    def __init__(self, mcp_client: Any) -> None:
        self._client = mcp_client

    async def push(self, operation: SyncOperation) -> None:
        arguments = {"operation": to_primitive(operation)}
        try:
            async with self._client:
                result = await self._client.call_tool(APPLY_TOOL, arguments)
        except Exception:
            logger.exception("Failed to reach sync server for operation %s", operation.id)
            raise RemoteUnavailableError("Sync server is unreachable") from None

        payload = _extract_payload(result)
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                raise RemoteRejectedError(
                    f"Sync server returned non-JSON response: {payload[:200]}"
                ) from None

        if not isinstance(payload, dict):
            raise RemoteRejectedError(
                f"Unexpected sync response type: {type(payload).__name__}"
            )

        status = payload.get("status")
        if status != "ok":
            raise RemoteRejectedError(
                f"Sync server rejected {operation.id}: {_format_error(payload.get('error'))}"
            )
        logger.debug("Remote accepted %s %s (%s)", operation.type, operation.entity, operation.id)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _extract_payload(result: Any) -> Any | None:
    """Pull the JSON payload out of a fastmcp tool result.

    Handles already-parsed dicts, objects with ``.data`` or
    ``.structured_content``, lists of content blocks and raw strings.
    """
    if isinstance(result, (dict, str)):
        return result

    for attr in ("structured_content", "data"):
        value = getattr(result, attr, None)
        if isinstance(value, dict):
            return value

    blocks = getattr(result, "content", result)
    if isinstance(blocks, list):
        for block in blocks:
            if isinstance(block, dict):
                if "text" in block:
                    return block["text"]
                continue
            text = getattr(block, "text", None)
            if text is not None:
                return text
            if isinstance(block, str):
                return block
        return None

    return getattr(blocks, "text", None)


def _format_error(error: Any) -> str:
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        msg = error.get("message") or error.get("code")
        return msg if isinstance(msg, str) and msg else str(error)
    return str(error)
