"""Tests for MCPRemoteBackend."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from buddymate.core.sync.coordinator import SyncOperation
from buddymate.core.sync.remote import (
    APPLY_TOOL,
    MCPRemoteBackend,
    RemoteBackend,
    RemoteRejectedError,
    RemoteUnavailableError,
)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _operation() -> SyncOperation:
    return SyncOperation(
        id="sync_1",
        type="CREATE",
        entity="contact",
        data={"id": "c1", "name": "Ann"},
        timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    )


class TestMCPRemoteBackend:
    def test_satisfies_protocol(self, mcp_client_factory):
        assert isinstance(MCPRemoteBackend(mcp_client_factory()), RemoteBackend)

    def test_push_sends_operation(self, mcp_client_factory):
        client = mcp_client_factory()
        _run(MCPRemoteBackend(client).push(_operation()))

        tool, arguments = client.calls[0]
        assert tool == APPLY_TOOL
        sent = arguments["operation"]
        assert sent["entity"] == "contact"
        assert sent["timestamp"] == "2026-03-01T12:00:00.000Z"
        assert sent["retryCount"] == 0

    def test_transport_failure_is_unavailable(self, mcp_client_factory):
        with pytest.raises(RemoteUnavailableError):
            _run(MCPRemoteBackend(mcp_client_factory(fail=True)).push(_operation()))

    def test_error_status_is_rejection(self, mcp_client_factory):
        client = mcp_client_factory(response={"status": "error", "error": {"message": "conflict"}})
        with pytest.raises(RemoteRejectedError, match="conflict"):
            _run(MCPRemoteBackend(client).push(_operation()))

    def test_missing_error_detail(self, mcp_client_factory):
        client = mcp_client_factory(response={"status": "error"})
        with pytest.raises(RemoteRejectedError, match="Unknown error"):
            _run(MCPRemoteBackend(client).push(_operation()))
