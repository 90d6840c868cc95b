"""Integration tests for the BuddyMate MCP server."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from buddymate.core.config.settings import Settings
from buddymate.core.server.app import create_app
from buddymate.core.server.container import build_container


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result):
    """JSON body of a tool result (content blocks or a bare list of them)."""
    blocks = getattr(result, "content", result)
    return json.loads(blocks[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    # communication
    "list_contacts",
    "add_contact",
    "send_message",
    "start_video_call",
    # health
    "create_medication_schedule",
    "cleanup_duplicate_medications",
    "log_medication",
    "get_weekly_adherence",
    "create_check_in",
    # community
    "list_community_resources",
    "get_daily_routine",
    "list_achievements",
    # privacy
    "grant_family_access",
    "check_family_permission",
    "cleanup_old_data",
    "get_error_metrics",
    # auth
    "setup_pin",
    "verify_pin",
    # sync
    "sync_status",
    "sync_all",
    "set_connectivity",
]


@pytest.fixture
def container(store, network, remote):
    container = build_container(
        Settings(),
        store_override=store,
        remote_override=remote,
        network_override=network,
    )
    _run(container.start())
    yield container
    container.close()


@pytest.fixture
def client(container):
    return Client(create_app(container_override=container))


def test_server_starts_and_lists_tools(client):
    async def _check():
        async with client:
            tools = await client.list_tools()
            tool_names = [t.name for t in tools]
            for expected in ALL_EXPECTED_TOOLS:
                assert expected in tool_names, f"Missing tool: {expected}"
    _run(_check())


def test_health_check_reports_storage_and_sync(client):
    async def _check():
        async with client:
            body = _payload(await client.call_tool("health_check", {}))
            assert body["status"] == "ok"
            assert body["migration_version"] == "2.0.0"
            assert body["storage"] == "external"
            assert body["sync_state"] == "online"
            assert body["pending_operations"] == 0
    _run(_check())


def test_local_write_then_sync(client, remote):
    async def _check():
        async with client:
            added = _payload(await client.call_tool("add_contact", {
                "name": "Jane",
                "relationship": "Daughter",
                "phone_number": "555-123-4567",
                "is_emergency_contact": True,
            }))
            assert added["status"] == "ok"
            assert added["contact"]["isEmergencyContact"] is True

            status = _payload(await client.call_tool("sync_status", {}))
            assert status["sync"]["pendingOperations"] == 1

            synced = _payload(await client.call_tool("sync_all", {}))
            assert synced["status"] == "ok"
            assert len(synced["result"]["synced"]) == 1
            assert synced["sync"]["pendingOperations"] == 0
    _run(_check())
    assert [op.entity for op in remote.pushed] == ["contact"]


def test_offline_writes_sync_on_reconnect(client, remote):
    async def _check():
        async with client:
            await client.call_tool("set_connectivity", {"online": False})
            created = _payload(await client.call_tool("create_medication_schedule", {
                "user_id": "u1",
                "medication_name": "Lisinopril",
                "dosage": "10mg",
                "frequency": "daily",
                "times": ["08:00"],
            }))
            assert created["status"] == "ok"

            failed = _payload(await client.call_tool("sync_all", {}))
            assert failed["status"] == "error"
            assert failed["sync"]["state"] == "offline"

            back = _payload(await client.call_tool("set_connectivity", {"online": True}))
            assert back["sync"]["pendingOperations"] == 0
    _run(_check())
    assert [op.entity for op in remote.pushed] == ["medication_schedule"]


def test_validation_errors_are_reported(client):
    async def _check():
        async with client:
            body = _payload(await client.call_tool("create_medication_schedule", {
                "user_id": "u1",
                "medication_name": "Aspirin",
                "dosage": "81mg",
                "frequency": "daily",
                "times": ["25:00"],
            }))
            assert body["status"] == "error"
            assert "Invalid time format" in body["message"]
    _run(_check())


def test_family_permissions_round_trip(client):
    async def _check():
        async with client:
            granted = _payload(await client.call_tool("grant_family_access", {
                "contact_id": "c1",
                "contact_name": "Jane",
                "permissions": {"healthData": True},
            }))
            assert granted["status"] == "ok"

            allowed = _payload(await client.call_tool("check_family_permission", {
                "contact_id": "c1",
                "data_type": "healthData",
            }))
            denied = _payload(await client.call_tool("check_family_permission", {
                "contact_id": "c1",
                "data_type": "locationData",
            }))
            assert allowed["allowed"] is True
            assert denied["allowed"] is False
    _run(_check())


def test_pin_setup_and_verify(client):
    async def _check():
        async with client:
            assert _payload(await client.call_tool("setup_pin", {"pin": "2468"}))["status"] == "ok"
            good = _payload(await client.call_tool("verify_pin", {"pin": "2468"}))
            bad = _payload(await client.call_tool("verify_pin", {"pin": "1357"}))
            assert good["result"]["success"] is True
            assert bad["result"]["error"] == "Incorrect PIN"
    _run(_check())
