"""Shared test fixtures for BuddyMate data layer tests."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("SYNC_SERVER_URL", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from buddymate.core.storage.database import StoreDatabase  # noqa: E402
from buddymate.core.storage.kv_store import SQLiteKeyValueStore  # noqa: E402
from buddymate.core.sync.coordinator import SyncCoordinator  # noqa: E402
from buddymate.core.sync.network import ConnectivityMonitor  # noqa: E402


# ---------------------------------------------------------------------------
# Fake remote backends
# ---------------------------------------------------------------------------

class FakeRemoteBackend:
    """RemoteBackend that records pushes and raises scripted errors.

    ``errors`` is consumed one entry per push; ``None`` means success.
    """

    def __init__(self, errors: list[Exception | None] | None = None) -> None:
        self.errors = list(errors or [])
        self.pushed: list[Any] = []
        self.attempts = 0

    async def push(self, operation) -> None:
        self.attempts += 1
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        self.pushed.append(operation)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@dataclass
class _TextBlock:
    """Mimics fastmcp content block structure."""

    type: str
    text: str


class MockMCPClient:
    """Mock fastmcp.Client for the sync server's apply_sync_operation tool."""

    def __init__(self, response: dict[str, Any] | None = None, fail: bool = False) -> None:
        self._response = response or {"status": "ok"}
        self._fail = fail
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> list[Any]:
        if self._fail:
            raise ConnectionError("connection refused")
        self.calls.append((tool_name, arguments))
        return [_TextBlock(type="text", text=json.dumps(self._response))]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store_db():
    """Create an in-memory StoreDatabase for testing."""
    db = StoreDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def value_encryptor():
    """Create a ValueEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from buddymate.core.storage.encryption import ValueEncryptor

    return ValueEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def store(store_db, value_encryptor):
    """Key-value store backed by in-memory SQLite with an encrypted secure namespace."""
    return SQLiteKeyValueStore(store_db, value_encryptor)


@pytest.fixture
def network() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def remote() -> FakeRemoteBackend:
    return FakeRemoteBackend()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def coordinator(store, network, remote, sleep) -> SyncCoordinator:
    """SyncCoordinator with a fake remote and no real sleeping. Not yet initialized."""
    return SyncCoordinator(store, network, remote, sleep=sleep)


@pytest.fixture
def remote_factory():
    """Build a FakeRemoteBackend with scripted per-push errors."""
    return FakeRemoteBackend


@pytest.fixture
def mcp_client_factory():
    """Build a MockMCPClient with a canned response."""
    return MockMCPClient


@pytest.fixture
def broken_store():
    """Store whose database is already closed: every call raises StorageError."""
    db = StoreDatabase(":memory:")
    db.initialize()
    db.close()
    return SQLiteKeyValueStore(db)
