"""Tests for SQLiteKeyValueStore: namespaces, encryption, failure mapping."""

from __future__ import annotations

import asyncio

import pytest

from buddymate.core.errors import StorageError
from buddymate.core.storage.database import StoreDatabase
from buddymate.core.storage.kv_store import KeyValueStore, SQLiteKeyValueStore


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestBasicOperations:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, KeyValueStore)

    def test_missing_key_returns_none(self, store):
        assert _run(store.get("nope")) is None

    def test_set_then_get(self, store):
        _run(store.set("health_data", '{"a":1}'))
        assert _run(store.get("health_data")) == '{"a":1}'

    def test_set_overwrites(self, store):
        _run(store.set("k", "one"))
        _run(store.set("k", "two"))
        assert _run(store.get("k")) == "two"

    def test_remove(self, store):
        _run(store.set("k", "v"))
        _run(store.remove("k"))
        assert _run(store.get("k")) is None
        assert _run(store.has_key("k")) is False

    def test_remove_missing_key_is_noop(self, store):
        _run(store.remove("never-set"))

    def test_non_string_value_rejected(self, store):
        with pytest.raises(StorageError, match="must be a string"):
            _run(store.set("k", {"not": "a string"}))  # type: ignore[arg-type]


class TestNamespaces:
    def test_secure_and_plain_are_separate(self, store):
        _run(store.set("user_pin", "plain-value"))
        _run(store.set("user_pin", "secure-value", secure=True))
        assert _run(store.get("user_pin")) == "plain-value"
        assert _run(store.get("user_pin", secure=True)) == "secure-value"

    def test_get_all_keys_per_namespace(self, store):
        _run(store.set("b", "1"))
        _run(store.set("a", "1"))
        _run(store.set("s", "1", secure=True))
        assert _run(store.get_all_keys()) == ["a", "b"]
        assert _run(store.get_all_keys(secure=True)) == ["s"]

    def test_clear_one_namespace(self, store):
        _run(store.set("a", "1"))
        _run(store.set("s", "1", secure=True))
        _run(store.clear(secure=True))
        assert _run(store.get("a")) == "1"
        assert _run(store.get("s", secure=True)) is None

    def test_clear_everything(self, store):
        _run(store.set("a", "1"))
        _run(store.set("s", "1", secure=True))
        _run(store.clear())
        assert _run(store.get_all_keys()) == []
        assert _run(store.get_all_keys(secure=True)) == []


class TestEncryption:
    def test_secure_values_encrypted_at_rest(self, store, store_db):
        _run(store.set("user_pin", "hash-value", secure=True))
        raw = store_db.connection.execute(
            "SELECT value FROM kv_items WHERE namespace = 'secure' AND key = 'user_pin'"
        ).fetchone()[0]
        assert raw != "hash-value"
        assert "hash-value" not in raw

    def test_plain_values_stored_as_text(self, store, store_db):
        _run(store.set("health_data", "{}"))
        raw = store_db.connection.execute(
            "SELECT value FROM kv_items WHERE namespace = 'plain' AND key = 'health_data'"
        ).fetchone()[0]
        assert raw == "{}"

    def test_without_encryptor_secure_values_stored_as_is(self, store_db):
        plain_store = SQLiteKeyValueStore(store_db)
        _run(plain_store.set("user_pin", "hash-value", secure=True))
        assert _run(plain_store.get("user_pin", secure=True)) == "hash-value"

    def test_undecryptable_value_raises_storage_error(self, store, store_db):
        store_db.connection.execute(
            "INSERT INTO kv_items (namespace, key, value) VALUES ('secure', 'broken', 'garbage')"
        )
        with pytest.raises(StorageError, match="decrypt"):
            _run(store.get("broken", secure=True))


class TestFailures:
    def test_closed_database_raises_storage_error(self):
        db = StoreDatabase(":memory:")
        db.initialize()
        store = SQLiteKeyValueStore(db)
        db.close()
        with pytest.raises(StorageError):
            _run(store.get("k"))
        with pytest.raises(StorageError):
            _run(store.set("k", "v"))
