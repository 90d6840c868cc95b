"""Async key-value store adapter over the SQLite substrate.

Every call is a suspension point for the caller. The adapter never raises
for a missing key; substrate failures surface as :class:`StorageError`.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from buddymate.core.errors import StorageError
from buddymate.core.storage.database import DatabaseError, StoreDatabase
from buddymate.core.storage.encryption import EncryptionError, ValueEncryptor

logger = logging.getLogger(__name__)

PLAIN_NAMESPACE = "plain"
SECURE_NAMESPACE = "secure"


def _namespace(secure: bool) -> str:
    return SECURE_NAMESPACE if secure else PLAIN_NAMESPACE


@runtime_checkable
class KeyValueStore(Protocol):
    """Uniform async string store with an optional secure namespace."""

    async def get(self, key: str, *, secure: bool = False) -> str | None: ...

    async def set(self, key: str, value: str, *, secure: bool = False) -> None: ...

    async def remove(self, key: str, *, secure: bool = False) -> None: ...

    async def clear(self, *, secure: bool | None = None) -> None: ...

    async def get_all_keys(self, *, secure: bool = False) -> list[str]: ...

    async def has_key(self, key: str, *, secure: bool = False) -> bool: ...


class SQLiteKeyValueStore:
    """Key-value store backed by the ``kv_items`` table.

    Secure items are encrypted with Fernet when an encryptor is supplied.

    Usage::

        db = StoreDatabase(":memory:")
        db.initialize()
        store = SQLiteKeyValueStore(db, ValueEncryptor(key))
        await store.set("user_pin", pin_hash, secure=True)
    """

    def __init__(
        self,
        database: StoreDatabase,
        encryptor: ValueEncryptor | None = None,
    ) -> None:
        self._db = database
        self._enc = encryptor

    async def get(self, key: str, *, secure: bool = False) -> str | None:
        try:
            row = self._db.connection.execute(
                "SELECT value FROM kv_items WHERE namespace = ? AND key = ?",
                (_namespace(secure), key),
            ).fetchone()
        except (sqlite3.Error, DatabaseError) as exc:
            raise StorageError(f"Failed to read item {key!r}: {exc}") from exc

        if row is None:
            return None
        value = row[0]
        if secure and self._enc is not None:
            try:
                return self._enc.decrypt(value)
            except EncryptionError as exc:
                raise StorageError(f"Failed to decrypt item {key!r}: {exc}") from exc
        return value

    async def set(self, key: str, value: str, *, secure: bool = False) -> None:
        if not isinstance(value, str):
            raise StorageError(
                f"Value for {key!r} must be a string, got {type(value).__name__}"
            )
        stored = value
        if secure and self._enc is not None:
            try:
                stored = self._enc.encrypt(value)
            except EncryptionError as exc:
                raise StorageError(f"Failed to encrypt item {key!r}: {exc}") from exc

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO kv_items (namespace, key, value, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(namespace, key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                (_namespace(secure), key, stored, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except (sqlite3.Error, DatabaseError) as exc:
            raise StorageError(f"Failed to store item {key!r}: {exc}") from exc
        logger.debug("Stored item %s (secure=%s, %d chars)", key, secure, len(value))

    async def remove(self, key: str, *, secure: bool = False) -> None:
        try:
            conn = self._db.connection
            conn.execute(
                "DELETE FROM kv_items WHERE namespace = ? AND key = ?",
                (_namespace(secure), key),
            )
            conn.commit()
        except (sqlite3.Error, DatabaseError) as exc:
            raise StorageError(f"Failed to remove item {key!r}: {exc}") from exc

    async def clear(self, *, secure: bool | None = None) -> None:
        """Remove every item. ``secure=None`` clears both namespaces."""
        try:
            conn = self._db.connection
            if secure is None:
                conn.execute("DELETE FROM kv_items")
            else:
                conn.execute("DELETE FROM kv_items WHERE namespace = ?", (_namespace(secure),))
            conn.commit()
        except (sqlite3.Error, DatabaseError) as exc:
            raise StorageError(f"Failed to clear storage: {exc}") from exc
        logger.warning("Cleared key-value store (secure=%s)", secure)

    async def get_all_keys(self, *, secure: bool = False) -> list[str]:
        try:
            rows = self._db.connection.execute(
                "SELECT key FROM kv_items WHERE namespace = ? ORDER BY key",
                (_namespace(secure),),
            ).fetchall()
        except (sqlite3.Error, DatabaseError) as exc:
            raise StorageError(f"Failed to list keys: {exc}") from exc
        return [row[0] for row in rows]

    async def has_key(self, key: str, *, secure: bool = False) -> bool:
        return await self.get(key, secure=secure) is not None
