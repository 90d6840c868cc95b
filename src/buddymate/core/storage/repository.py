"""Aggregate repository base: whole-blob read-modify-write over the store.

Each aggregate lives under one storage key as one JSON document. Every
mutation re-reads the latest blob, changes it in memory and writes the whole
blob back. There is no cross-call locking: two concurrent mutations on the
same aggregate race and the later write wins.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Generic, TypeVar

from buddymate.core.errors import DecodeError
from buddymate.core.storage.codec import decode_data, encode
from buddymate.core.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

A = TypeVar("A")


class AggregateRepository(Generic[A]):
    """Load/save one aggregate and upsert/remove records in its collections.

    Subclasses set ``storage_key``, ``aggregate_type`` and ``default_factory``.

    Usage::

        class HealthRepository(AggregateRepository[HealthData]):
            storage_key = "health_data"
            aggregate_type = HealthData
            default_factory = HealthData
    """

    storage_key: str = ""
    aggregate_type: Any = None
    default_factory: Callable[[], A]
    secure: bool = False

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Whole aggregate
    # ------------------------------------------------------------------

    async def get_all(self) -> A:
        """Load the aggregate, or a fresh default if absent or undecodable.

        Storage failures propagate as ``StorageError``.
        """
        raw = await self._store.get(self.storage_key, secure=self.secure)
        if raw is None:
            return self.default_factory()

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            result: Any = DecodeError(f"Malformed JSON: {exc}", raw=raw)
        else:
            result = decode_data(self.upgrade_document(document), self.aggregate_type, raw=raw)

        if isinstance(result, DecodeError):
            logger.warning(
                "Stored %s could not be decoded, using default: %s",
                self.storage_key,
                result,
            )
            return self.default_factory()
        return result

    def upgrade_document(self, document: Any) -> Any:
        """Adapt an older stored shape before decoding. Identity by default."""
        return document

    async def save_all(self, aggregate: A) -> None:
        """Write the whole aggregate. Failures propagate to the caller."""
        await self._store.set(self.storage_key, encode(aggregate), secure=self.secure)

    async def clear(self) -> None:
        await self._store.remove(self.storage_key, secure=self.secure)

    # ------------------------------------------------------------------
    # Collection helpers
    # ------------------------------------------------------------------

    def _collection(self, aggregate: A, name: str | None) -> list[Any]:
        return aggregate if name is None else getattr(aggregate, name)  # type: ignore[return-value]

    async def find(self, record_id: str, *, collection: str | None = None) -> Any | None:
        aggregate = await self.get_all()
        for record in self._collection(aggregate, collection):
            if record.id == record_id:
                return record
        return None

    async def upsert(self, record: Any, *, collection: str | None = None) -> A:
        """Replace the record with the same ``id`` in place, or append it."""
        aggregate = await self.get_all()
        items = self._collection(aggregate, collection)
        for index, existing in enumerate(items):
            if existing.id == record.id:
                items[index] = record
                break
        else:
            items.append(record)
        await self.save_all(aggregate)
        return aggregate

    async def remove(self, record_id: str, *, collection: str | None = None) -> bool:
        """Delete the record with ``record_id``. Returns False if absent."""
        aggregate = await self.get_all()
        items = self._collection(aggregate, collection)
        kept = [record for record in items if record.id != record_id]
        if len(kept) == len(items):
            return False
        items[:] = kept
        await self.save_all(aggregate)
        return True
