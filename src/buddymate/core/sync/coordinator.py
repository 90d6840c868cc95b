"""Synchronization coordinator.

Local writes always succeed first. Each one is then recorded here as a
pending :class:`SyncOperation`, persisted under ``sync_queue``, and pushed to
the remote backend on the next sync run. Connectivity loss never blocks or
rolls back a local write.

State machine::

    ONLINE  --connection lost-->      OFFLINE
    OFFLINE --connection restored-->  ONLINE (resume_sync runs)
    ONLINE  --sync_all-->             SYNC_IN_PROGRESS --done/failed--> ONLINE
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, TypeVar

from buddymate.core.errors import DecodeError, SyncError
from buddymate.core.storage.codec import (
    decode,
    encode,
    format_datetime,
    parse_datetime,
    to_primitive,
)
from buddymate.core.storage.kv_store import KeyValueStore
from buddymate.core.sync.network import ConnectivityMonitor
from buddymate.core.sync.remote import RemoteBackend, RemoteUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYNC_QUEUE_KEY = "sync_queue"
LAST_SYNC_TIME_KEY = "last_sync_time"

OperationType = Literal["CREATE", "UPDATE", "DELETE"]
SyncListener = Callable[[dict[str, Any]], Any]

EVENTS = (
    "operation_queued",
    "sync_started",
    "sync_completed",
    "sync_failed",
    "operation_failed",
    "queue_cleared",
)


class SyncState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    SYNC_IN_PROGRESS = "sync_in_progress"


@dataclass
class SyncOperation:
    """One local change waiting to reach the remote backend."""

    id: str
    type: OperationType
    entity: str
    data: Any
    timestamp: datetime
    retry_count: int = 0
    max_retries: int = 3


@dataclass
class SyncStatus:
    state: SyncState
    is_online: bool
    is_syncing: bool
    pending_operations: int
    last_sync_time: datetime | None = None
    last_error: str | None = None


@dataclass
class SyncResult:
    synced: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)


async def with_timeout(awaitable: Awaitable[T], seconds: float) -> T:
    """Await ``awaitable`` but give up after ``seconds``.

    Raises:
        TimeoutError: If the deadline passes. The underlying work is
            cancelled; writes already committed stay committed.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise TimeoutError(f"Operation did not finish within {seconds:.1f}s") from None


class SyncCoordinator:
    """Owns the pending-operation queue and runs sync passes.

    Args:
        store: Key-value store used to persist the queue.
        network: Connectivity signal. Restoring connectivity resumes sync.
        remote: Backend operations are pushed to. ``None`` runs local-only;
            operations still queue but sync runs fail with ``SyncError``.
        max_retries: Attempts per operation before it is dropped.
        backoff_base: First retry delay in seconds, doubled per attempt.
        backoff_max: Upper bound on a single retry delay.
        sleep: Awaitable sleep, replaceable in tests.

    Usage::

        coordinator = SyncCoordinator(store, network, remote)
        await coordinator.initialize()
        await coordinator.queue_operation("CREATE", "contact", contact_dict)
        result = await coordinator.sync_all()
    """

    def __init__(
        self,
        store: KeyValueStore,
        network: ConnectivityMonitor,
        remote: RemoteBackend | None = None,
        *,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._network = network
        self._remote = remote
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._sleep = sleep

        self._queue: list[SyncOperation] = []
        self._last_sync_time: datetime | None = None
        self._last_error: str | None = None
        self._syncing = False
        self._listeners: dict[str, list[SyncListener]] = {name: [] for name in EVENTS}
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the persisted queue and start listening for connectivity."""
        raw = await self._store.get(SYNC_QUEUE_KEY)
        if raw is not None:
            queue = decode(raw, list[SyncOperation])
            if isinstance(queue, DecodeError):
                logger.warning("Stored sync queue could not be decoded, starting empty: %s", queue)
            else:
                self._queue = queue

        raw_time = await self._store.get(LAST_SYNC_TIME_KEY)
        if raw_time:
            try:
                self._last_sync_time = parse_datetime(raw_time)
            except ValueError:
                logger.warning("Ignoring malformed last sync time %r", raw_time)

        if self._unsubscribe is None:
            self._unsubscribe = self._network.add_listener(self._on_connectivity_change)
        logger.info("Sync coordinator ready (%d pending)", len(self._queue))

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        if not self._network.is_online:
            return SyncState.OFFLINE
        if self._syncing:
            return SyncState.SYNC_IN_PROGRESS
        return SyncState.ONLINE

    @property
    def last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            state=self.state,
            is_online=self._network.is_online,
            is_syncing=self._syncing,
            pending_operations=len(self._queue),
            last_sync_time=self._last_sync_time,
            last_error=self._last_error,
        )

    def get_pending_operations(self) -> list[SyncOperation]:
        return list(self._queue)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, event: str, callback: SyncListener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown sync event: {event!r}")
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: SyncListener) -> None:
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        for callback in list(self._listeners[event]):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Sync listener for %s failed", event)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    async def queue_operation(
        self,
        op_type: OperationType,
        entity: str,
        data: Any,
    ) -> SyncOperation:
        """Record a local change for later delivery.

        Raises:
            StorageError: If the queue cannot be persisted.
        """
        operation = SyncOperation(
            id=f"sync_{uuid.uuid4().hex}",
            type=op_type,
            entity=entity,
            data=data,
            timestamp=datetime.now(timezone.utc),
            max_retries=self._max_retries,
        )
        self._queue.append(operation)
        await self._persist_queue()
        logger.debug("Queued %s %s (%d pending)", op_type, entity, len(self._queue))
        await self._emit("operation_queued", {"operation": operation})
        return operation

    async def clear_sync_queue(self) -> None:
        """Drop every pending operation.

        Raises:
            SyncError: If a sync run is in progress.
        """
        if self._syncing:
            raise SyncError("Cannot clear the sync queue while a sync run is in progress")
        self._queue = []
        await self._persist_queue()
        logger.info("Sync queue cleared")
        await self._emit("queue_cleared", {})

    async def _persist_queue(self) -> None:
        await self._store.set(SYNC_QUEUE_KEY, encode(self._queue))

    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    async def sync_all(self) -> SyncResult:
        """Push every pending operation to the remote backend.

        Operations that keep failing are retried with exponential backoff
        and dropped once they reach ``max_retries``. ``last_sync_time`` is
        only updated when the run completes.

        Raises:
            SyncError: If offline, already syncing, no backend is configured,
                or the backend becomes unreachable mid-run.
        """
        if not self._network.is_online:
            raise SyncError("Cannot sync while offline")
        if self._syncing:
            raise SyncError("A sync run is already in progress")
        if self._remote is None:
            raise SyncError("No remote sync backend is configured")

        self._syncing = True
        result = SyncResult()
        await self._emit("sync_started", {"pending": len(self._queue)})
        logger.info("Sync started (%d pending)", len(self._queue))

        try:
            for operation in list(self._queue):
                delivered = await self._deliver(operation)
                self._queue.remove(operation)
                if delivered:
                    result.synced.append(operation.id)
                else:
                    result.dropped.append(operation.id)
                    await self._emit(
                        "operation_failed",
                        {"operation": operation, "error": self._last_error},
                    )
        except RemoteUnavailableError as exc:
            self._last_error = str(exc)
            logger.warning("Sync aborted: %s", exc)
            await self._emit("sync_failed", {"error": str(exc)})
            raise
        finally:
            self._syncing = False
            await self._persist_queue()

        self._last_sync_time = datetime.now(timezone.utc)
        await self._store.set(LAST_SYNC_TIME_KEY, format_datetime(self._last_sync_time))
        if not result.dropped:
            self._last_error = None
        logger.info(
            "Sync completed: %d synced, %d dropped",
            len(result.synced),
            len(result.dropped),
        )
        await self._emit(
            "sync_completed",
            {"synced": len(result.synced), "dropped": len(result.dropped)},
        )
        return result

    async def _deliver(self, operation: SyncOperation) -> bool:
        """Try one operation until it succeeds or runs out of retries.

        Returns False if the operation was given up on.
        Transport failures (``RemoteUnavailableError``) propagate.
        """
        assert self._remote is not None
        while operation.retry_count < operation.max_retries:
            try:
                await self._remote.push(operation)
                return True
            except RemoteUnavailableError:
                raise
            except Exception as exc:
                operation.retry_count += 1
                self._last_error = str(exc)
                logger.warning(
                    "Sync of %s %s failed (attempt %d/%d): %s",
                    operation.type,
                    operation.entity,
                    operation.retry_count,
                    operation.max_retries,
                    exc,
                )
                if operation.retry_count < operation.max_retries:
                    await self._sleep(self.backoff_delay(operation.retry_count - 1))

        logger.error(
            "Dropping %s %s (%s) after %d attempts",
            operation.type,
            operation.entity,
            operation.id,
            operation.retry_count,
        )
        return False

    def backoff_delay(self, attempt: int) -> float:
        return min(self._backoff_base * (2 ** attempt), self._backoff_max)

    async def resume_sync(self) -> SyncResult | None:
        """Run a sync if online and there is pending work.

        Failures are logged and recorded in the status, not raised.
        """
        if not self._network.is_online or not self._queue or self._syncing:
            return None
        try:
            return await self.sync_all()
        except SyncError as exc:
            self._last_error = str(exc)
            logger.warning("Resumed sync failed: %s", exc)
            return None

    async def run_periodic(self, interval: float) -> None:
        """Resume sync every ``interval`` seconds until cancelled."""
        while True:
            await self._sleep(interval)
            await self.resume_sync()

    async def _on_connectivity_change(self, online: bool) -> None:
        if online:
            logger.info("Connection restored, resuming sync")
            await self.resume_sync()
        else:
            logger.info("Connection lost, %d operations pending", len(self._queue))


class ChangeTracker:
    """Queues a service's local writes for one entity type.

    With no coordinator (local-only use) tracking is a no-op.

    Usage::

        tracker = ChangeTracker(coordinator, "medication_schedule")
        await tracker.created(schedule)
        await tracker.deleted(schedule.id)
    """

    def __init__(self, coordinator: SyncCoordinator | None, entity: str) -> None:
        self._coordinator = coordinator
        self.entity = entity

    async def created(self, record: Any) -> None:
        await self._queue("CREATE", to_primitive(record))

    async def updated(self, record: Any) -> None:
        await self._queue("UPDATE", to_primitive(record))

    async def deleted(self, record_id: str) -> None:
        await self._queue("DELETE", {"id": record_id})

    async def _queue(self, op_type: OperationType, data: Any) -> None:
        if self._coordinator is None:
            return
        await self._coordinator.queue_operation(op_type, self.entity, data)
