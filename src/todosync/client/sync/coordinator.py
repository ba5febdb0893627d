"""Sync coordinator: replays the local queue against the remote API.

This module provides:
- RemoteClient: Protocol the coordinator needs from the API client
- SyncCoordinator: Runs sync cycles with single-flight and reachability gating

A cycle:
1. Skip if another cycle is running (single-flight, returns a skipped result)
2. Abort if the API health check fails, touching no entry
3. Return entries left in processing by an aborted cycle to pending
4. Fetch up to batch_size pending entries in created_at order
5. Dispatch each entry sequentially and resolve it in the queue:

    | Outcome                         | Queue update                         |
    |---------------------------------|--------------------------------------|
    | Success                         | delete_by_id                         |
    | Failure, budget left            | retry_later (back to pending)        |
    | Failure, budget exhausted       | mark_failed_terminal                 |

Per-entry failures (API errors, validation errors, client bugs) are
aggregated into the SyncResult and never abort the batch. StorageError is
fatal: it is logged and re-raised, and the coordinator returns to IDLE.

Ordering caveat: entries are processed in order within a cycle. An entry
that fails is retried in a later cycle, possibly after a newer entry for the
same entity has already been replayed.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

from todosync.client.api import APIError, NetworkError, TodoRequest
from todosync.client.sync.payloads import TodoSnapshot, parse_payload
from todosync.client.sync.types import (
    QueueStats,
    StorageError,
    SyncError,
    SyncInProgressError,
    SyncQueueEntry,
    SyncResult,
    ValidationError,
)
from todosync.core.config import DEFAULT_BATCH_SIZE, DEFAULT_MAX_RETRIES
from todosync.core.types import ActionType, QueueStatus, SyncState

if TYPE_CHECKING:
    from todosync.client.sync.queue import SyncQueueStore

logger = logging.getLogger(__name__)


class RemoteClient(Protocol):
    """Protocol for the remote side of the sync queue.

    TodoClient implements it; tests substitute fakes.
    """

    def health_check(self) -> bool:
        """Return True if the API is reachable. Must not raise."""
        ...

    def create(self, request: TodoRequest) -> Any:
        """Create the entity remotely. Raises APIError on failure."""
        ...

    def update(self, remote_id: int, request: TodoRequest) -> Any:
        """Update the entity remotely. Raises APIError on failure."""
        ...

    def delete(self, remote_id: int) -> None:
        """Delete the entity remotely. Raises APIError on failure."""
        ...


def describe_error(error: BaseException) -> str:
    """Extract a message from an exception for the queue and the result."""
    if isinstance(error, APIError) and error.message:
        return error.message
    message = str(error)
    if message:
        return message
    return f"Unknown error occurred ({type(error).__name__})"


def _remote_id(entry: SyncQueueEntry) -> int:
    try:
        return int(entry.entity_id)
    except ValueError:
        raise ValidationError(f"Invalid entity ID: {entry.entity_id}") from None


class SyncCoordinator:
    """Replays queued local mutations against the remote API.

    Usage:
        store = SyncQueueStore(db_path, max_retries=3)
        client = TodoClient(ApiConfig(base_url="http://localhost:8080"))
        coordinator = SyncCoordinator(store, client, max_retries=3, batch_size=50)

        result = coordinator.run_sync()  # timer tick or manual trigger
    """

    def __init__(
        self,
        store: SyncQueueStore,
        client: RemoteClient,
        max_retries: int = DEFAULT_MAX_RETRIES,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Queue to read entries from and resolve them in.
            client: Remote API client.
            max_retries: Failed attempts after which an entry is terminal.
            batch_size: Maximum entries processed per cycle.
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if store.max_retries != max_retries:
            logger.warning(
                "Queue store max_retries (%d) differs from coordinator max_retries (%d)",
                store.max_retries,
                max_retries,
            )

        self._store = store
        self._client = client
        self._max_retries = max_retries
        self._batch_size = batch_size

        # Single-flight guard: held for the whole cycle
        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self._last_result: SyncResult | None = None

    @property
    def state(self) -> SyncState:
        """Get current coordinator state."""
        return self._state

    @property
    def is_syncing(self) -> bool:
        """Check if a sync cycle is currently running."""
        return self._state == SyncState.RUNNING

    @property
    def last_result(self) -> SyncResult | None:
        """Result of the last completed cycle."""
        return self._last_result

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # === Host surface ===

    def run_sync(self) -> SyncResult:
        """Run one sync cycle.

        Safe to call from a timer thread and a manual trigger at the same
        time: if a cycle is already running this returns immediately.

        Returns:
            Cycle result; skipped=True if another cycle was running.

        Raises:
            StorageError: If the local queue cannot be read or updated.
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Previous sync still in progress, skipping")
            return SyncResult(skipped=True)

        self._state = SyncState.RUNNING
        try:
            logger.info("Starting sync cycle")
            stats_before = self._store.stats()
            logger.info("Queue before: %s", stats_before.as_dict())

            result = self._run_cycle()
            self._last_result = result

            if result.reachable:
                logger.info(
                    "Sync completed: %d succeeded, %d failed",
                    result.success_count,
                    result.failed_count,
                )
                logger.info("Queue after: %s", self._store.stats().as_dict())
            return result
        except Exception:
            logger.exception("Error during sync")
            raise
        finally:
            self._state = SyncState.IDLE
            self._lock.release()

    def sync_single_item(self, entry_id: str) -> SyncResult:
        """Replay one entry immediately (manual retry).

        The entry goes through the same per-entry path as in a cycle, without
        the reachability check and regardless of its retry_count, so a
        terminally failed entry can be retried by hand.

        Args:
            entry_id: Queue entry id.

        Returns:
            Result for this single entry.

        Raises:
            SyncInProgressError: If a sync cycle is running.
            SyncError: If the entry does not exist or is being processed.
            StorageError: If the local queue cannot be read or updated.
        """
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError("Sync is already in progress")

        self._state = SyncState.RUNNING
        try:
            entry = self._store.get_by_id(entry_id)
            if entry is None:
                raise SyncError(f"Sync queue item not found: {entry_id}")
            if entry.status == QueueStatus.PROCESSING.value:
                raise SyncError(f"Item is already being processed: {entry_id}")

            logger.info("Manually syncing %r", entry)
            result = SyncResult()
            self._process_entry(entry, result)
            return result
        finally:
            self._state = SyncState.IDLE
            self._lock.release()

    def get_queue_stats(self) -> QueueStats:
        """Get sync queue statistics."""
        return self._store.stats()

    def clear_terminal_items(self) -> int:
        """Delete all entries whose retry budget is exhausted.

        Returns:
            Number of entries deleted.
        """
        count = self._store.delete_by_status(QueueStatus.FAILED)
        if count:
            logger.info("Cleared %d failed entries from the sync queue", count)
        return count

    def recover_interrupted(self) -> int:
        """Return entries stuck in processing to pending.

        Call once at startup, before the first cycle; an entry is only left
        in processing if a previous run stopped mid-dispatch.

        Returns:
            Number of entries recovered.
        """
        count = self._store.reset_processing()
        if count:
            logger.warning("Recovered %d sync queue entries left in processing", count)
        return count

    # === Cycle ===

    def _is_reachable(self) -> bool:
        try:
            return bool(self._client.health_check())
        except NetworkError as e:
            logger.debug("Health check raised: %s", e)
            return False

    def _run_cycle(self) -> SyncResult:
        """Health check, then process one batch in order."""
        if not self._is_reachable():
            # Fail fast: no entry is touched, retry budgets are preserved
            logger.warning("API is not reachable, skipping sync cycle")
            return SyncResult(reachable=False)

        # Under the lock no entry is legitimately in processing; any such entry
        # was left there by a cycle aborted with StorageError
        stale = self._store.reset_processing()
        if stale:
            logger.warning("Returned %d interrupted entries to pending", stale)

        result = SyncResult()
        entries = self._store.fetch_pending(self._batch_size)
        logger.debug("Processing %d pending entries", len(entries))

        for entry in entries:
            self._process_entry(entry, result)

        return result

    def _process_entry(self, entry: SyncQueueEntry, result: SyncResult) -> None:
        """Dispatch one entry and resolve it in the queue."""
        if not self._store.mark_processing(entry.id):
            logger.warning("Sync queue entry %s disappeared before processing", entry.id)
            return

        try:
            self._dispatch(entry)
        except StorageError:
            raise
        except (APIError, SyncError) as e:
            message = describe_error(e)
            logger.warning("Failed to sync %r: %s", entry, message)
            self._handle_failure(entry, message)
            result.record_failure(entry.id, message)
            return
        except Exception as e:
            message = describe_error(e)
            logger.exception("Unexpected error syncing %r", entry)
            self._handle_failure(entry, message)
            result.record_failure(entry.id, message)
            return

        self._store.delete_by_id(entry.id)
        result.record_success()
        logger.debug("Synced %r", entry)

    def _dispatch(self, entry: SyncQueueEntry) -> None:
        """Send the entry to the remote API.

        Raises:
            ValidationError: If the entry cannot be mapped to a request.
            APIError: If the remote call fails.
        """
        try:
            action = ActionType(entry.action_type)
        except ValueError:
            raise ValidationError(f"Unknown action type: {entry.action_type}") from None

        payload = parse_payload(entry.entity_type, action, entry.payload)

        if action == ActionType.CREATE:
            self._client.create(self._build_request(entry, payload))
        elif action == ActionType.UPDATE:
            self._client.update(_remote_id(entry), self._build_request(entry, payload))
        elif action == ActionType.DELETE:
            self._client.delete(_remote_id(entry))

    def _build_request(self, entry: SyncQueueEntry, payload: Any) -> TodoRequest:
        if not isinstance(payload, TodoSnapshot):
            raise ValidationError(
                f"Cannot build a request from {type(payload).__name__} payload"
            )
        return payload.to_request(entry.created_at)

    def _handle_failure(self, entry: SyncQueueEntry, message: str) -> None:
        """Keep the entry for a later cycle, or make it terminal."""
        attempts = entry.retry_count + 1
        if attempts < self._max_retries:
            self._store.retry_later(entry.id, message)
        else:
            self._store.mark_failed_terminal(entry.id, f"Max retries exceeded: {message}")
