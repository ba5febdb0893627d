"""Durable sync queue backed by SQLite.

This module provides:
- SyncQueueStore: Ordered, persistent record of local mutations awaiting replay

Every local create/update/delete is recorded as one entry. The coordinator
reads entries in created_at order and resolves each one by deleting it
(success), returning it to pending with an incremented retry_count, or
marking it failed once its retry budget is spent.

Persistence:
    All writes commit immediately. Operations that read a row before
    updating it (enqueue, retry_later) run inside a BEGIN IMMEDIATE
    transaction so the read and the write are atomic.

    Every sqlite3 error is re-raised as StorageError. The store never drops
    work silently.

Ordering:
    created_at is assigned as max(now_ms, last_assigned + 1), so entries of
    one store never share an ordering key even when enqueued within the
    same millisecond or across a backwards clock jump.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from todosync.client.sync.payloads import serialize_payload
from todosync.client.sync.types import (
    QueueStats,
    StorageError,
    SyncQueueEntry,
    ValidationError,
)
from todosync.core.config import DEFAULT_MAX_RETRIES
from todosync.core.types import ActionType, QueueStatus

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, action_type, entity_type, entity_id, payload, created_at, "
    "retry_count, status, error_message, last_attempt_at"
)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SyncQueueStore:
    """SQLite-backed sync queue.

    Thread-safe: a single connection is shared and guarded by an RLock, so
    the scheduler thread and the caller thread can use the same instance.

    Attributes:
        max_retries: Failed attempts after which an entry is terminal.
    """

    def __init__(
        self,
        db_path: Path | str,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        """Open (and create if needed) the queue database.

        Args:
            db_path: Path to the SQLite file, or ":memory:".
            max_retries: Retry budget enforced by fetch_pending and retry_later.

        Raises:
            StorageError: If the database cannot be opened.
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        self.max_retries = max_retries
        self._db_path = str(db_path)
        self._lock = threading.RLock()
        self._last_created_at = 0

        try:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
                isolation_level=None,  # Autocommit mode
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open sync queue at {self._db_path}: {e}") from e

        logger.debug("Opened sync queue at %s", self._db_path)

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS sync_queue (
                id TEXT PRIMARY KEY,
                action_type TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                retry_count INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'pending',
                error_message TEXT,
                last_attempt_at INTEGER
            );

            CREATE INDEX IF NOT EXISTS idx_sync_queue_status ON sync_queue(status);
            CREATE INDEX IF NOT EXISTS idx_sync_queue_created_at ON sync_queue(created_at);
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> SyncQueueStore:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # === Low-level helpers ===

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside BEGIN IMMEDIATE ... COMMIT.

        Rolls back on any exception. sqlite3 errors surface as StorageError.
        """
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                try:
                    yield self._conn
                except BaseException:
                    self._conn.execute("ROLLBACK")
                    raise
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                raise StorageError(f"Sync queue transaction failed: {e}") from e

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Execute a single autocommitted statement."""
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise StorageError(f"Sync queue operation failed: {e}") from e

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[SyncQueueEntry]:
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Sync queue query failed: {e}") from e
        return [SyncQueueEntry.from_row(row) for row in rows]

    def _next_created_at(self, conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT MAX(created_at) FROM sync_queue").fetchone()
        last = max(self._last_created_at, row[0] or 0)
        created_at = max(_now_ms(), last + 1)
        self._last_created_at = created_at
        return created_at

    # === Enqueue ===

    def enqueue(
        self,
        action_type: ActionType | str,
        entity_type: str,
        entity_id: str | int,
        payload: Mapping[str, Any] | BaseModel | str,
    ) -> SyncQueueEntry:
        """Record a local mutation for later replay.

        Args:
            action_type: CREATE, UPDATE or DELETE.
            entity_type: Kind of entity (e.g. "todo").
            entity_id: Local id of the entity.
            payload: Snapshot of the entity (serialized to JSON once, here).

        Returns:
            The persisted entry.

        Raises:
            ValidationError: If the action type is unknown, the entity type is
                empty, or the payload cannot be serialized.
            StorageError: If the entry cannot be persisted.
        """
        try:
            action = ActionType(action_type)
        except ValueError:
            raise ValidationError(f"Unknown action type: {action_type}") from None
        if not entity_type:
            raise ValidationError("entity_type must not be empty")

        serialized = serialize_payload(payload)
        entry_id = str(uuid.uuid4())

        with self._transaction() as conn:
            created_at = self._next_created_at(conn)
            conn.execute(
                f"""
                INSERT INTO sync_queue ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, NULL, NULL)
                """,
                (
                    entry_id,
                    action.value,
                    entity_type,
                    str(entity_id),
                    serialized,
                    created_at,
                    QueueStatus.PENDING.value,
                ),
            )

        entry = SyncQueueEntry(
            id=entry_id,
            action_type=action.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            payload=serialized,
            created_at=created_at,
        )
        logger.debug("Queued %r", entry)
        return entry

    def queue_create(
        self, entity_type: str, entity_id: str | int, payload: Mapping[str, Any] | BaseModel
    ) -> SyncQueueEntry:
        """Queue a create action."""
        return self.enqueue(ActionType.CREATE, entity_type, entity_id, payload)

    def queue_update(
        self, entity_type: str, entity_id: str | int, payload: Mapping[str, Any] | BaseModel
    ) -> SyncQueueEntry:
        """Queue an update action."""
        return self.enqueue(ActionType.UPDATE, entity_type, entity_id, payload)

    def queue_delete(
        self, entity_type: str, entity_id: str | int, payload: Mapping[str, Any] | BaseModel
    ) -> SyncQueueEntry:
        """Queue a delete action."""
        return self.enqueue(ActionType.DELETE, entity_type, entity_id, payload)

    def insert(self, entry: SyncQueueEntry) -> SyncQueueEntry:
        """Persist a fully specified entry as-is.

        Used to restore or import entries. No field is validated or rewritten.

        Raises:
            StorageError: If the entry cannot be persisted (e.g. duplicate id).
        """
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO sync_queue ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.action_type,
                    entry.entity_type,
                    entry.entity_id,
                    entry.payload,
                    entry.created_at,
                    entry.retry_count,
                    entry.status,
                    entry.error_message,
                    entry.last_attempt_at,
                ),
            )
            self._last_created_at = max(self._last_created_at, entry.created_at)
        return entry

    # === Reads ===

    def get_by_id(self, entry_id: str) -> SyncQueueEntry | None:
        """Get a single entry by id."""
        entries = self._query(f"SELECT {_COLUMNS} FROM sync_queue WHERE id = ?", (entry_id,))
        return entries[0] if entries else None

    def get_all(self) -> list[SyncQueueEntry]:
        """Get all entries, oldest first."""
        return self._query(
            f"SELECT {_COLUMNS} FROM sync_queue ORDER BY created_at ASC, rowid ASC"
        )

    def get_by_status(self, status: QueueStatus | str) -> list[SyncQueueEntry]:
        """Get all entries with the given status, oldest first."""
        return self._query(
            f"SELECT {_COLUMNS} FROM sync_queue WHERE status = ? "
            "ORDER BY created_at ASC, rowid ASC",
            (QueueStatus(status).value,),
        )

    def fetch_pending(self, limit: int) -> list[SyncQueueEntry]:
        """Get the next batch of entries to replay.

        Only pending entries with retry_count < max_retries are returned.

        Args:
            limit: Maximum number of entries.

        Returns:
            Entries in ascending created_at order.
        """
        if limit < 1:
            return []
        return self._query(
            f"""
            SELECT {_COLUMNS} FROM sync_queue
            WHERE status = ? AND retry_count < ?
            ORDER BY created_at ASC, rowid ASC
            LIMIT ?
            """,
            (QueueStatus.PENDING.value, self.max_retries, limit),
        )

    def stats(self) -> QueueStats:
        """Get queue counts by status."""
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT status, COUNT(*) AS count FROM sync_queue GROUP BY status"
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Sync queue query failed: {e}") from e

        stats = QueueStats()
        for row in rows:
            stats.total += row["count"]
            if row["status"] == QueueStatus.PENDING.value:
                stats.pending = row["count"]
            elif row["status"] == QueueStatus.PROCESSING.value:
                stats.processing = row["count"]
            elif row["status"] == QueueStatus.FAILED.value:
                stats.failed = row["count"]
        return stats

    def __len__(self) -> int:
        """Get number of entries in the queue."""
        return self.stats().total

    # === State transitions ===

    def mark_processing(self, entry_id: str) -> bool:
        """Mark an entry as being processed.

        Returns:
            True if a row was updated.
        """
        cursor = self._execute(
            "UPDATE sync_queue SET status = ?, last_attempt_at = ? WHERE id = ?",
            (QueueStatus.PROCESSING.value, _now_ms(), entry_id),
        )
        return cursor.rowcount > 0

    def mark_failed_terminal(self, entry_id: str, error_message: str) -> bool:
        """Mark an entry as permanently failed.

        Increments retry_count and records the error and attempt time.

        Returns:
            True if a row was updated.
        """
        cursor = self._execute(
            """
            UPDATE sync_queue
            SET status = ?,
                error_message = ?,
                retry_count = retry_count + 1,
                last_attempt_at = ?
            WHERE id = ?
            """,
            (QueueStatus.FAILED.value, error_message, _now_ms(), entry_id),
        )
        if cursor.rowcount > 0:
            logger.warning("Sync queue entry %s failed permanently: %s", entry_id, error_message)
            return True
        return False

    def retry_later(self, entry_id: str, error_message: str | None = None) -> bool:
        """Return an entry to pending after a failed attempt.

        retry_count is incremented in a read-modify-write transaction. If the
        new count reaches max_retries the entry becomes failed instead of
        pending, so an exhausted entry is never left selectable.

        Args:
            entry_id: Entry to update.
            error_message: Optional reason of the failed attempt.

        Returns:
            True if the entry exists.
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT retry_count FROM sync_queue WHERE id = ?", (entry_id,)
            ).fetchone()
            if row is None:
                return False

            retry_count = row["retry_count"] + 1
            status = (
                QueueStatus.PENDING if retry_count < self.max_retries else QueueStatus.FAILED
            )
            conn.execute(
                """
                UPDATE sync_queue
                SET retry_count = ?,
                    status = ?,
                    error_message = COALESCE(?, error_message),
                    last_attempt_at = ?
                WHERE id = ?
                """,
                (retry_count, status.value, error_message, _now_ms(), entry_id),
            )

        logger.debug(
            "Entry %s will be retried later (attempt %d/%d, status=%s)",
            entry_id,
            retry_count,
            self.max_retries,
            status.value,
        )
        return True

    def reset_processing(self) -> int:
        """Return entries stuck in processing to pending.

        A crash mid-cycle leaves the entry being dispatched in processing.
        The host calls this once on startup; retry_count is not changed.

        Returns:
            Number of entries reset.
        """
        cursor = self._execute(
            "UPDATE sync_queue SET status = ? WHERE status = ?",
            (QueueStatus.PENDING.value, QueueStatus.PROCESSING.value),
        )
        if cursor.rowcount > 0:
            logger.info("Reset %d stale processing entries to pending", cursor.rowcount)
        return cursor.rowcount

    # === Deletes ===

    def delete_by_id(self, entry_id: str) -> bool:
        """Delete a single entry.

        Returns:
            True if a row was deleted.
        """
        cursor = self._execute("DELETE FROM sync_queue WHERE id = ?", (entry_id,))
        return cursor.rowcount > 0

    def delete_by_status(self, status: QueueStatus | str) -> int:
        """Delete all entries with the given status.

        Returns:
            Number of entries deleted.
        """
        cursor = self._execute(
            "DELETE FROM sync_queue WHERE status = ?", (QueueStatus(status).value,)
        )
        return cursor.rowcount
