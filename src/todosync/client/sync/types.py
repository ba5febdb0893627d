"""Shared types and dataclasses for the sync queue.

This module provides:
- SyncError, ValidationError, StorageError, SyncInProgressError: Exception classes
- SyncQueueEntry: One durable record of a pending local mutation
- QueueStats: Queue counts by status
- SyncItemError, SyncResult: Outcome of a sync cycle
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any

from todosync.core.types import QueueStatus


class SyncError(Exception):
    """Base exception for sync errors."""


class ValidationError(SyncError):
    """An entry cannot be mapped to a remote request.

    Raised for unknown action or entity types, malformed payloads and entity
    ids that do not parse to a remote identifier.
    """


class StorageError(SyncError):
    """A local persistence operation failed."""


class SyncInProgressError(SyncError):
    """A sync cycle is already running."""


@dataclass(frozen=True)
class SyncQueueEntry:
    """A pending local mutation awaiting replay to the remote API.

    Instances are snapshots of a row; the store is the only writer.

    Attributes:
        id: Unique identifier (UUID) assigned at enqueue time.
        action_type: CREATE, UPDATE or DELETE (raw persisted value).
        entity_type: Kind of local entity (e.g. "todo").
        entity_id: String form of the local entity id.
        payload: JSON snapshot of the entity at enqueue time.
        created_at: Ordering key, epoch milliseconds.
        retry_count: Number of failed attempts so far.
        status: pending, processing or failed.
        error_message: Last failure reason.
        last_attempt_at: Epoch milliseconds of the most recent attempt.
    """

    id: str
    action_type: str
    entity_type: str
    entity_id: str
    payload: str
    created_at: int
    retry_count: int = 0
    status: str = QueueStatus.PENDING.value
    error_message: str | None = None
    last_attempt_at: int | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SyncQueueEntry:
        """Create SyncQueueEntry from database row."""
        return cls(
            id=row["id"],
            action_type=row["action_type"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            payload=row["payload"],
            created_at=row["created_at"],
            retry_count=row["retry_count"],
            status=row["status"],
            error_message=row["error_message"],
            last_attempt_at=row["last_attempt_at"],
        )

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"SyncQueueEntry({self.action_type} {self.entity_type}:{self.entity_id}, "
            f"id={self.id!r}, status={self.status}, retries={self.retry_count})"
        )


@dataclass
class QueueStats:
    """Counts of queue entries by status."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "processing": self.processing,
            "failed": self.failed,
        }


@dataclass
class SyncItemError:
    """A single failed entry in a sync cycle."""

    id: str
    error: str


@dataclass
class SyncResult:
    """Result of a sync cycle.

    Attributes:
        success_count: Entries replayed and removed from the queue.
        failed_count: Entries whose attempt failed in this cycle.
        errors: One record per failed entry.
        skipped: True if the call was a no-op because a cycle was running.
        reachable: False if the cycle was aborted by the health check.
    """

    success_count: int = 0
    failed_count: int = 0
    errors: list[SyncItemError] = field(default_factory=list)
    skipped: bool = False
    reachable: bool = True

    def record_success(self) -> None:
        self.success_count += 1

    def record_failure(self, entry_id: str, error: str) -> None:
        self.failed_count += 1
        self.errors.append(SyncItemError(id=entry_id, error=error))

    @property
    def processed(self) -> int:
        """Number of entries attempted."""
        return self.success_count + self.failed_count

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success_count,
            "failed": self.failed_count,
            "errors": [{"id": e.id, "error": e.error} for e in self.errors],
        }
