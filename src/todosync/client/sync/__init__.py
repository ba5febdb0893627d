"""Sync queue replay.

Architecture:
    TodoStore (producer) → SyncQueueStore → SyncCoordinator → TodoClient

Components:
- **SyncQueueStore**: Durable SQLite queue of local mutations
- **Payload schemas**: Typed payload per (entity_type, action_type)
- **SyncCoordinator**: Single-flight cycles with reachability gating
- **SyncScheduler**: Cron trigger for automatic cycles
"""

from todosync.client.sync.coordinator import RemoteClient, SyncCoordinator, describe_error
from todosync.client.sync.payloads import (
    PAYLOAD_SCHEMAS,
    TodoRef,
    TodoSnapshot,
    parse_payload,
    payload_schema,
    serialize_payload,
)
from todosync.client.sync.queue import SyncQueueStore
from todosync.client.sync.scheduler import SyncScheduler
from todosync.client.sync.types import (
    QueueStats,
    StorageError,
    SyncError,
    SyncInProgressError,
    SyncItemError,
    SyncQueueEntry,
    SyncResult,
    ValidationError,
)

__all__ = [
    # Coordinator
    "RemoteClient",
    "SyncCoordinator",
    "describe_error",
    # Payloads
    "PAYLOAD_SCHEMAS",
    "TodoRef",
    "TodoSnapshot",
    "parse_payload",
    "payload_schema",
    "serialize_payload",
    # Queue
    "SyncQueueStore",
    # Scheduler
    "SyncScheduler",
    # Types
    "QueueStats",
    "StorageError",
    "SyncError",
    "SyncInProgressError",
    "SyncItemError",
    "SyncQueueEntry",
    "SyncResult",
    "ValidationError",
]
