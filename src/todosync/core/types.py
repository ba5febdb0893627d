"""Shared types for todosync.

This module defines the enums that make up the persisted queue format and
the coordinator state machine.
"""

from __future__ import annotations

from enum import Enum


class ActionType(str, Enum):
    """Kind of local mutation recorded in the sync queue."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EntityType(str, Enum):
    """Kinds of local entities that can be replayed to the remote API."""

    TODO = "todo"


class QueueStatus(str, Enum):
    """Status of a sync queue entry.

    Successfully synced entries are deleted, so there is no "done" status.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"


class SyncState(str, Enum):
    """State of the sync coordinator."""

    IDLE = "idle"
    RUNNING = "running"
