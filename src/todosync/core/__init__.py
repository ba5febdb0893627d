"""Core module - Shared configuration, logging and types."""

from todosync.core.config import ApiConfig, Settings, SyncConfig, load_settings
from todosync.core.log import setup_logging
from todosync.core.types import ActionType, EntityType, QueueStatus, SyncState

__all__ = [
    # Config
    "ApiConfig",
    "Settings",
    "SyncConfig",
    "load_settings",
    # Logging
    "setup_logging",
    # Types
    "ActionType",
    "EntityType",
    "QueueStatus",
    "SyncState",
]
