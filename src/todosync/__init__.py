"""todosync - offline-first sync queue for a local todo store."""

__version__ = "0.1.0"
