"""Client module - API client, local todo store, sync queue and CLI."""
