"""Sync commands for the todosync CLI.

Commands:
- init: Configure the remote API
- sync: Replay the sync queue (once, or continuously with --watch)
- status: Show sync queue statistics
- queue: List sync queue entries
- retry: Retry a single sync queue entry
- clear-failed: Remove terminally failed entries
"""

from __future__ import annotations

import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import click

from todosync.client.cli.config import (
    get_config_file,
    get_database_path,
    get_settings,
    load_config,
    save_config,
)

if TYPE_CHECKING:
    from todosync.client.sync import SyncCoordinator, SyncQueueStore, SyncResult
    from todosync.core.config import Settings


@contextmanager
def open_queue(settings: Settings) -> Iterator[SyncQueueStore]:
    """Open the local sync queue, exiting with an error if it is unusable."""
    from todosync.client.sync import StorageError, SyncQueueStore

    try:
        store = SyncQueueStore(get_database_path(), max_retries=settings.sync.max_retries)
    except StorageError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    try:
        yield store
    finally:
        store.close()


@contextmanager
def open_coordinator(settings: Settings) -> Iterator[SyncCoordinator]:
    """Wire the queue, the API client and the coordinator together."""
    from todosync.client.api import TodoClient
    from todosync.client.sync import SyncCoordinator

    with open_queue(settings) as store, TodoClient(settings.api) as client:
        yield SyncCoordinator(
            store,
            client,
            max_retries=settings.sync.max_retries,
            batch_size=settings.sync.batch_size,
        )


def _format_ms(value: int | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _display_result(result: SyncResult) -> None:
    """Print the outcome of a sync cycle."""
    if result.skipped:
        click.echo("A sync is already in progress, skipped.")
        return
    if not result.reachable:
        click.echo(click.style("API is not reachable, nothing was sent.", fg="yellow"))
        return

    if result.errors:
        click.echo(click.style("\nErrors:", fg="red"))
        for item in result.errors:
            click.echo(f"  ✗ {item.id}: {item.error}")

    if result.processed == 0:
        click.echo("Everything is up to date.")
    else:
        click.echo(
            f"\nSync complete: {result.success_count} succeeded, "
            f"{result.failed_count} failed"
        )


@click.command()
@click.option(
    "--server-url",
    required=True,
    help="Base URL of the todo API (e.g., http://localhost:8080).",
)
@click.option(
    "--timeout",
    type=int,
    default=None,
    help="Request timeout in milliseconds (default: 10000).",
)
def init(server_url: str, timeout: int | None) -> None:
    """Configure the remote todo API.

    Writes the server URL (and optional timeout) to the config file.
    Environment variables still take precedence over these values.
    """
    if timeout is not None and timeout <= 0:
        click.echo("Error: --timeout must be a positive number of milliseconds.", err=True)
        sys.exit(1)

    config = load_config()
    config["api_base_url"] = server_url.rstrip("/")
    if timeout is not None:
        config["api_timeout"] = timeout
    save_config(config)

    click.echo(f"API server set to {config['api_base_url']}")
    click.echo(f"Config saved to {get_config_file()}")


@click.command()
@click.option("--watch", "-w", is_flag=True, help="Keep running and sync on the configured schedule.")
def sync(watch: bool) -> None:
    """Replay queued local changes to the remote API.

    Runs one sync cycle. Use --watch to keep syncing on the schedule
    set by sync_interval_cron / SYNC_INTERVAL_CRON.
    """
    from todosync.client.sync import StorageError, SyncScheduler

    settings = get_settings()

    if watch and not settings.sync.auto_sync:
        click.echo("Error: Automatic sync is disabled (ENABLE_AUTO_SYNC).", err=True)
        sys.exit(1)

    with open_coordinator(settings) as coordinator:
        click.echo(f"Syncing with {settings.api.base_url}...")

        try:
            # Entries left in processing by a crashed run are eligible again
            recovered = coordinator.recover_interrupted()
            if recovered:
                click.echo(f"Recovered {recovered} interrupted entries.")

            _display_result(coordinator.run_sync())
        except StorageError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        if not watch:
            return

        try:
            scheduler = SyncScheduler(
                coordinator,
                cron=settings.sync.interval_cron,
                timezone=settings.sync.timezone,
            )
        except ValueError as e:
            click.echo(f"Error: Invalid sync schedule: {e}", err=True)
            sys.exit(1)

        scheduler.start()
        click.echo(
            f"\nSyncing on schedule '{settings.sync.interval_cron}' "
            f"({settings.sync.timezone})... (Ctrl+C to stop)"
        )
        try:
            while True:
                time.sleep(1.0)
        except KeyboardInterrupt:
            click.echo("\nStopping...")
        finally:
            scheduler.stop()


@click.command()
def status() -> None:
    """Show sync queue statistics."""
    settings = get_settings()

    with open_queue(settings) as store:
        stats = store.stats()

    click.echo(f"API server:  {settings.api.base_url}")
    click.echo(f"Queue total: {stats.total}")
    click.echo(f"  pending:    {stats.pending}")
    click.echo(f"  processing: {stats.processing}")
    if stats.failed:
        click.echo(click.style(f"  failed:     {stats.failed}", fg="red"))
    else:
        click.echo(f"  failed:     {stats.failed}")


@click.command()
@click.option(
    "--status",
    "status_filter",
    type=click.Choice(["pending", "processing", "failed"]),
    default=None,
    help="Only show entries with this status.",
)
def queue(status_filter: str | None) -> None:
    """List sync queue entries in replay order."""
    settings = get_settings()

    with open_queue(settings) as store:
        entries = store.get_by_status(status_filter) if status_filter else store.get_all()

    if not entries:
        click.echo("Sync queue is empty.")
        return

    for entry in entries:
        line = (
            f"{entry.id}  {entry.action_type:<6} {entry.entity_type}:{entry.entity_id}  "
            f"{entry.status:<10} retries={entry.retry_count}  "
            f"queued={_format_ms(entry.created_at)}"
        )
        click.echo(line)
        if entry.error_message:
            click.echo(f"    last error: {entry.error_message}")


@click.command()
@click.argument("item_id")
def retry(item_id: str) -> None:
    """Retry a single sync queue entry now.

    Works on terminally failed entries too. The entry is removed on
    success and its retry count is increased on failure.
    """
    from todosync.client.sync import SyncError

    settings = get_settings()

    with open_coordinator(settings) as coordinator:
        try:
            result = coordinator.sync_single_item(item_id)
        except SyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if result.success_count:
        click.echo(f"Synced {item_id}")
    else:
        message = result.errors[0].error if result.errors else "unknown error"
        click.echo(f"Failed to sync {item_id}: {message}", err=True)
        sys.exit(1)


@click.command("clear-failed")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def clear_failed(yes: bool) -> None:
    """Remove entries that exhausted their retries."""
    settings = get_settings()

    with open_coordinator(settings) as coordinator:
        failed = coordinator.get_queue_stats().failed
        if not failed:
            click.echo("No failed entries.")
            return
        if not yes and not click.confirm(f"Delete {failed} failed entries?"):
            return
        count = coordinator.clear_terminal_items()

    click.echo(f"Cleared {count} failed entries.")
