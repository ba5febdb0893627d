"""Command-line interface for todosync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Configure the remote API
- sync: Replay the sync queue (once, or continuously with --watch)
- status: Show sync queue statistics
- queue: List sync queue entries
- retry: Retry a single sync queue entry
- clear-failed: Remove terminally failed entries
- todo: Local todo operations (add, update, delete, list)
"""

from __future__ import annotations

import sys

import click

from todosync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_database_path,
    get_log_dir,
    get_settings,
    load_config,
    save_config,
)
from todosync.client.cli.sync import clear_failed, init, queue, retry, status, sync
from todosync.client.cli.todo import todo
from todosync.core.log import setup_logging


@click.group()
@click.version_option(package_name="todosync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """todosync - Offline-first todo sync."""
    try:
        settings = get_settings()
    except ValueError as e:
        click.echo(f"Error: Invalid configuration: {e}", err=True)
        sys.exit(1)
    setup_logging(get_log_dir(), "DEBUG" if verbose else settings.log_level)


# Setup
cli.add_command(init)

# Sync commands
cli.add_command(sync)
cli.add_command(status)
cli.add_command(queue)
cli.add_command(retry)
cli.add_command(clear_failed)

# Local data
cli.add_command(todo)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_database_path",
    "get_log_dir",
    "get_settings",
    "load_config",
    "save_config",
]
