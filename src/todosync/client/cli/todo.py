"""Local todo commands for the todosync CLI.

Every change is written to the local database and queued for sync;
nothing here talks to the remote API.

Commands:
- todo add: Create a todo
- todo update: Change fields of a todo
- todo delete: Delete a todo
- todo list: List local todos
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import click

from todosync.client.cli.config import get_database_path, get_settings
from todosync.client.cli.sync import open_queue

if TYPE_CHECKING:
    from todosync.client.todos import Todo, TodoStore

PRIORITY_CHOICE = click.Choice(["low", "medium", "high"])


@contextmanager
def open_todos() -> Iterator[TodoStore]:
    """Open the local todo store wired to the sync queue."""
    from todosync.client.sync import StorageError
    from todosync.client.todos import TodoStore

    with open_queue(get_settings()) as store:
        try:
            todos = TodoStore(get_database_path(), store)
        except StorageError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        try:
            yield todos
        finally:
            todos.close()


def _format_todo(todo: Todo) -> str:
    mark = "x" if todo.completed else " "
    line = f"[{mark}] {todo.id:>4}  {todo.title}  ({todo.priority})"
    if todo.due_date:
        line += f"  due {todo.due_date}"
    return line


@click.group()
def todo() -> None:
    """Manage local todos (changes are queued for sync)."""


@todo.command("add")
@click.argument("title")
@click.option("--description", "-d", default=None, help="Longer description.")
@click.option("--priority", "-p", type=PRIORITY_CHOICE, default="medium", show_default=True)
@click.option("--due", "due_date", default=None, help="Due date (e.g., 2024-12-31).")
@click.option("--user-id", type=int, default=None, help="Owner user id.")
def add_cmd(
    title: str,
    description: str | None,
    priority: str,
    due_date: str | None,
    user_id: int | None,
) -> None:
    """Create a todo."""
    from todosync.client.sync import SyncError

    with open_todos() as todos:
        try:
            created = todos.create(
                title,
                description=description,
                priority=priority,
                due_date=due_date,
                user_id=user_id,
            )
        except SyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(f"Created: {_format_todo(created)}")


@todo.command("update")
@click.argument("todo_id", type=int)
@click.option("--title", default=None, help="New title.")
@click.option("--description", "-d", default=None, help="New description.")
@click.option("--priority", "-p", type=PRIORITY_CHOICE, default=None)
@click.option("--due", "due_date", default=None, help="New due date.")
@click.option("--done/--not-done", "completed", default=None, help="Mark as completed or not.")
def update_cmd(
    todo_id: int,
    title: str | None,
    description: str | None,
    priority: str | None,
    due_date: str | None,
    completed: bool | None,
) -> None:
    """Change fields of a todo."""
    from todosync.client.sync import SyncError

    fields: dict[str, Any] = {
        name: value
        for name, value in (
            ("title", title),
            ("description", description),
            ("priority", priority),
            ("due_date", due_date),
            ("completed", completed),
        )
        if value is not None
    }
    if not fields:
        click.echo("Error: Nothing to update.", err=True)
        sys.exit(1)

    with open_todos() as todos:
        try:
            updated = todos.update(todo_id, **fields)
        except SyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if updated is None:
        click.echo(f"Error: Todo {todo_id} not found.", err=True)
        sys.exit(1)
    click.echo(f"Updated: {_format_todo(updated)}")


@todo.command("delete")
@click.argument("todo_id", type=int)
def delete_cmd(todo_id: int) -> None:
    """Delete a todo."""
    from todosync.client.sync import SyncError

    with open_todos() as todos:
        try:
            deleted = todos.delete(todo_id)
        except SyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if not deleted:
        click.echo(f"Error: Todo {todo_id} not found.", err=True)
        sys.exit(1)
    click.echo(f"Deleted todo {todo_id}")


@todo.command("list")
def list_cmd() -> None:
    """List local todos, newest first."""
    with open_todos() as todos:
        items = todos.list_all()

    if not items:
        click.echo("No todos.")
        return
    for item in items:
        click.echo(_format_todo(item))
