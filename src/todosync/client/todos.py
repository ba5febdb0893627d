"""Local todo store.

This module provides:
- Todo: A todo as stored locally
- TodoStore: SQLite CRUD for todos that records every mutation in the sync queue

The local database is the source of truth for the user; the remote API is
brought up to date by replaying the queue. Each successful create, update or
delete enqueues exactly one entry carrying a snapshot of the todo.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from todosync.client.sync.payloads import TodoRef, TodoSnapshot
from todosync.client.sync.types import StorageError, ValidationError
from todosync.core.types import EntityType

if TYPE_CHECKING:
    from todosync.client.sync.queue import SyncQueueStore

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")

_UPDATABLE_FIELDS = ("title", "description", "completed", "priority", "due_date", "user_id")


@dataclass
class Todo:
    """A locally stored todo."""

    id: int
    title: str
    description: str | None
    completed: bool
    priority: str
    due_date: str | None
    user_id: int | None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Todo:
        """Create Todo from database row."""
        return cls(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            completed=bool(row["completed"]),
            priority=row["priority"],
            due_date=row["due_date"],
            user_id=row["user_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def snapshot(self) -> TodoSnapshot:
        """Payload recorded in the sync queue."""
        return TodoSnapshot(
            id=self.id,
            title=self.title,
            description=self.description,
            completed=self.completed,
            priority=self.priority,  # type: ignore[arg-type]
            due_date=self.due_date,
            user_id=self.user_id,
        )


def _check_priority(priority: str) -> None:
    if priority not in PRIORITIES:
        raise ValidationError(f"Invalid priority {priority!r}, expected one of {PRIORITIES}")


class TodoStore:
    """SQLite-based local todo storage wired to the sync queue."""

    def __init__(self, db_path: Path | str, queue: SyncQueueStore) -> None:
        """Open the todo database.

        Args:
            db_path: Path to SQLite database file (may be the queue's file).
            queue: Sync queue receiving one entry per mutation.
        """
        self._db_path = str(db_path)
        self._queue = queue
        self._lock = threading.RLock()

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
            raise StorageError(f"Cannot open todo store at {self._db_path}: {e}") from e

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS todos (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT,
                completed INTEGER NOT NULL DEFAULT 0,
                priority TEXT NOT NULL DEFAULT 'medium',
                due_date TEXT,
                user_id INTEGER,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_todos_completed ON todos(completed);
            CREATE INDEX IF NOT EXISTS idx_todos_priority ON todos(priority);
            CREATE INDEX IF NOT EXISTS idx_todos_due_date ON todos(due_date);
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise StorageError(f"Todo store operation failed: {e}") from e

    # === Reads ===

    def _require(self, todo_id: int) -> Todo:
        todo = self.get(todo_id)
        if todo is None:
            raise StorageError(f"Todo {todo_id} vanished after write")
        return todo

    def get(self, todo_id: int) -> Todo | None:
        """Get a todo by id."""
        row = self._execute("SELECT * FROM todos WHERE id = ?", (todo_id,)).fetchone()
        return Todo.from_row(row) if row else None

    def list_all(self) -> list[Todo]:
        """List todos, newest first."""
        rows = self._execute("SELECT * FROM todos ORDER BY created_at DESC, id DESC").fetchall()
        return [Todo.from_row(row) for row in rows]

    # === Mutations (each one is queued for sync) ===

    def create(
        self,
        title: str,
        description: str | None = None,
        completed: bool = False,
        priority: str = "medium",
        due_date: str | None = None,
        user_id: int | None = None,
    ) -> Todo:
        """Create a todo and queue a CREATE entry.

        Raises:
            ValidationError: If title is empty or priority is unknown.
            StorageError: If the todo or the queue entry cannot be persisted.
        """
        if not title:
            raise ValidationError("title must not be empty")
        _check_priority(priority)

        cursor = self._execute(
            """
            INSERT INTO todos (title, description, completed, priority, due_date, user_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (title, description, int(completed), priority, due_date, user_id),
        )
        todo = self._require(cursor.lastrowid)  # type: ignore[arg-type]

        self._queue.queue_create(EntityType.TODO.value, todo.id, todo.snapshot())
        logger.info("Created todo %d (%s)", todo.id, todo.title)
        return todo

    def update(self, todo_id: int, **fields: Any) -> Todo | None:
        """Update a todo and queue an UPDATE entry with the new state.

        Args:
            todo_id: Local todo id.
            **fields: Any of title, description, completed, priority, due_date, user_id.

        Returns:
            The updated todo, or None if it does not exist.

        Raises:
            ValidationError: If a field is unknown or invalid.
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown todo fields: {', '.join(sorted(unknown))}")
        if "priority" in fields:
            _check_priority(fields["priority"])
        if "title" in fields and not fields["title"]:
            raise ValidationError("title must not be empty")

        if not fields:
            return self.get(todo_id)

        updates: list[str] = []
        values: list[Any] = []
        for name in _UPDATABLE_FIELDS:
            if name in fields:
                updates.append(f"{name} = ?")
                value = fields[name]
                values.append(int(value) if name == "completed" else value)
        updates.append("updated_at = CURRENT_TIMESTAMP")
        values.append(todo_id)

        cursor = self._execute(
            f"UPDATE todos SET {', '.join(updates)} WHERE id = ?",
            tuple(values),
        )
        if cursor.rowcount == 0:
            return None

        todo = self._require(todo_id)
        self._queue.queue_update(EntityType.TODO.value, todo.id, todo.snapshot())
        logger.info("Updated todo %d", todo.id)
        return todo

    def delete(self, todo_id: int) -> bool:
        """Delete a todo and queue a DELETE entry.

        Returns:
            True if the todo existed.
        """
        cursor = self._execute("DELETE FROM todos WHERE id = ?", (todo_id,))
        if cursor.rowcount == 0:
            return False

        self._queue.queue_delete(EntityType.TODO.value, todo_id, TodoRef(id=todo_id))
        logger.info("Deleted todo %d", todo_id)
        return True
