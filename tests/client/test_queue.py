"""Tests for the SQLite sync queue."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from todosync.client.sync.queue import SyncQueueStore
from todosync.client.sync.types import StorageError, SyncQueueEntry, ValidationError
from todosync.core.types import ActionType, QueueStatus


def make_entry(entry_id: str = "e1", created_at: int = 1, **overrides: object) -> SyncQueueEntry:
    """Create a SyncQueueEntry for insert()."""
    fields: dict[str, object] = {
        "id": entry_id,
        "action_type": "CREATE",
        "entity_type": "todo",
        "entity_id": "1",
        "payload": json.dumps({"title": "Buy milk"}),
        "created_at": created_at,
    }
    fields.update(overrides)
    return SyncQueueEntry(**fields)  # type: ignore[arg-type]


class TestOpen:
    """Tests for opening the store."""

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """Should create missing parent directories."""
        db_path = tmp_path / "nested" / "dir" / "queue.db"
        with SyncQueueStore(db_path) as store:
            assert len(store) == 0
        assert db_path.exists()

    def test_rejects_invalid_max_retries(self, tmp_path: Path) -> None:
        """max_retries must be at least 1."""
        with pytest.raises(ValueError):
            SyncQueueStore(tmp_path / "queue.db", max_retries=0)

    def test_unopenable_path_raises_storage_error(self, tmp_path: Path) -> None:
        """A path that is a directory cannot be opened as a database."""
        directory = tmp_path / "not-a-file"
        directory.mkdir()
        with pytest.raises(StorageError):
            SyncQueueStore(directory)

    def test_entries_survive_reopen(self, tmp_path: Path) -> None:
        """Entries are durable across store instances."""
        db_path = tmp_path / "queue.db"
        with SyncQueueStore(db_path) as store:
            entry = store.queue_create("todo", 1, {"title": "Persist me"})

        with SyncQueueStore(db_path) as store:
            assert store.get_by_id(entry.id) == entry


class TestEnqueue:
    """Tests for enqueue and its shortcuts."""

    def test_enqueue_defaults(self, store: SyncQueueStore) -> None:
        """New entries are pending with no retries and no error."""
        entry = store.enqueue(ActionType.CREATE, "todo", 7, {"title": "Write tests"})

        assert entry.action_type == "CREATE"
        assert entry.entity_type == "todo"
        assert entry.entity_id == "7"
        assert entry.status == QueueStatus.PENDING.value
        assert entry.retry_count == 0
        assert entry.error_message is None
        assert entry.last_attempt_at is None
        assert json.loads(entry.payload) == {"title": "Write tests"}
        assert store.get_by_id(entry.id) == entry

    def test_enqueue_assigns_unique_ids(self, store: SyncQueueStore) -> None:
        """Each entry gets its own id."""
        ids = {store.queue_update("todo", 1, {"title": str(i)}).id for i in range(20)}
        assert len(ids) == 20

    def test_created_at_strictly_increasing(self, store: SyncQueueStore) -> None:
        """Entries enqueued in the same millisecond still get distinct ordering keys."""
        with patch("todosync.client.sync.queue._now_ms", return_value=5_000):
            entries = [store.queue_create("todo", i, {"title": str(i)}) for i in range(5)]

        created = [e.created_at for e in entries]
        assert created == sorted(created)
        assert len(set(created)) == 5

    def test_created_at_survives_clock_going_backwards(self, store: SyncQueueStore) -> None:
        """A clock jump backwards does not reorder new entries."""
        with patch("todosync.client.sync.queue._now_ms", return_value=10_000):
            first = store.queue_create("todo", 1, {"title": "first"})
        with patch("todosync.client.sync.queue._now_ms", return_value=1_000):
            second = store.queue_create("todo", 2, {"title": "second"})

        assert second.created_at > first.created_at
        assert [e.id for e in store.get_all()] == [first.id, second.id]

    def test_accepts_string_action_type(self, store: SyncQueueStore) -> None:
        """Action types can be given as their persisted string."""
        entry = store.enqueue("DELETE", "todo", 3, {"id": 3})
        assert entry.action_type == "DELETE"

    def test_rejects_unknown_action_type(self, store: SyncQueueStore) -> None:
        """Unknown action types are refused and nothing is stored."""
        with pytest.raises(ValidationError, match="Unknown action type"):
            store.enqueue("UPSERT", "todo", 1, {})
        assert len(store) == 0

    def test_rejects_empty_entity_type(self, store: SyncQueueStore) -> None:
        """entity_type is required."""
        with pytest.raises(ValidationError):
            store.enqueue(ActionType.CREATE, "", 1, {})

    def test_rejects_unserializable_payload(self, store: SyncQueueStore) -> None:
        """Payloads must be JSON serializable."""
        with pytest.raises(ValidationError):
            store.queue_create("todo", 1, {"callback": object()})
        assert len(store) == 0

    def test_shortcuts_set_action_type(self, store: SyncQueueStore) -> None:
        """queue_create/update/delete map to their action type."""
        store.queue_create("todo", 1, {"title": "a"})
        store.queue_update("todo", 1, {"title": "b"})
        store.queue_delete("todo", 1, {"id": 1})

        assert [e.action_type for e in store.get_all()] == ["CREATE", "UPDATE", "DELETE"]


class TestFetchPending:
    """Tests for fetch_pending."""

    def test_returns_oldest_first(self, store: SyncQueueStore) -> None:
        """Entries come back in created_at order."""
        store.insert(make_entry("late", created_at=300))
        store.insert(make_entry("early", created_at=100))
        store.insert(make_entry("middle", created_at=200))

        assert [e.id for e in store.fetch_pending(10)] == ["early", "middle", "late"]

    def test_respects_limit(self, store: SyncQueueStore) -> None:
        """At most ``limit`` entries are returned."""
        for i in range(5):
            store.insert(make_entry(f"e{i}", created_at=i + 1))

        assert [e.id for e in store.fetch_pending(2)] == ["e0", "e1"]

    def test_non_positive_limit_returns_nothing(self, store: SyncQueueStore) -> None:
        """A limit below 1 selects nothing."""
        store.insert(make_entry())
        assert store.fetch_pending(0) == []

    def test_skips_processing_and_failed(self, store: SyncQueueStore) -> None:
        """Only pending entries are selectable."""
        store.insert(make_entry("pending", created_at=1))
        store.insert(make_entry("processing", created_at=2, status="processing"))
        store.insert(make_entry("failed", created_at=3, status="failed"))

        assert [e.id for e in store.fetch_pending(10)] == ["pending"]

    def test_skips_exhausted_pending_entries(self, store: SyncQueueStore) -> None:
        """Pending entries whose retries are spent are not returned."""
        store.insert(make_entry("fresh", created_at=1, retry_count=2))
        store.insert(make_entry("spent", created_at=2, retry_count=3))

        assert [e.id for e in store.fetch_pending(10)] == ["fresh"]


class TestTransitions:
    """Tests for status transitions."""

    def test_mark_processing(self, store: SyncQueueStore) -> None:
        """mark_processing sets status and attempt time."""
        entry = store.queue_create("todo", 1, {"title": "a"})

        assert store.mark_processing(entry.id) is True

        updated = store.get_by_id(entry.id)
        assert updated is not None
        assert updated.status == "processing"
        assert updated.last_attempt_at is not None
        assert updated.retry_count == 0

    def test_mark_processing_missing_entry(self, store: SyncQueueStore) -> None:
        """Unknown ids are reported, not raised."""
        assert store.mark_processing("missing") is False

    def test_retry_later_returns_to_pending(self, store: SyncQueueStore) -> None:
        """retry_later increments the count and keeps the entry selectable."""
        entry = store.queue_create("todo", 1, {"title": "a"})
        store.mark_processing(entry.id)

        assert store.retry_later(entry.id, "HTTP 500") is True

        updated = store.get_by_id(entry.id)
        assert updated is not None
        assert updated.status == "pending"
        assert updated.retry_count == 1
        assert updated.error_message == "HTTP 500"
        assert [e.id for e in store.fetch_pending(10)] == [entry.id]

    def test_retry_later_keeps_previous_error(self, store: SyncQueueStore) -> None:
        """Without a new message the last error is kept."""
        entry = store.queue_create("todo", 1, {"title": "a"})
        store.retry_later(entry.id, "first")
        store.retry_later(entry.id)

        updated = store.get_by_id(entry.id)
        assert updated is not None
        assert updated.error_message == "first"
        assert updated.retry_count == 2

    def test_retry_later_fails_exhausted_entry(self, store: SyncQueueStore) -> None:
        """Reaching max_retries makes the entry failed instead of pending."""
        entry = store.queue_create("todo", 1, {"title": "a"})
        for _ in range(3):
            store.retry_later(entry.id, "boom")

        updated = store.get_by_id(entry.id)
        assert updated is not None
        assert updated.retry_count == 3
        assert updated.status == "failed"
        assert store.fetch_pending(10) == []

    def test_retry_later_missing_entry(self, store: SyncQueueStore) -> None:
        assert store.retry_later("missing", "boom") is False

    def test_mark_failed_terminal(self, store: SyncQueueStore) -> None:
        """mark_failed_terminal records the error and increments the count."""
        entry = store.queue_create("todo", 1, {"title": "a"})
        store.mark_processing(entry.id)

        assert store.mark_failed_terminal(entry.id, "Max retries exceeded: boom") is True

        updated = store.get_by_id(entry.id)
        assert updated is not None
        assert updated.status == "failed"
        assert updated.retry_count == 1
        assert updated.error_message == "Max retries exceeded: boom"

    def test_reset_processing(self, store: SyncQueueStore) -> None:
        """Entries left in processing go back to pending with their count intact."""
        store.insert(make_entry("stuck", created_at=1, status="processing", retry_count=1))
        store.insert(make_entry("failed", created_at=2, status="failed"))

        assert store.reset_processing() == 1

        stuck = store.get_by_id("stuck")
        assert stuck is not None
        assert stuck.status == "pending"
        assert stuck.retry_count == 1
        assert store.get_by_id("failed").status == "failed"  # type: ignore[union-attr]


class TestDeletesAndStats:
    """Tests for deletion and statistics."""

    def test_delete_by_id(self, store: SyncQueueStore) -> None:
        entry = store.queue_create("todo", 1, {"title": "a"})

        assert store.delete_by_id(entry.id) is True
        assert store.delete_by_id(entry.id) is False
        assert store.get_by_id(entry.id) is None

    def test_delete_by_status(self, store: SyncQueueStore) -> None:
        """Only entries with the given status are removed."""
        store.insert(make_entry("a", created_at=1, status="failed"))
        store.insert(make_entry("b", created_at=2, status="failed"))
        store.insert(make_entry("c", created_at=3))

        assert store.delete_by_status(QueueStatus.FAILED) == 2
        assert [e.id for e in store.get_all()] == ["c"]

    def test_stats(self, store: SyncQueueStore) -> None:
        """stats() counts entries by status."""
        store.insert(make_entry("a", created_at=1))
        store.insert(make_entry("b", created_at=2))
        store.insert(make_entry("c", created_at=3, status="processing"))
        store.insert(make_entry("d", created_at=4, status="failed"))

        stats = store.stats()

        assert stats.as_dict() == {"total": 4, "pending": 2, "processing": 1, "failed": 1}
        assert len(store) == 4

    def test_get_by_status(self, store: SyncQueueStore) -> None:
        store.insert(make_entry("a", created_at=1, status="failed"))
        store.insert(make_entry("b", created_at=2))

        assert [e.id for e in store.get_by_status("failed")] == ["a"]

    def test_insert_duplicate_id_raises_storage_error(self, store: SyncQueueStore) -> None:
        """Storage failures surface as StorageError."""
        store.insert(make_entry("dup"))
        with pytest.raises(StorageError):
            store.insert(make_entry("dup", created_at=2))

    def test_closed_store_raises_storage_error(self, tmp_path: Path) -> None:
        """Using a closed store is a storage failure."""
        store = SyncQueueStore(tmp_path / "queue.db")
        store.close()
        with pytest.raises(StorageError):
            store.queue_create("todo", 1, {"title": "a"})


class TestConcurrency:
    """Tests for concurrent use of one store."""

    def test_concurrent_enqueue(self, store: SyncQueueStore) -> None:
        """Enqueues from several threads are all persisted with distinct keys."""
        def worker(offset: int) -> None:
            for i in range(10):
                store.queue_create("todo", offset + i, {"title": f"t{offset + i}"})

        threads = [threading.Thread(target=worker, args=(n * 100,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = store.get_all()
        assert len(entries) == 40
        assert len({e.created_at for e in entries}) == 40
