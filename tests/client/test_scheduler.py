"""Tests for the sync scheduler."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from todosync.client.sync.scheduler import SyncScheduler
from todosync.client.sync.types import StorageError, SyncResult


@pytest.fixture
def coordinator() -> MagicMock:
    """Create a mock coordinator."""
    mock = MagicMock()
    mock.run_sync.return_value = SyncResult(success_count=1)
    return mock


class TestSyncScheduler:
    """Tests for SyncScheduler."""

    def test_invalid_cron_rejected(self, coordinator: MagicMock) -> None:
        """Invalid expressions fail at construction."""
        with pytest.raises(ValueError):
            SyncScheduler(coordinator, cron="not a cron")

    def test_start_and_stop(self, coordinator: MagicMock) -> None:
        """Should start and stop the background scheduler."""
        scheduler = SyncScheduler(coordinator, cron="*/5 * * * *", timezone="UTC")

        assert scheduler.running is False
        assert scheduler.next_run_time() is None

        scheduler.start()
        try:
            assert scheduler.running is True
            assert scheduler.next_run_time() is not None
        finally:
            scheduler.stop()

        assert scheduler.running is False

    def test_start_twice_is_idempotent(self, coordinator: MagicMock) -> None:
        scheduler = SyncScheduler(coordinator)
        scheduler.start()
        try:
            first = scheduler._scheduler
            scheduler.start()
            assert scheduler._scheduler is first
        finally:
            scheduler.stop()

    def test_stop_when_not_started(self, coordinator: MagicMock) -> None:
        """Stopping an idle scheduler is a no-op."""
        SyncScheduler(coordinator).stop()

    def test_run_now(self, coordinator: MagicMock) -> None:
        """Manual trigger delegates to run_sync."""
        result = SyncScheduler(coordinator).run_now()

        assert result.success_count == 1
        coordinator.run_sync.assert_called_once_with()

    def test_job_logs_errors(
        self, coordinator: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Errors in a scheduled run are logged, not raised."""
        coordinator.run_sync.side_effect = StorageError("disk full")
        scheduler = SyncScheduler(coordinator)

        scheduler._sync_job()

        assert "Error during scheduled sync" in caplog.text
