"""Shared fixtures for todosync tests."""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from todosync.client.api import NetworkError, TodoRequest
from todosync.client.sync.queue import SyncQueueStore


class FakeRemoteClient:
    """In-memory remote client recording every call.

    Failures are configured per (method, remote id) or globally, and a call
    can be made to block until an event is set.
    """

    def __init__(self) -> None:
        self.healthy = True
        self.health_error: Exception | None = None
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[tuple[str, Any], Exception] = {}
        self.fail_all: Exception | None = None
        self.health_checks = 0
        self.started = threading.Event()
        self.release: threading.Event | None = None
        self._next_id = 1000

    def fail(self, method: str, key: Any, error: Exception) -> None:
        """Make ``method`` raise ``error`` for ``key`` (title for create, id otherwise)."""
        self.failures[(method, key)] = error

    def _maybe_fail(self, method: str, key: Any) -> None:
        self.started.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.fail_all is not None:
            raise self.fail_all
        error = self.failures.get((method, key))
        if error is not None:
            raise error

    def health_check(self) -> bool:
        self.health_checks += 1
        if self.health_error is not None:
            raise self.health_error
        return self.healthy

    def create(self, request: TodoRequest) -> dict[str, Any]:
        self.calls.append(("create", request))
        self._maybe_fail("create", request.title)
        self._next_id += 1
        return {"id": self._next_id}

    def update(self, remote_id: int, request: TodoRequest) -> dict[str, Any]:
        self.calls.append(("update", (remote_id, request)))
        self._maybe_fail("update", remote_id)
        return {"id": remote_id}

    def delete(self, remote_id: int) -> None:
        self.calls.append(("delete", remote_id))
        self._maybe_fail("delete", remote_id)

    @property
    def methods(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def store(tmp_path: Path) -> Generator[SyncQueueStore, None, None]:
    """Create a sync queue in a temporary database."""
    queue = SyncQueueStore(tmp_path / "queue.db", max_retries=3)
    yield queue
    queue.close()


@pytest.fixture
def remote() -> FakeRemoteClient:
    """Create a fake remote client."""
    return FakeRemoteClient()


@pytest.fixture
def offline_error() -> NetworkError:
    return NetworkError("Network error - check connection", 0, "NETWORK_ERROR")


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop handlers installed by setup_logging() during a test."""
    yield
    logger = logging.getLogger("todosync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
