"""Configuration classes for todosync.

This module defines the settings shared by the API client, the sync
coordinator and the scheduler, and how they are resolved from the JSON
config file and the environment.

Precedence (highest first):
    1. Environment variables (API_BASE_URL, SYNC_BATCH_SIZE, ...)
    2. The JSON config file written by ``todosync init``
    3. Defaults declared on the dataclasses below
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 10.0  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_BATCH_SIZE = 50
DEFAULT_INTERVAL_CRON = "* * * * *"  # every minute
DEFAULT_TIMEZONE = "UTC"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ApiConfig:
    """Configuration for connecting to the remote todo API.

    Attributes:
        base_url: Base URL of the API (e.g., "https://todos.example.com").
        timeout: Per-request timeout in seconds.
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        """Normalize base URL."""
        self.base_url = self.base_url.rstrip("/")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


@dataclass
class SyncConfig:
    """Knobs for the sync coordinator and scheduler.

    Attributes:
        max_retries: Failed attempts after which an entry becomes terminal.
        batch_size: Maximum number of entries processed per cycle.
        interval_cron: Crontab expression for automatic sync cycles.
        timezone: Timezone the cron expression is evaluated in.
        auto_sync: Whether the scheduler may be started at all.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    batch_size: int = DEFAULT_BATCH_SIZE
    interval_cron: str = DEFAULT_INTERVAL_CRON
    timezone: str = DEFAULT_TIMEZONE
    auto_sync: bool = True

    def __post_init__(self) -> None:
        """Validate numeric knobs."""
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")


@dataclass
class Settings:
    """Resolved application settings."""

    api: ApiConfig = field(default_factory=ApiConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    log_level: str = "INFO"
    environment: str = "development"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def parse_bool(value: Any) -> bool:
    """Interpret a config or environment value as a boolean."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _pick(
    key: str,
    env_key: str,
    file_config: Mapping[str, Any],
    environ: Mapping[str, str],
) -> Any | None:
    value = environ.get(env_key)
    if value not in (None, ""):
        return value
    return file_config.get(key)


def load_settings(
    file_config: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings from the config file contents and the environment.

    Args:
        file_config: Parsed contents of config.json (may be empty).
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Resolved settings.

    Raises:
        ValueError: If a value cannot be parsed or is out of range.
    """
    file_config = file_config or {}
    environ = os.environ if environ is None else environ

    def pick(key: str, env_key: str) -> Any | None:
        return _pick(key, env_key, file_config, environ)

    api = ApiConfig()
    base_url = pick("api_base_url", "API_BASE_URL")
    timeout_ms = pick("api_timeout", "API_TIMEOUT")
    if base_url is not None or timeout_ms is not None:
        api = ApiConfig(
            base_url=str(base_url) if base_url is not None else DEFAULT_BASE_URL,
            # API_TIMEOUT is expressed in milliseconds
            timeout=int(timeout_ms) / 1000 if timeout_ms is not None else DEFAULT_TIMEOUT,
        )

    max_retries = pick("max_retries", "SYNC_MAX_RETRIES")
    batch_size = pick("batch_size", "SYNC_BATCH_SIZE")
    interval_cron = pick("sync_interval_cron", "SYNC_INTERVAL_CRON")
    timezone = pick("sync_timezone", "SYNC_TIMEZONE")
    auto_sync = pick("auto_sync", "ENABLE_AUTO_SYNC")

    sync = SyncConfig(
        max_retries=int(max_retries) if max_retries is not None else DEFAULT_MAX_RETRIES,
        batch_size=int(batch_size) if batch_size is not None else DEFAULT_BATCH_SIZE,
        interval_cron=str(interval_cron) if interval_cron else DEFAULT_INTERVAL_CRON,
        timezone=str(timezone) if timezone else DEFAULT_TIMEZONE,
        auto_sync=parse_bool(auto_sync) if auto_sync is not None else True,
    )

    log_level = pick("log_level", "LOG_LEVEL") or "INFO"
    environment = environ.get("APP_ENV") or "development"

    return Settings(
        api=api,
        sync=sync,
        log_level=str(log_level).upper(),
        environment=environment,
    )
