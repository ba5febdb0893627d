"""Tests for settings resolution."""

from __future__ import annotations

import pytest

from todosync.core.config import (
    DEFAULT_BASE_URL,
    DEFAULT_INTERVAL_CRON,
    SyncConfig,
    load_settings,
    parse_bool,
)


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self) -> None:
        """Without file or environment the defaults apply."""
        settings = load_settings({}, environ={})

        assert settings.api.base_url == DEFAULT_BASE_URL
        assert settings.api.timeout == 10.0
        assert settings.sync.max_retries == 3
        assert settings.sync.batch_size == 50
        assert settings.sync.interval_cron == DEFAULT_INTERVAL_CRON
        assert settings.sync.timezone == "UTC"
        assert settings.sync.auto_sync is True
        assert settings.log_level == "INFO"
        assert settings.is_development is True

    def test_file_values(self) -> None:
        settings = load_settings(
            {
                "api_base_url": "http://api.local/",
                "api_timeout": 2500,
                "max_retries": 5,
                "batch_size": 10,
                "log_level": "debug",
            },
            environ={},
        )

        assert settings.api.base_url == "http://api.local"
        assert settings.api.timeout == 2.5
        assert settings.sync.max_retries == 5
        assert settings.sync.batch_size == 10
        assert settings.log_level == "DEBUG"

    def test_environment_overrides_file(self) -> None:
        """Environment variables win over the config file."""
        settings = load_settings(
            {"api_base_url": "http://from-file", "batch_size": 10},
            environ={
                "API_BASE_URL": "http://from-env",
                "SYNC_BATCH_SIZE": "25",
                "SYNC_INTERVAL_CRON": "*/5 * * * *",
                "SYNC_TIMEZONE": "Europe/Paris",
                "ENABLE_AUTO_SYNC": "false",
                "APP_ENV": "production",
            },
        )

        assert settings.api.base_url == "http://from-env"
        assert settings.sync.batch_size == 25
        assert settings.sync.interval_cron == "*/5 * * * *"
        assert settings.sync.timezone == "Europe/Paris"
        assert settings.sync.auto_sync is False
        assert settings.is_production is True

    def test_empty_environment_value_is_ignored(self) -> None:
        settings = load_settings({"batch_size": 7}, environ={"SYNC_BATCH_SIZE": ""})
        assert settings.sync.batch_size == 7

    def test_invalid_number(self) -> None:
        with pytest.raises(ValueError):
            load_settings({}, environ={"SYNC_MAX_RETRIES": "three"})

    def test_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            load_settings({}, environ={"SYNC_BATCH_SIZE": "0"})


class TestSyncConfig:
    """Tests for SyncConfig validation."""

    def test_rejects_zero_retries(self) -> None:
        with pytest.raises(ValueError):
            SyncConfig(max_retries=0)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1", True), ("true", True), ("YES", True), ("on", True), ("0", False), ("no", False), (True, True)],
)
def test_parse_bool(value: object, expected: bool) -> None:
    assert parse_bool(value) is expected
