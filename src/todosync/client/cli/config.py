"""Configuration utilities for the todosync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from todosync.core.config import Settings, load_settings


def get_config_dir() -> Path:
    """Get the configuration directory for todosync.

    Returns:
        Path from $TODOSYNC_HOME, or ~/.todosync.
    """
    home = os.environ.get("TODOSYNC_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".todosync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_database_path() -> Path:
    """Get the path to the local database (todos and sync queue)."""
    return get_config_dir() / "todosync.db"


def get_log_dir() -> Path:
    """Get the directory holding log files."""
    return get_config_dir() / "logs"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_settings() -> Settings:
    """Resolve settings from the config file and the environment."""
    return load_settings(load_config())
