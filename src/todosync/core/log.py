"""Logging setup for todosync.

Modules only ever call ``logging.getLogger(__name__)``; handlers are
attached once, by the host process, through setup_logging().
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_dir: Path | None, level: str | int = logging.INFO) -> logging.Logger:
    """Configure logging to output to stdout and, optionally, to files.

    Handlers previously installed by this function are removed first, so it
    is safe to call more than once in the same process.

    Args:
        log_dir: Directory for app.log and error.log (None = stdout only).
        level: Log level name or number for the todosync logger.

    Returns:
        The configured "todosync" logger.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("todosync")
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root_logger.setLevel(level)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_dir / "app.log", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        # Errors also go to a separate file
        error_handler = logging.FileHandler(log_dir / "error.log", encoding="utf-8")
        error_handler.setFormatter(formatter)
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

    return root_logger
