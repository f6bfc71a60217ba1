#!/usr/bin/env python3
"""Centralized logging setup."""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_FILE = "/var/log/acpied.log"


def setup_logging(
    level: int = logging.INFO, log_file: Optional[Union[str, Path]] = None
) -> None:
    """Setup console logging and an optional append-only log file.

    Args:
        level: Logging level (default: INFO)
        log_file: Path of a log file that mirrors console output. An
            unwritable path is reported on the console and skipped.

    Note:
        Console output uses a minimal formatter since string_utils already
        adds timestamp, level and stage prefix to every message.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter("%(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        except OSError as e:
            root_logger.warning(
                "Cannot open log file %s (%s); logging to console only",
                log_file,
                e,
            )
        else:
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
