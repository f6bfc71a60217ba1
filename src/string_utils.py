#!/usr/bin/env python3
"""
String utilities for safe formatting and padded log output.

All pipeline log lines go through these helpers so that every message carries
a short timestamp, a fixed-width level column and a stage prefix, e.g.::

      14:23:45 │  INFO  │ [ASM] Compiled dsdt (24.1KB)
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Iterable, List, Optional


@dataclass
class FormatConfig:
    """Runtime configuration controlling log formatting."""

    timestamp_format: str = "%H:%M:%S"
    log_padding_width: int = 7
    image_timestamp_format: str = "%Y%m%dT%H%M%S.%f"

    _instance: ClassVar[Optional["FormatConfig"]] = None

    @classmethod
    def get_instance(cls) -> "FormatConfig":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance


_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}

_LEVEL_SEGMENTS = {
    "INFO": " INFO  ",
    "WARNING": "WARNING",
    "DEBUG": " DEBUG ",
    "ERROR": "ERROR  ",
    "CRITICAL": "CRITCL",
}


def safe_format(template: str, prefix: Optional[str] = None, **kwargs: Any) -> str:
    """
    Format a template without ever raising.

    Missing placeholders are rendered as ``<MISSING:name>`` and malformed
    format specs leave the template untouched, so a bad log call can never
    take down a pipeline stage.

    Example:
        >>> safe_format("Compiled {table}", prefix="ASM", table="dsdt")
        '[ASM] Compiled dsdt'
    """
    try:
        message = template.format(**kwargs)
    except KeyError as e:
        missing_key = str(e).strip("'\"")
        logging.getLogger(__name__).warning(
            "Missing key '%s' in string template", missing_key
        )
        pattern = re.compile(rf"\{{{re.escape(missing_key)}(:[^}}]+)?\}}")
        message = pattern.sub(f"<MISSING:{missing_key}>", template)
    except (ValueError, IndexError) as e:
        logging.getLogger(__name__).error("Format error in string template: %s", e)
        message = template

    if prefix:
        return f"[{prefix}] {message}"
    return message


def get_short_timestamp() -> str:
    """Return the HH:MM:SS timestamp used in the log column."""
    return datetime.now().strftime(FormatConfig.get_instance().timestamp_format)


def format_padded_message(message: str, log_level: str) -> str:
    """
    Add the timestamp and padded level column to a message.

    Example:
        >>> format_padded_message("Found 12 tables", "INFO")  # doctest: +SKIP
        '  14:23:45 │  INFO  │ Found 12 tables'
    """
    config = FormatConfig.get_instance()
    segment = _LEVEL_SEGMENTS.get(log_level, log_level)
    if len(segment) < config.log_padding_width:
        segment = segment.ljust(config.log_padding_width)
    else:
        segment = segment[: config.log_padding_width]

    return f"  {get_short_timestamp()} │ {segment}│ {message}"


def safe_log_format(
    logger: logging.Logger,
    log_level: int,
    template: str,
    prefix: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """
    Format and log a message at the given level.

    The level-specific logger method is called (rather than ``logger.log``) so
    tests can assert on ``mock_logger.info`` and friends.
    """
    message = format_padded_message(
        safe_format(template, prefix=prefix, **kwargs),
        _LEVEL_NAMES.get(log_level, "UNKNOWN"),
    )
    emit = {
        logging.DEBUG: logger.debug,
        logging.INFO: logger.info,
        logging.WARNING: logger.warning,
        logging.ERROR: logger.error,
        logging.CRITICAL: logger.critical,
    }.get(log_level)

    if emit is None:
        logger.log(log_level, message)
    else:
        emit(message)


def log_info_safe(
    logger: logging.Logger, template: str, prefix: Optional[str] = None, **kwargs: Any
) -> None:
    """Convenience function for safe INFO level logging."""
    safe_log_format(logger, logging.INFO, template, prefix=prefix, **kwargs)


def log_warning_safe(
    logger: logging.Logger, template: str, prefix: Optional[str] = None, **kwargs: Any
) -> None:
    """Convenience function for safe WARNING level logging."""
    safe_log_format(logger, logging.WARNING, template, prefix=prefix, **kwargs)


def log_error_safe(
    logger: logging.Logger, template: str, prefix: Optional[str] = None, **kwargs: Any
) -> None:
    """Convenience function for safe ERROR level logging."""
    safe_log_format(logger, logging.ERROR, template, prefix=prefix, **kwargs)


def log_debug_safe(
    logger: logging.Logger, template: str, prefix: Optional[str] = None, **kwargs: Any
) -> None:
    """Convenience function for safe DEBUG level logging."""
    safe_log_format(logger, logging.DEBUG, template, prefix=prefix, **kwargs)


def format_size_short(size_bytes: int) -> str:
    """
    Return a short human-readable size using binary units.

    Examples:
        512 -> "512B"
        2048 -> "2.0KB"
        1048576 -> "1.0MB"
    """
    if size_bytes >= 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f}GB"
    if size_bytes >= 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f}MB"
    if size_bytes >= 1024:
        return f"{size_bytes / 1024:.1f}KB"
    return f"{size_bytes}B"


def image_timestamp(now: Optional[datetime] = None) -> str:
    """Sortable timestamp used to name override images."""
    now = now or datetime.now()
    return now.strftime(FormatConfig.get_instance().image_timestamp_format)


def format_identifier_list(identifiers: Iterable[str], empty: str = "none") -> str:
    """Join table identifiers for log output in a stable order."""
    items = sorted(identifiers)
    return ", ".join(items) if items else empty


def format_failure_lines(failures: Dict[str, Any]) -> List[str]:
    """Render ``{identifier: error}`` as one ``identifier: reason`` line each."""
    lines: List[str] = []
    for identifier in sorted(failures):
        error = failures[identifier]
        reason = getattr(error, "message", None) or str(error)
        lines.append(f"{identifier}: {reason}")
    return lines
