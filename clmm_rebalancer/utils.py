"""
Common utilities and helper functions for the range rebalancer.

Timestamp formatting for status lines and a structured logger factory shared
by every module in the package.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


# Timestamp utilities
def timestamp_to_iso(timestamp: float) -> str:
    """Convert Unix timestamp to ISO 8601 string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def iso_to_timestamp(iso_string: str) -> float:
    """Convert ISO 8601 string to Unix timestamp."""
    return datetime.fromisoformat(iso_string.replace("Z", "+00:00")).timestamp()


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def format_status_line(message: str, timestamp: float, is_error: bool = False) -> str:
    """
    Prefix a status message with its ISO timestamp.

    Args:
        message: Human-readable status text
        timestamp: Unix timestamp of the event
        is_error: If True, mark the line as an error

    Returns:
        Line such as "[2024-01-01T00:00:00+00:00] ERROR: Position not found: 0x1"
    """
    prefix = "ERROR: " if is_error else ""
    return f"[{timestamp_to_iso(timestamp)}] {prefix}{message}"


# Logging utilities
def get_logger(
    name: str,
    level: Union[str, int] = logging.INFO,
    extra: Optional[Dict[str, Any]] = None,
    minimal: bool = False,
) -> logging.Logger:
    """
    Get a structured logger with consistent formatting and extra context.

    Args:
        name: Logger name (typically __name__)
        level: Logging level
        extra: Additional context fields to include in all log messages
        minimal: If True, use simplified format (time + message only)

    Returns:
        Configured logger with structured output
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()

        if minimal:
            format_str = "%(asctime)s | %(message)s"
        else:
            format_str = (
                "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | " "%(message)s"
            )

        if extra:
            extra_fields = " | ".join([f"{k}=%(extra_{k})s" for k in extra.keys()])
            format_str = format_str.replace(
                " | %(message)s", f" | {extra_fields} | %(message)s"
            )

        formatter = logging.Formatter(format_str, datefmt="%H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if extra:
            logger = logging.LoggerAdapter(
                logger, {"extra_" + k: v for k, v in extra.items()}
            )

    return logger
