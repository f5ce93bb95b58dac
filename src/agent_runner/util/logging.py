"""Logging setup for agent-runner.

Log records go to stderr so that stdout stays reserved for agent output
(``agent-runner run --json`` pipes cleanly into other tools).
"""

from __future__ import annotations

import logging
import sys
from typing import Final, TextIO

PACKAGE_LOGGER: Final[str] = "agent_runner"
DEFAULT_LEVEL: Final[str] = "WARNING"
DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(
    level: str | int = DEFAULT_LEVEL,
    fmt: str | None = None,
    *,
    stream: TextIO | None = None,
) -> None:
    """Configure logging for the CLI.

    The root handler is installed once and later calls leave it alone. The
    level is set on the ``agent_runner`` logger on every call, so third-party
    loggers stay at WARNING even when the package logs at DEBUG.

    Args:
        level: Level name ("DEBUG", "info", ...) or number.
        fmt: Optional logging format string.
        stream: Destination for log records (default: stderr).
    """

    numeric_level = normalize_level(level)
    logging.basicConfig(
        level=logging.WARNING,
        format=fmt or DEFAULT_LOG_FORMAT,
        stream=stream or sys.stderr,
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def normalize_level(level: str | int) -> int:
    """Map a level name or number to its numeric value.

    Raises:
        ValueError: If the name is not a standard logging level.
    """

    if isinstance(level, int):
        return level
    text = level.strip().upper()
    if text.isdigit():
        return int(text)
    numeric = logging.getLevelName(text)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return numeric
