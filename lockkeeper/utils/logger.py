"""
Logging utilities for lockkeeper.

All lockkeeper modules log through loggers in the ``lockkeeper``
namespace obtained from :func:`get_logger`. Nothing is printed until the
CLI (or an embedding application) calls :func:`setup_logging`, so the
package stays quiet when used as a library.
"""

from __future__ import annotations

import os
import sys
import logging
import threading
from typing import IO, Optional

from lockkeeper.constants import (
    LOG_DATE_FORMAT,
    LOG_DEFAULT_FORMAT,
    LOG_VERBOSE_FORMAT,
)

_ROOT_LOGGER = "lockkeeper"

_logging_configured: bool = False
_lock = threading.Lock()


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name when writing to a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: str,
        *,
        datefmt: Optional[str] = None,
        stream: Optional[IO[str]] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = _stream_supports_color(stream or sys.stderr)

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)

        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _stream_supports_color(stream: IO[str]) -> bool:
    """Colors only on interactive terminals, never with NO_COLOR or in CI."""
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    try:
        return stream.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def setup_logging(
    *,
    level: int = logging.INFO,
    verbose: bool = False,
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure the ``lockkeeper`` logger hierarchy.

    Safe to call repeatedly: existing handlers are replaced.

    Args:
        level: Logging level (e.g., ``logging.INFO``, ``logging.DEBUG``).
        verbose: Use the verbose format with timestamps and logger names.
        stream: Output stream; defaults to ``sys.stderr``.
    """
    global _logging_configured

    target = stream or sys.stderr
    with _lock:
        root_logger = logging.getLogger(_ROOT_LOGGER)
        root_logger.handlers.clear()
        root_logger.setLevel(level)

        handler = logging.StreamHandler(target)
        handler.setLevel(level)
        handler.setFormatter(
            ColoredFormatter(
                LOG_VERBOSE_FORMAT if verbose else LOG_DEFAULT_FORMAT,
                datefmt=LOG_DATE_FORMAT,
                stream=target,
            )
        )

        root_logger.addHandler(handler)
        root_logger.propagate = False
        _logging_configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger within the lockkeeper namespace.

    Args:
        name: Short name (``"builder"``) or dotted module name
            (``"lockkeeper.core.builder"``).

    Returns:
        A logger under the ``lockkeeper`` hierarchy.
    """
    if not name or name == _ROOT_LOGGER:
        logger = logging.getLogger(_ROOT_LOGGER)
    elif name.startswith(f"{_ROOT_LOGGER}."):
        logger = logging.getLogger(name)
    else:
        logger = logging.getLogger(f"{_ROOT_LOGGER}.{name}")

    root_logger = logging.getLogger(_ROOT_LOGGER)
    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    return logger


def is_logging_configured() -> bool:
    """Return True if :func:`setup_logging` has run."""
    return _logging_configured


def disable_logging() -> None:
    """Silence all lockkeeper logging output."""
    global _logging_configured

    with _lock:
        root_logger = logging.getLogger(_ROOT_LOGGER)
        root_logger.handlers.clear()
        root_logger.addHandler(logging.NullHandler())
        root_logger.setLevel(logging.NOTSET)
        _logging_configured = False
