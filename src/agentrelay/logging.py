"""Logging configuration for agentrelay.

Uses Python's standard logging module with support for:
- File logging via config or AR_LOG environment variable
- Verbosity levels: error(0), warning(1), info(2), verbose(3), trace(4)
- Stderr fallback when no log file is configured
- Structured lifecycle records via log_event()
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agentrelay.config.schema import LoggingConfig

# Custom log levels
TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

# Module-level logger
logger = logging.getLogger("agentrelay")

_initialized = False
_installed_handlers: list[logging.Handler] = []

# Map string level names to logging constants
_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Map --verbose=N to log levels (0=errors only, 4=everything)
_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Initialize logging based on configuration.

    Config values take precedence, with the AR_LOG env var as fallback for
    the log file. Call this once at startup. Subsequent calls are no-ops.

    Args:
        config: Optional LoggingConfig with level, verbose, and file settings.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    # verbose (int) takes precedence over level (str)
    log_level = logging.INFO
    if config:
        if config.verbose is not None:
            log_level = _VERBOSITY_MAP.get(config.verbose, TRACE)
        elif config.level:
            log_level = _LEVEL_MAP.get(config.level.upper(), logging.INFO)

    logger.setLevel(log_level)

    formatter = _LowercaseLevelFormatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"
    )

    log_path = config.file if config and config.file else os.environ.get("AR_LOG")

    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            _installed_handlers.append(file_handler)
        except OSError as e:
            if sys.stderr.isatty():
                print(f"[agentrelay] Failed to open log file: {e}", file=sys.stderr)
                _add_stderr_handler(formatter, log_level)
    elif sys.stderr.isatty():
        _add_stderr_handler(formatter, log_level)


def _add_stderr_handler(formatter: logging.Formatter, level: int = logging.DEBUG) -> None:
    """Add a stderr handler to the logger."""
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)
    _installed_handlers.append(stderr_handler)


def reset_logging() -> None:
    """Remove handlers installed by setup_logging() and allow it to run again."""
    global _initialized
    for handler in _installed_handlers:
        logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()
    logger.setLevel(logging.NOTSET)
    _initialized = False


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Optional name for a child logger (e.g., "agents", "storage").
              If None, returns the root agentrelay logger.

    Returns:
        A configured logger instance.
    """
    if name:
        return logger.getChild(name)
    return logger


def _render(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[" + ",".join(_render(v) for v in value) + "]"
    return str(value)


def log_event(
    log: logging.Logger,
    level: int,
    event: str,
    **context: Any,
) -> None:
    """Emit a structured lifecycle record.

    The message reads ``"<event>: key=value key=value"`` so plain-text log
    files stay greppable, and the record carries ``event`` and ``context``
    attributes for handlers (and tests) that want the fields directly.

    Args:
        log: Logger to emit on.
        level: Logging level.
        event: Short human-readable event marker, e.g. "Creating new agent".
        **context: Structured fields (conversationId, messageCount, ...).
    """
    if not log.isEnabledFor(level):
        return
    fields = " ".join(f"{key}={_render(value)}" for key, value in context.items())
    message = f"{event}: {fields}" if fields else event
    log.log(level, "%s", message, extra={"event": event, "context": dict(context)})
