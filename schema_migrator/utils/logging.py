"""
Structured JSON logging for Schema Migrator.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps with timezone info
- Structured context fields
- Component-based logger creation

The migration engine never configures logging itself and only logs through a
logger handed to it by the host. The CLI calls setup_logging() once and passes
get_logger(...) instances down.

Examples:
    >>> from schema_migrator.utils.logging import setup_logging, get_logger
    >>> setup_logging(verbose=True)
    >>> logger = get_logger("migration.manager")
    >>> logger.info("Migration applied", extra={"context": {"version": "002"}})
"""

import json
import logging
import sys
from typing import Any

from schema_migrator.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs as JSON with structured fields.

    Each log record is formatted as a JSON object with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level (INFO, WARNING, ERROR, DEBUG)
    - component: Module/component name (from logger name)
    - message: Human-readable log message
    - context: Additional structured data (from 'context' in extra)
    - exception: Formatted traceback, if any
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging for the application.

    Sets up:
    - JSON formatter for structured output
    - stderr output (stdout reserved for user-facing content)
    - Log level: DEBUG if verbose=True, INFO otherwise; WARNING when
      quiet_logs=True and not verbose (human CLI mode prints its own output)

    Args:
        verbose: If True, set log level to DEBUG.
        quiet_logs: If True, only warnings and errors are emitted.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers (prevents duplicate logs)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())

    root_logger.addHandler(handler)


def get_logger(component: str) -> logging.Logger:
    """
    Get a logger instance for a specific component.

    Args:
        component: Component name (e.g., "migration.manager", "cli")

    Returns:
        Logger instance sharing the configuration set by setup_logging()
    """
    return logging.getLogger(f"schema_migrator.{component}")


def log_with_context(
    logger: logging.Logger | None,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    """
    Log a message with structured context.

    Equivalent to logger.log(level, message, extra={'context': {...}}).
    A None logger is accepted and ignored so that engine components can be
    built without any logging.

    Args:
        logger: Logger instance (from get_logger), or None
        level: Log level (logging.INFO, logging.WARNING, etc.)
        message: Human-readable log message
        context: Optional dict with additional structured data

    Example:
        >>> log_with_context(
        ...     get_logger("migration.manager"),
        ...     logging.INFO,
        ...     "Migration applied",
        ...     context={"version": "002", "execution_time_ms": 14},
        ... )
    """
    if logger is None:
        return

    extra = {"context": context} if context is not None else None
    logger.log(level, message, extra=extra)
