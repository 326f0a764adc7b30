"""
Retry configuration for migration database calls.

Centralized retry logic using tenacity. Only lock contention is retried:
when another connection holds the database, SQLite reports "database is
locked" / "database is busy" once busy_timeout has elapsed. Every other
failure (bad SQL, constraint violations, cancellation) fails immediately.

Retrying a migration is safe because a failed attempt has already rolled its
transaction back.

Example:
    >>> from schema_migrator.migration.retry_config import create_retry_decorator
    >>> retrying = create_retry_decorator(max_attempts=3)
    >>> retrying(executor_call)(migration)
"""

import sqlite3

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..exceptions import DatabaseLockedError

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

# First retry waits at least this long (seconds)
MIN_WAIT_SECONDS = 0.1

# Caps exponential backoff; busy_timeout already waited inside SQLite
MAX_WAIT_SECONDS = 2.0

# Substrings of sqlite3.OperationalError messages that mean lock contention
LOCK_ERROR_MARKERS = ("database is locked", "database is busy", "database table is locked")

# ============================================================================
# RETRY DECORATOR FACTORY
# ============================================================================


def create_retry_decorator(max_attempts: int, wait=None):
    """
    Create a tenacity retry decorator for lock-contended database calls.

    Args:
        max_attempts: Total attempts including the first (>= 1)
        wait: Optional tenacity wait strategy; defaults to exponential
              backoff between MIN_WAIT_SECONDS and MAX_WAIT_SECONDS

    Returns:
        Retry decorator that retries DatabaseLockedError only and reraises
        the last error once attempts are exhausted
    """
    if wait is None:
        wait = wait_exponential(
            multiplier=MIN_WAIT_SECONDS,
            min=MIN_WAIT_SECONDS,
            max=MAX_WAIT_SECONDS,
        )

    return retry(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait,
        retry=retry_if_exception_type(DatabaseLockedError),
        reraise=True,
    )


def is_lock_error(error: Exception) -> bool:
    """Return True if a sqlite3 error reports lock contention."""
    if not isinstance(error, sqlite3.OperationalError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in LOCK_ERROR_MARKERS)
