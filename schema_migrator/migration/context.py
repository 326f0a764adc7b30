"""
Cancellation and deadlines for migration runs.

A MigrationContext is threaded through every executor and manager call so a
host can cancel a run or bound how long it may take. Cancellation is observed
at call boundaries via check(), and inside a running statement via a SQLite
progress handler installed by guard().

Example:
    >>> ctx = MigrationContext(timeout=60)
    >>> manager.run_migrations(ctx)

    >>> # From another thread (e.g. a signal handler)
    >>> ctx.cancel()
"""

import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from ..exceptions import MigrationCancelledError, MigrationTimeoutError

# Number of SQLite virtual machine instructions between progress handler calls
PROGRESS_HANDLER_INTERVAL = 1000


class MigrationContext:
    """
    Deadline and cancellation signal for one migration run.

    Attributes:
        deadline: time.monotonic() value after which the context is expired,
                  or None for no deadline
    """

    def __init__(
        self,
        timeout: float | None = None,
        parent: "MigrationContext | None" = None,
    ):
        deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            deadline = (
                parent.deadline if deadline is None else min(deadline, parent.deadline)
            )

        self.deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()

    def child(self, timeout: float | None = None) -> "MigrationContext":
        """
        Derive a context that expires at the earlier of this deadline and now+timeout.

        Cancelling the parent cancels the child; cancelling the child does not
        affect the parent.
        """
        return MigrationContext(timeout=timeout, parent=self)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def done(self) -> bool:
        return self.cancelled or self.expired

    def check(self, operation: str) -> None:
        """
        Raise if the context is cancelled or past its deadline.

        Args:
            operation: What was about to happen, for the error message

        Raises:
            MigrationCancelledError: If cancel() was called on this context or a parent
            MigrationTimeoutError: If the deadline has passed
        """
        if self.cancelled:
            raise MigrationCancelledError(f"{operation}: migration run cancelled")
        if self.expired:
            raise MigrationTimeoutError(f"{operation}: migration deadline exceeded")

    @contextmanager
    def guard(self, conn: sqlite3.Connection) -> Iterator[None]:
        """
        Interrupt statements on conn once this context is done.

        While active, SQLite aborts the running statement with
        sqlite3.OperationalError ("interrupted") when the context is
        cancelled or expires. The handler is removed on exit.
        """
        conn.set_progress_handler(lambda: 1 if self.done() else 0, PROGRESS_HANDLER_INTERVAL)
        try:
            yield
        finally:
            conn.set_progress_handler(None, 0)


def check_context(ctx: MigrationContext | None, operation: str) -> None:
    """Call ctx.check(operation) when a context was given."""
    if ctx is not None:
        ctx.check(operation)


@contextmanager
def guarded(ctx: MigrationContext | None, conn: sqlite3.Connection) -> Iterator[None]:
    """ctx.guard(conn) when a context was given, otherwise a no-op."""
    if ctx is None:
        yield
        return
    with ctx.guard(conn):
        yield
