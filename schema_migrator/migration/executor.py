"""
SQLite migration executor.

Applies migrations against one sqlite3 connection and maintains the version
tracking table (schema_migrations by default):

    version            TEXT PRIMARY KEY
    applied_at         TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    checksum           TEXT
    execution_time_ms  INTEGER

Transactions:
- Each migration runs inside exactly one BEGIN ... COMMIT; any failing
  statement rolls the whole migration back
- record_migration() is a separate transaction after the migration committed
  (a crash in between leaves the migration applied but unrecorded)
- apply_migration() executes and records inside the same transaction

The executor owns transaction boundaries, so the connection should be in
autocommit mode (isolation_level=None), as returned by storage.db.get_connection().
"""

import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta

from ..config.constants import DEFAULT_TABLE_NAME
from ..exceptions import (
    DatabaseError,
    DatabaseLockedError,
    InvalidMigrationFileError,
    MigrationCancelledError,
    MigrationError,
    MigrationTimeoutError,
)
from ..utils.time import parse_timestamp, to_milliseconds, utc_timestamp
from .context import MigrationContext, check_context, guarded
from .models import AppliedMigration, Migration, version_sort_key
from .retry_config import create_retry_decorator, is_lock_error
from .sql_text import split_statements


class SQLiteExecutor:
    """
    Executes migrations and tracks applied versions in SQLite.

    Args:
        conn: Open sqlite3 connection in autocommit mode
        table_name: Tracking table name (must be a plain identifier)
        max_retries: Extra attempts when the database is locked
        retry_wait: Optional tenacity wait strategy (tests pass wait_none())

    Example:
        >>> executor = SQLiteExecutor(get_connection(config.database))
        >>> executor.initialize_version_table()
        >>> executor.execute_migration(migration)
        >>> executor.record_migration(migration.version, timedelta(milliseconds=12))
        >>> executor.is_version_applied(migration.version)
        True
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        table_name: str = DEFAULT_TABLE_NAME,
        max_retries: int = 0,
        retry_wait=None,
    ):
        if not table_name.isidentifier():
            raise ValueError(f"Invalid tracking table name: {table_name!r}")

        self._conn = conn
        self.table_name = table_name
        self._retrying = create_retry_decorator(max_retries + 1, wait=retry_wait)

    def initialize_version_table(self, ctx: MigrationContext | None = None) -> None:
        """
        Create the tracking table if it does not exist. Safe to call on every run.

        Raises:
            DatabaseError: If the CREATE TABLE fails
        """
        check_context(ctx, "initialize version table")

        create_sql = f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                version TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                checksum TEXT,
                execution_time_ms INTEGER
            )
        """

        try:
            with guarded(ctx, self._conn):
                self._conn.execute(create_sql)
        except sqlite3.Error as e:
            raise _wrap_error(
                "", create_sql, f"create {self.table_name} table", e, ctx
            ) from e

    def has_version_table(self, ctx: MigrationContext | None = None) -> bool:
        """Return True if the tracking table exists. Never creates it."""
        check_context(ctx, "check version table")

        query = "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?"
        try:
            with guarded(ctx, self._conn):
                row = self._conn.execute(query, (self.table_name,)).fetchone()
        except sqlite3.Error as e:
            raise _wrap_error("", query, "check version table", e, ctx) from e

        return row is not None

    def execute_migration(
        self, migration: Migration, ctx: MigrationContext | None = None
    ) -> None:
        """
        Run all statements of a migration inside one transaction.

        Raises:
            MigrationError: If the migration contains no executable statements
            DatabaseError: If BEGIN, a statement, or COMMIT fails (rolled back);
                the failing statement is in .query
            MigrationCancelledError / MigrationTimeoutError: If ctx ends first
        """
        self._retrying(self._run_migration)(migration, ctx, False)

    def apply_migration(
        self, migration: Migration, ctx: MigrationContext | None = None
    ) -> timedelta:
        """
        Execute a migration and record it in the same transaction.

        Returns:
            Time spent executing the migration's statements

        Raises:
            Same as execute_migration(); a failed insert into the tracking table
            also rolls back the migration's statements.
        """
        return self._retrying(self._run_migration)(migration, ctx, True)

    def record_migration(
        self,
        version: str,
        execution_time: timedelta,
        ctx: MigrationContext | None = None,
        checksum: str | None = None,
    ) -> None:
        """
        Insert a tracking row for a migration that has already committed.

        Args:
            version: Migration version
            execution_time: Duration of the migration, stored in milliseconds
            ctx: Optional context
            checksum: Migration checksum to store (NULL when None)

        Raises:
            DatabaseError: If the insert fails (e.g. version already recorded)
        """
        check_context(ctx, f"record migration {version}")

        def attempt() -> None:
            with self._transaction(version, ctx):
                self._insert_record(version, execution_time, checksum, ctx)

        self._retrying(attempt)()

    def is_version_applied(
        self, version: str, ctx: MigrationContext | None = None
    ) -> bool:
        """Return True if the tracking table has a row for exactly this version string."""
        check_context(ctx, f"check version {version}")

        query = f"SELECT 1 FROM {self.table_name} WHERE version = ? LIMIT 1"
        try:
            with guarded(ctx, self._conn):
                row = self._conn.execute(query, (version,)).fetchone()
        except sqlite3.Error as e:
            raise _wrap_error(version, query, "check version applied", e, ctx) from e

        return row is not None

    def get_applied_versions(
        self, ctx: MigrationContext | None = None
    ) -> list[AppliedMigration]:
        """
        Return all tracking rows, ascending by numeric version.

        An empty table yields an empty list. Rows whose applied_at cannot be
        parsed are returned with applied_at=None.
        """
        check_context(ctx, "get applied versions")

        query = f"""
            SELECT version, applied_at, COALESCE(execution_time_ms, 0), COALESCE(checksum, '')
            FROM {self.table_name}
        """
        try:
            with guarded(ctx, self._conn):
                rows = self._conn.execute(query).fetchall()
        except sqlite3.Error as e:
            raise _wrap_error("", query, "get applied versions", e, ctx) from e

        applied = []
        for version, applied_at, execution_time_ms, checksum in rows:
            try:
                applied_at_dt = parse_timestamp(str(applied_at))
            except ValueError:
                applied_at_dt = None

            applied.append(
                AppliedMigration(
                    version=str(version),
                    applied_at=applied_at_dt,
                    execution_time=timedelta(milliseconds=int(execution_time_ms)),
                    checksum=checksum,
                )
            )

        applied.sort(key=lambda m: version_sort_key(m.version))
        return applied

    def _run_migration(
        self, migration: Migration, ctx: MigrationContext | None, record: bool
    ) -> timedelta:
        check_context(ctx, f"execute migration {migration.version}")

        statements = split_statements(migration.sql)
        if not statements:
            error = InvalidMigrationFileError("no SQL statements found in migration")
            raise MigrationError(
                migration.version, migration.file_path, "parse SQL", error
            ) from error

        started = time.monotonic()
        with self._transaction(migration.version, ctx):
            for index, statement in enumerate(statements, start=1):
                try:
                    self._conn.execute(statement)
                except sqlite3.Error as e:
                    raise _wrap_error(
                        migration.version, statement, f"execute statement {index}", e, ctx
                    ) from e

            execution_time = timedelta(seconds=time.monotonic() - started)
            if record:
                self._insert_record(
                    migration.version, execution_time, migration.checksum, ctx
                )

        return execution_time

    def _insert_record(
        self,
        version: str,
        execution_time: timedelta,
        checksum: str | None,
        ctx: MigrationContext | None,
    ) -> None:
        insert_sql = f"""
            INSERT INTO {self.table_name} (version, applied_at, checksum, execution_time_ms)
            VALUES (?, ?, ?, ?)
        """
        params = (version, utc_timestamp(), checksum or None, to_milliseconds(execution_time))
        try:
            self._conn.execute(insert_sql, params)
        except sqlite3.Error as e:
            raise _wrap_error(version, insert_sql, "record migration", e, ctx) from e

    @contextmanager
    def _transaction(
        self, version: str, ctx: MigrationContext | None
    ) -> Iterator[None]:
        try:
            self._conn.execute("BEGIN")
        except sqlite3.Error as e:
            raise _wrap_error(version, "BEGIN", "begin transaction", e, ctx) from e

        try:
            with guarded(ctx, self._conn):
                yield
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error as e:
                    raise _wrap_error(version, "COMMIT", "commit transaction", e, ctx) from e
        except BaseException as exc:
            self._rollback(exc)
            raise

    def _rollback(self, original: BaseException) -> None:
        # SQLite may already have rolled back (e.g. after an interrupt)
        if not self._conn.in_transaction:
            return
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as rollback_error:
            original.add_note(f"rollback also failed: {rollback_error}")


def _wrap_error(
    version: str,
    query: str,
    operation: str,
    error: sqlite3.Error,
    ctx: MigrationContext | None,
) -> Exception:
    """Map a sqlite3 error to the engine's taxonomy."""
    if ctx is not None and ctx.cancelled:
        return MigrationCancelledError(f"{operation}: migration run cancelled ({error})")
    if ctx is not None and ctx.expired:
        return MigrationTimeoutError(f"{operation}: migration deadline exceeded ({error})")
    if is_lock_error(error):
        return DatabaseLockedError(version, query, operation, error)
    return DatabaseError(version, query, operation, error)
