"""
Migration orchestration.

The MigrationManager combines a Scanner and an Executor:

    run_migrations()
      1. initialize the tracking table
      2. scan available migrations, fetch applied versions
      3. validate the sequence (no gaps, no applied version without a file)
      4. pending = available - applied
      5. for each pending migration, ascending: execute, then record

Any failure aborts the run immediately. Migrations applied earlier in the run
stay applied; only the failing migration's own transaction is rolled back.
Nothing is cached between calls, every operation re-reads disk and database.

The manager does not need logging. Pass a logger to get progress records;
otherwise the returned MigrationRunResult / MigrationStatus values and the
raised errors carry everything a host needs.
"""

import logging
import time
from datetime import timedelta
from enum import Enum

from ..exceptions import (
    ChecksumMismatchError,
    DuplicateVersionError,
    InvalidVersionError,
    MigrationError,
    VersionConflictError,
    VersionTableCorruptError,
)
from ..utils.logging import log_with_context
from ..utils.time import to_milliseconds, utc_now
from .context import MigrationContext, check_context
from .models import (
    AppliedMigration,
    Executor,
    Migration,
    MigrationRunResult,
    MigrationStatus,
    Scanner,
    version_sort_key,
)


class RunState(Enum):
    """Progress of the current (or last) run_migrations() call."""

    START = "start"
    TABLE_INITIALIZED = "table_initialized"
    SCANNED = "scanned"
    SEQUENCE_VALIDATED = "sequence_validated"
    EXECUTING = "executing"
    RECORDED = "recorded"
    DONE = "done"
    ABORTED = "aborted"


class MigrationManager:
    """
    Applies pending migrations from a directory, in order, exactly once.

    Args:
        scanner: Source of available migrations (FileScanner in production)
        executor: Database side (SQLiteExecutor in production)
        migration_dir: Directory passed to the scanner
        logger: Optional logger for progress records
        timeout_per_file: Optional deadline in seconds for each migration
        verify_checksums: Fail if an applied migration's file has changed
        atomic_record: Record each version inside the migration's own transaction

    Example:
        >>> manager = MigrationManager(FileScanner(), SQLiteExecutor(conn), "migrations")
        >>> result = manager.run_migrations()
        >>> result.applied_versions
        ['001', '002']
        >>> manager.get_migration_status().current_version
        '002'
    """

    def __init__(
        self,
        scanner: Scanner,
        executor: Executor,
        migration_dir: str,
        *,
        logger: logging.Logger | None = None,
        timeout_per_file: float | None = None,
        verify_checksums: bool = False,
        atomic_record: bool = False,
    ):
        self.scanner = scanner
        self.executor = executor
        self.migration_dir = str(migration_dir)
        self.timeout_per_file = timeout_per_file
        self.verify_checksums = verify_checksums
        self.atomic_record = atomic_record
        self.state = RunState.START
        self._logger = logger

    def run_migrations(self, ctx: MigrationContext | None = None) -> MigrationRunResult:
        """
        Apply all pending migrations in ascending version order.

        Returns:
            MigrationRunResult describing what was applied (empty when the
            database was already up to date)

        Raises:
            FileSystemError / MigrationError: Scan or validation failures, before
                any migration runs
            SequenceError: Gap in versions or applied version without a file,
                before any migration runs
            DatabaseError: Tracking table cannot be created or read
            MigrationError: A migration failed to execute or record; carries
                the version and file path, wraps the cause
            MigrationInterruptedError: ctx was cancelled or expired between
                migrations
        """
        self.state = RunState.START
        started_at = utc_now()
        started = time.monotonic()

        try:
            self.executor.initialize_version_table(ctx)
            self.state = RunState.TABLE_INITIALIZED

            pending = self.get_pending_migrations(ctx)
            self.state = RunState.SEQUENCE_VALIDATED

            applied = []
            for index, migration in enumerate(pending, start=1):
                check_context(ctx, f"start migration {migration.version}")
                self.state = RunState.EXECUTING
                log_with_context(
                    self._logger,
                    logging.INFO,
                    f"Executing migration {migration.version}: {migration.description} "
                    f"({index}/{len(pending)})",
                    context={
                        "version": migration.version,
                        "file_path": migration.file_path,
                        "checksum": migration.checksum,
                    },
                )

                applied.append(self._apply_one(migration, ctx))
                self.state = RunState.RECORDED

        except Exception:
            self.state = RunState.ABORTED
            raise

        self.state = RunState.DONE
        result = MigrationRunResult(
            applied=applied,
            pending_before=len(pending),
            started_at=started_at,
            total_time=timedelta(seconds=time.monotonic() - started),
        )

        if applied:
            log_with_context(
                self._logger,
                logging.INFO,
                f"All {len(applied)} migrations completed successfully",
                context={
                    "versions": result.applied_versions,
                    "total_time_ms": to_milliseconds(result.total_time),
                },
            )
        return result

    def get_pending_migrations(
        self, ctx: MigrationContext | None = None
    ) -> list[Migration]:
        """
        Return migrations not yet applied, in ascending version order.

        Runs the same scan and sequence validation as run_migrations() without
        executing anything (dry run).
        """
        available, applied = self._load(ctx)
        return self._pending(available, applied)

    def get_applied_versions(self, ctx: MigrationContext | None = None) -> list[str]:
        """Return applied version strings in ascending numeric order."""
        return [m.version for m in self.list_applied_migrations(ctx)]

    def list_applied_migrations(
        self, ctx: MigrationContext | None = None
    ) -> list[AppliedMigration]:
        """
        Return tracking table rows in ascending numeric order.

        Read-only: a database without the tracking table has no applied
        migrations, and the table is not created here.
        """
        if not self.executor.has_version_table(ctx):
            return []
        return self.executor.get_applied_versions(ctx)

    def get_migration_status(
        self, ctx: MigrationContext | None = None
    ) -> MigrationStatus:
        """
        Compute the current migration status.

        current_version is the applied version with the highest integer value,
        or "" when nothing has been applied.
        """
        available, applied = self._load(ctx)
        pending = self._pending(available, applied)

        return MigrationStatus(
            current_version=current_version(applied),
            pending_count=len(pending),
            applied_migrations=applied,
            pending_migrations=pending,
        )

    def _load(
        self, ctx: MigrationContext | None
    ) -> tuple[list[Migration], list[AppliedMigration]]:
        check_context(ctx, "scan migrations")
        available = self.scanner.scan_migrations(self.migration_dir)
        applied = self.list_applied_migrations(ctx)
        if self.state is RunState.TABLE_INITIALIZED:
            self.state = RunState.SCANNED

        log_with_context(
            self._logger,
            logging.DEBUG,
            f"Found {len(available)} migration files, {len(applied)} applied",
            context={"migration_dir": self.migration_dir},
        )
        return available, applied

    def _pending(
        self, available: list[Migration], applied: list[AppliedMigration]
    ) -> list[Migration]:
        validate_sequence(available, [m.version for m in applied])

        if self.verify_checksums:
            verify_checksums(available, applied)

        applied_numbers = {int(m.version) for m in applied}
        pending = [m for m in available if int(m.version) not in applied_numbers]
        pending.sort(key=lambda m: int(m.version))
        return pending

    def _apply_one(
        self, migration: Migration, ctx: MigrationContext | None
    ) -> AppliedMigration:
        migration_ctx = self._migration_context(ctx)
        started = time.monotonic()

        try:
            if self.atomic_record:
                execution_time = self.executor.apply_migration(migration, migration_ctx)
            else:
                self.executor.execute_migration(migration, migration_ctx)
                execution_time = timedelta(seconds=time.monotonic() - started)
        except Exception as e:
            log_with_context(
                self._logger,
                logging.ERROR,
                f"Migration {migration.version} failed during execution: {e}",
                context={"version": migration.version, "file_path": migration.file_path},
            )
            raise MigrationError(
                migration.version, migration.file_path, "execute migration", e
            ) from e

        if not self.atomic_record:
            # The migration has committed; record it even if ctx was cancelled since.
            try:
                self.executor.record_migration(
                    migration.version, execution_time, None, checksum=migration.checksum
                )
            except Exception as e:
                log_with_context(
                    self._logger,
                    logging.ERROR,
                    f"Failed to record migration {migration.version}: {e}",
                    context={"version": migration.version, "file_path": migration.file_path},
                )
                raise MigrationError(
                    migration.version, migration.file_path, "record migration", e
                ) from e

        log_with_context(
            self._logger,
            logging.INFO,
            f"Migration {migration.version} completed",
            context={
                "version": migration.version,
                "execution_time_ms": to_milliseconds(execution_time),
            },
        )

        return AppliedMigration(
            version=migration.version,
            applied_at=utc_now(),
            execution_time=execution_time,
            checksum=migration.checksum,
        )

    def _migration_context(
        self, ctx: MigrationContext | None
    ) -> MigrationContext | None:
        if ctx is not None:
            return ctx.child(self.timeout_per_file)
        if self.timeout_per_file is not None:
            return MigrationContext(timeout=self.timeout_per_file)
        return None


def validate_sequence(available: list[Migration], applied_versions: list[str]) -> None:
    """
    Check migration sequence integrity.

    - every available version is numeric and unique
    - every applied version is numeric
    - available versions cover every integer from their minimum to their maximum
    - every applied version has an available file

    Raises:
        MigrationError: Wrapping InvalidVersionError or DuplicateVersionError,
            naming the offending file
        VersionTableCorruptError: An applied version is not numeric
        VersionConflictError: A version is missing from the sequence, or an
            applied version has no file
    """
    numbers: dict[int, Migration] = {}
    for migration in available:
        number = _parse_version(migration.version)
        if number is None:
            error = InvalidVersionError(f"version '{migration.version}' is not numeric")
            raise MigrationError(
                migration.version, migration.file_path, "validate sequence", error
            ) from error
        if number in numbers:
            error = DuplicateVersionError(
                f"version {migration.version} found in both "
                f"{numbers[number].file_path} and {migration.file_path}"
            )
            raise MigrationError(
                migration.version, migration.file_path, "validate sequence", error
            ) from error
        numbers[number] = migration

    applied_numbers = []
    for version in applied_versions:
        number = _parse_version(version)
        if number is None:
            raise VersionTableCorruptError(
                f"applied version '{version}' in tracking table is not numeric",
                version=version,
            )
        applied_numbers.append((number, version))

    if numbers:
        lowest, highest = min(numbers), max(numbers)
        width = len(numbers[lowest].version)
        for number in range(lowest, highest + 1):
            if number not in numbers:
                raise VersionConflictError(
                    f"missing migration version {str(number).zfill(width)} in sequence"
                )

    for number, version in applied_numbers:
        if number not in numbers:
            raise VersionConflictError(
                f"applied migration {version} not found in available migrations"
            )


def verify_checksums(available: list[Migration], applied: list[AppliedMigration]) -> None:
    """
    Compare recorded checksums against the current files.

    Rows recorded without a checksum are skipped.

    Raises:
        MigrationError: Wrapping ChecksumMismatchError for the first changed file
    """
    by_number = {int(m.version): m for m in available}
    for row in applied:
        migration = by_number.get(int(row.version))
        if migration is None or not row.checksum:
            continue
        if row.checksum != migration.checksum:
            error = ChecksumMismatchError(
                f"checksum mismatch: applied={row.checksum}, "
                f"current={migration.checksum}. "
                f"Previously applied migrations must not be modified."
            )
            raise MigrationError(
                migration.version, migration.file_path, "verify checksum", error
            ) from error


def current_version(applied: list[AppliedMigration]) -> str:
    """Return the numerically highest applied version, or "" if none."""
    numeric = [m.version for m in applied if _parse_version(m.version) is not None]
    if not numeric:
        return ""
    return max(numeric, key=version_sort_key)


def _parse_version(version: str) -> int | None:
    if version.isascii() and version.isdigit():
        return int(version)
    return None
