"""
Schema migration engine.

This module provides:
- FileScanner: discovers and validates {version}_{description}.sql files
- SQLiteExecutor: applies migrations and maintains the tracking table
- MigrationManager: computes pending migrations and applies them in order
- MigrationContext: cancellation and deadlines for a run

Example:
    >>> from schema_migrator.migration import FileScanner, MigrationManager, SQLiteExecutor
    >>>
    >>> manager = MigrationManager(FileScanner(), SQLiteExecutor(conn), "migrations")
    >>> result = manager.run_migrations()
    >>> status = manager.get_migration_status()
    >>> print(status.current_version, status.pending_count)
    002 0
"""

from .context import MigrationContext
from .executor import SQLiteExecutor
from .manager import MigrationManager, RunState, validate_sequence
from .models import (
    AppliedMigration,
    Executor,
    Migration,
    MigrationRunResult,
    MigrationStatus,
    Scanner,
)
from .reporting import (
    log_current_schema_version,
    log_pending_migrations,
    log_run_result,
)
from .scanner import FileScanner

__all__ = [
    "AppliedMigration",
    "Executor",
    "FileScanner",
    "Migration",
    "MigrationContext",
    "MigrationManager",
    "MigrationRunResult",
    "MigrationStatus",
    "RunState",
    "SQLiteExecutor",
    "Scanner",
    "log_current_schema_version",
    "log_pending_migrations",
    "log_run_result",
    "validate_sequence",
]
