"""
Data model and capability interfaces for the migration engine.

Key components:
- Migration: One versioned SQL file, as scanned from disk (immutable)
- AppliedMigration: One row of the version tracking table
- MigrationStatus: Derived view of applied vs pending migrations
- MigrationRunResult: What a single run_migrations() call did
- Scanner / Executor: Protocols the manager depends on, so tests can swap in
  in-memory doubles without a real filesystem or database

Versions are kept as the original digit strings for identity and display
("001" stays "001"), but are always compared by their integer value.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from .context import MigrationContext


def version_sort_key(version: str) -> tuple[int, int, str]:
    """
    Sort key ordering versions numerically, non-numeric strings last.

    Example:
        >>> sorted(["10", "9", "002"], key=version_sort_key)
        ['002', '9', '10']
    """
    if version.isascii() and version.isdigit():
        return (0, int(version), version)
    return (1, 0, version)


@dataclass(frozen=True)
class Migration:
    """
    A migration file parsed from the migration directory.

    Attributes:
        version: Version digits from the filename, verbatim (e.g. "001")
        description: From the "-- Description:" header, or the filename
        sql: Full file contents including comments, used for execution and checksum
        file_path: Path of the source file
        checksum: SHA-256 hex digest of sql

    Example:
        >>> m = Migration("002", "create posts", "CREATE TABLE posts (id INT);",
        ...               "migrations/002_create_posts.sql", "ab12...")
        >>> m.version_number
        2
    """

    version: str
    description: str
    sql: str
    file_path: str
    checksum: str = ""

    @property
    def version_number(self) -> int:
        return int(self.version)


@dataclass
class AppliedMigration:
    """
    A migration recorded in the version tracking table.

    Attributes:
        version: Version string as recorded
        applied_at: UTC time the row was written (None if unparseable)
        execution_time: Time spent executing the migration's statements
        checksum: Checksum recorded at apply time ("" if none was recorded)
    """

    version: str
    applied_at: datetime | None
    execution_time: timedelta = timedelta(0)
    checksum: str = ""


@dataclass
class MigrationStatus:
    """
    Current migration state, computed on demand and never cached.

    Attributes:
        current_version: Numerically highest applied version, "" if none
        pending_count: Number of migrations not yet applied
        applied_migrations: Tracking table rows in ascending version order
        pending_migrations: Pending migrations in ascending version order
    """

    current_version: str
    pending_count: int
    applied_migrations: list[AppliedMigration] = field(default_factory=list)
    pending_migrations: list[Migration] = field(default_factory=list)

    @property
    def is_up_to_date(self) -> bool:
        return self.pending_count == 0


@dataclass
class MigrationRunResult:
    """
    Outcome of a successful run_migrations() call.

    Attributes:
        applied: Migrations applied during this run, in execution order
        pending_before: Number of pending migrations when the run started
        started_at: UTC time the run started
        total_time: Wall-clock duration of the run
    """

    applied: list[AppliedMigration]
    pending_before: int
    started_at: datetime
    total_time: timedelta

    @property
    def applied_versions(self) -> list[str]:
        return [m.version for m in self.applied]


class Scanner(Protocol):
    """Reads migration files from a directory."""

    def scan_migrations(self, migration_dir: str) -> list[Migration]:
        """Return all migrations in ascending version order."""
        ...


class Executor(Protocol):
    """
    Applies migrations and maintains the version tracking table.

    Every method accepts an optional MigrationContext; None means no deadline
    and no cancellation.
    """

    def initialize_version_table(self, ctx: MigrationContext | None = None) -> None:
        ...

    def has_version_table(self, ctx: MigrationContext | None = None) -> bool:
        ...

    def execute_migration(
        self, migration: Migration, ctx: MigrationContext | None = None
    ) -> None:
        ...

    def apply_migration(
        self, migration: Migration, ctx: MigrationContext | None = None
    ) -> timedelta:
        ...

    def record_migration(
        self,
        version: str,
        execution_time: timedelta,
        ctx: MigrationContext | None = None,
        checksum: str | None = None,
    ) -> None:
        ...

    def is_version_applied(
        self, version: str, ctx: MigrationContext | None = None
    ) -> bool:
        ...

    def get_applied_versions(
        self, ctx: MigrationContext | None = None
    ) -> list[AppliedMigration]:
        ...
