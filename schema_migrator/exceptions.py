"""
Custom exceptions for Schema Migrator.

This module provides a hierarchy of exceptions that enable type-safe error
handling throughout the migration engine. All exceptions inherit from the base
SchemaMigratorError for consistent catching.

Exception Hierarchy:
    SchemaMigratorError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   └── ConfigValidationError
    ├── FileSystemError
    ├── MigrationValidationError
    │   ├── InvalidMigrationFileError
    │   ├── InvalidVersionError
    │   ├── DuplicateVersionError
    │   └── ChecksumMismatchError
    ├── SequenceError
    │   ├── VersionConflictError
    │   └── VersionTableCorruptError
    ├── DatabaseError
    │   └── DatabaseLockedError
    ├── MigrationInterruptedError
    │   ├── MigrationCancelledError
    │   └── MigrationTimeoutError
    └── MigrationError (composite: wraps any of the above)

Usage:
    from schema_migrator.exceptions import MigrationError, SequenceError

    try:
        manager.run_migrations()
    except SequenceError as e:
        logger.error(f"Migration files are out of sequence: {e}")
        sys.exit(3)
    except MigrationError as e:
        logger.error(f"Migration {e.version} failed: {e}")
        sys.exit(4)
"""


class SchemaMigratorError(Exception):
    """
    Base exception for all Schema Migrator errors.

    Catching this class catches every error the engine raises on purpose.
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(SchemaMigratorError):
    """
    Base class for configuration-related errors.

    Should be caught and result in exit code 1 (configuration error).
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """
    Configuration file does not exist at the specified path.

    Example:
        raise ConfigFileNotFoundError("Configuration file not found: migrator.yaml")
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration file is invalid (YAML syntax or schema validation failed).

    Example:
        raise ConfigValidationError("migrations.directory: Field required")
    """

    pass


# ============================================================================
# Filesystem Errors
# ============================================================================


class FileSystemError(SchemaMigratorError):
    """
    A filesystem operation on the migration directory or a migration file failed.

    Attributes:
        path: File or directory path
        operation: What was being done ("scan directory", "read file", ...)
        error: Underlying error or reason

    Example:
        raise FileSystemError(
            "db/migrations", "scan directory", "migration directory does not exist"
        )
    """

    def __init__(self, path: str, operation: str, error: Exception | str):
        self.path = str(path)
        self.operation = operation
        self.error = error
        super().__init__(
            f"filesystem error during {operation} of {self.path}: {error}"
        )


# ============================================================================
# Validation Errors
# ============================================================================


class MigrationValidationError(SchemaMigratorError):
    """
    Base class for problems found in migration files before touching the database.
    """

    pass


class InvalidMigrationFileError(MigrationValidationError):
    """
    A migration file is malformed.

    Covers bad filenames, empty or comment-only content, unbalanced parentheses
    and unterminated string literals.
    """

    pass


class InvalidVersionError(MigrationValidationError):
    """A migration version is not a decimal number."""

    pass


class DuplicateVersionError(MigrationValidationError):
    """Two migration files resolve to the same version."""

    pass


class ChecksumMismatchError(MigrationValidationError):
    """An applied migration's file changed after it was applied."""

    pass


# ============================================================================
# Sequence Errors
# ============================================================================


class SequenceError(SchemaMigratorError):
    """
    Base class for migration sequence integrity violations.

    Raised before any mutating database call, so the run aborts with no
    side effects.
    """

    pass


class VersionConflictError(SequenceError):
    """
    Available versions have a gap, or an applied version has no file.

    Example:
        raise VersionConflictError("missing migration version 002 in sequence")
    """

    pass


class VersionTableCorruptError(SequenceError):
    """
    The tracking table holds a row that cannot be interpreted.

    Attributes:
        version: The offending version string from the tracking table
    """

    def __init__(self, message: str, version: str = ""):
        super().__init__(message)
        self.version = version


# ============================================================================
# Database Errors
# ============================================================================


class DatabaseError(SchemaMigratorError):
    """
    A database call made by the engine failed.

    Should be caught and result in exit code 2 (database error) unless it is
    wrapped in a MigrationError.

    Attributes:
        version: Migration version being processed (empty if not applicable)
        query: SQL text that failed (empty if not applicable)
        operation: Database operation ("execute statement 2", "commit transaction", ...)
        error: Underlying driver error
    """

    def __init__(
        self,
        version: str,
        query: str,
        operation: str,
        error: Exception | str,
    ):
        self.version = version
        self.query = query
        self.operation = operation
        self.error = error
        if version:
            message = f"database error in migration {version} during {operation}: {error}"
        else:
            message = f"database error during {operation}: {error}"
        super().__init__(message)


class DatabaseLockedError(DatabaseError):
    """
    The database was locked or busy. This error is retried.
    """

    pass


# ============================================================================
# Interruption Errors
# ============================================================================


class MigrationInterruptedError(SchemaMigratorError):
    """
    Base class for runs stopped by their MigrationContext.
    """

    pass


class MigrationCancelledError(MigrationInterruptedError):
    """The caller cancelled the run."""

    pass


class MigrationTimeoutError(MigrationInterruptedError):
    """The run or a single migration exceeded its deadline."""

    pass


# ============================================================================
# Composite Error
# ============================================================================


class MigrationError(SchemaMigratorError):
    """
    Wraps any engine error with the migration it concerns.

    Attributes:
        version: Migration version that caused the error (may be empty when the
                 version could not be parsed, e.g. a bad filename)
        file_path: Path or name of the migration file
        operation: Operation being performed ("validate filename", "execute migration", ...)
        error: Underlying exception

    Example:
        >>> err = MigrationError("002", "002_posts.sql", "execute migration",
        ...                      DatabaseError("002", "", "commit transaction", "disk I/O error"))
        >>> str(err)
        'migration 002 (002_posts.sql): execute migration: database error in migration 002 during commit transaction: disk I/O error'
        >>> err.matches(DatabaseError)
        True
    """

    def __init__(
        self,
        version: str,
        file_path: str,
        operation: str,
        error: Exception,
    ):
        self.version = version
        self.file_path = str(file_path)
        self.operation = operation
        self.error = error
        if version:
            message = f"migration {version} ({self.file_path}): {operation}: {error}"
        else:
            message = f"migration error ({self.file_path}): {operation}: {error}"
        super().__init__(message)
        self.__cause__ = error

    def matches(self, kind: type[BaseException]) -> bool:
        """
        Check whether the wrapped error (at any depth) is an instance of kind.

        Args:
            kind: Exception class to look for

        Returns:
            True if this error or any wrapped error is an instance of kind
        """
        if isinstance(self.error, kind):
            return True
        if isinstance(self.error, MigrationError):
            return self.error.matches(kind)
        return False
