"""
Migration file discovery and parsing.

The scanner turns a directory of SQL files into an ordered list of Migration
records, rejecting anything that should never reach the database.

File naming convention:
    {version}_{description}.sql
    e.g. 001_create_users.sql, 002_add-email-index.sql

Rules:
- Subdirectories and files without the .sql extension are ignored
- A .sql file whose name does not match the convention fails the whole scan
- Empty, whitespace-only and comment-only files are rejected
- Parentheses must balance and string literals must close
- Two files with the same numeric version are rejected ("1" and "001" collide)
- Results are sorted by the integer value of the version

Example:
    >>> scanner = FileScanner()
    >>> migrations = scanner.scan_migrations("db/migrations")
    >>> [(m.version, m.description) for m in migrations]
    [('001', 'Create users table'), ('002', 'create posts')]
"""

import hashlib
import re
from pathlib import Path

from ..exceptions import (
    DuplicateVersionError,
    FileSystemError,
    InvalidMigrationFileError,
    InvalidVersionError,
    MigrationError,
    MigrationValidationError,
)
from .models import Migration, version_sort_key
from .sql_text import (
    check_parentheses,
    check_string_literals,
    clean_sql_for_validation,
)

MIGRATION_FILE_EXTENSION = ".sql"

MIGRATION_FILE_PATTERN = re.compile(r"^(\d+)_([A-Za-z0-9_-]+)\.sql$")

_DESCRIPTION_HEADER = re.compile(r"^--\s*Description:\s*(.*)$", re.IGNORECASE)


class FileScanner:
    """
    Scans a directory for migration files.

    Stateless; one instance can scan any number of directories.
    """

    def scan_migrations(self, migration_dir: str | Path) -> list[Migration]:
        """
        Scan migration_dir and return its migrations in ascending version order.

        Args:
            migration_dir: Directory containing migration files

        Returns:
            List of Migration, sorted by integer version

        Raises:
            FileSystemError: If the directory does not exist or cannot be read
            MigrationError: Wrapping a validation error for the offending file
                (bad filename, bad content, duplicate version)
        """
        directory = Path(migration_dir)

        if not directory.exists():
            raise FileSystemError(
                str(directory), "scan directory", "migration directory does not exist"
            )

        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise FileSystemError(str(directory), "read directory", e) from e

        migrations: list[Migration] = []
        seen: dict[int, str] = {}  # version number -> filename

        for entry in entries:
            if entry.is_dir() or not entry.name.endswith(MIGRATION_FILE_EXTENSION):
                continue

            try:
                self.validate_file_name(entry.name)
            except MigrationValidationError as e:
                raise MigrationError("", entry.name, "validate filename", e) from e

            migration = self.parse_migration_file(entry)

            number = migration.version_number
            if number in seen:
                error = DuplicateVersionError(
                    f"version {migration.version} found in both "
                    f"{seen[number]} and {entry.name}"
                )
                raise MigrationError(
                    migration.version, entry.name, "check duplicates", error
                ) from error
            seen[number] = entry.name

            migrations.append(migration)

        migrations.sort(key=lambda m: version_sort_key(m.version))
        return migrations

    def validate_file_name(self, filename: str) -> None:
        """
        Check a filename against {version}_{description}.sql.

        Raises:
            InvalidMigrationFileError: If the name does not match the pattern
            InvalidVersionError: If the version part is not a decimal number
        """
        match = MIGRATION_FILE_PATTERN.match(filename)
        if match is None:
            raise InvalidMigrationFileError(
                f"filename '{filename}' does not match pattern "
                f"'{{version}}_{{description}}.sql'"
            )

        version = match.group(1)
        # \d also matches non-ASCII digits, which int() may still accept
        if not version.isascii():
            raise InvalidVersionError(
                f"version '{version}' in filename '{filename}' is not a valid number"
            )

    def parse_migration_file(self, file_path: str | Path) -> Migration:
        """
        Read and validate a single migration file.

        Args:
            file_path: Path to the .sql file

        Returns:
            Parsed Migration

        Raises:
            FileSystemError: If the file cannot be read
            MigrationError: If the filename or content is invalid
        """
        path = Path(file_path)

        try:
            self.validate_file_name(path.name)
        except MigrationValidationError as e:
            raise MigrationError("", str(path), "validate filename", e) from e

        match = MIGRATION_FILE_PATTERN.match(path.name)
        version, filename_description = match.group(1), match.group(2)

        try:
            # Decoded from bytes so newlines are kept as written (checksum stability)
            sql = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileSystemError(str(path), "read file", e) from e

        if not sql.strip():
            error = InvalidMigrationFileError("migration file is empty")
            raise MigrationError(version, str(path), "validate content", error) from error

        try:
            validate_sql_syntax(sql)
        except InvalidMigrationFileError as e:
            raise MigrationError(version, str(path), "validate SQL syntax", e) from e

        description = extract_description(sql) or filename_description.replace("_", " ")

        return Migration(
            version=version,
            description=description,
            sql=sql,
            file_path=str(path),
            checksum=calculate_checksum(sql),
        )


def validate_sql_syntax(sql: str) -> None:
    """
    Basic sanity checks on migration SQL.

    Raises:
        InvalidMigrationFileError: If nothing executable remains after removing
            comments, parentheses are unbalanced, or a string literal is
            unterminated
    """
    if not clean_sql_for_validation(sql):
        raise InvalidMigrationFileError(
            "no SQL statements found after removing comments"
        )

    check_string_literals(sql)
    check_parentheses(sql)


def extract_description(content: str) -> str:
    """
    Find a "-- Description: ..." line in the file's leading comment block.

    The header may start with a "-- Migration: <filename>" line; scanning
    stops at the first non-comment line.

    Returns:
        The description, or "" if the header has none
    """
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if not line.startswith("--"):
            break

        match = _DESCRIPTION_HEADER.match(line)
        if match and match.group(1).strip():
            return match.group(1).strip()

    return ""


def calculate_checksum(content: str) -> str:
    """SHA-256 hex digest of the raw file content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
