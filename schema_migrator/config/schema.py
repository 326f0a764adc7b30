"""
Configuration schema models for Schema Migrator.

This module defines Pydantic models for validating and parsing the
migrator.config.yaml file. All models use Pydantic v2 field validators.

Models:
    DatabaseSettings: SQLite connection settings (path and PRAGMAs)
    MigrationSettings: Migration directory and engine behaviour
    MigratorConfig: Root configuration model (validates entire YAML)

Example YAML:
    database:
      path: ./data/app.db
      journal_mode: WAL
    migrations:
      directory: ./migrations
      timeout_per_file_seconds: 120
"""

import re
from typing import Literal

from pydantic import BaseModel, field_validator

from .constants import (
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_CACHE_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TABLE_NAME,
    DEFAULT_TIMEOUT_PER_FILE_SECONDS,
    IN_MEMORY_DSN,
)

# Tracking table names are interpolated into SQL, so only plain identifiers are allowed
_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DatabaseSettings(BaseModel):
    """
    SQLite database connection settings.

    Attributes:
        path: Database file path, or ":memory:" for an in-memory database
        busy_timeout_ms: How long to wait for locks held by other connections
        foreign_keys: Enable foreign key constraint checking
        journal_mode: SQLite journal mode
        synchronous: SQLite synchronous mode
        cache_size: Page cache size (negative values are KiB, positive are pages)
    """

    path: str
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    foreign_keys: bool = True
    journal_mode: Literal["DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"] = (
        "WAL"
    )
    synchronous: Literal["OFF", "NORMAL", "FULL", "EXTRA"] = "NORMAL"
    cache_size: int = DEFAULT_CACHE_SIZE

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate path is non-empty."""
        if not v or v.isspace():
            raise ValueError("database path cannot be empty")
        return v

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        """Validate busy timeout is not negative."""
        if v < 0:
            raise ValueError(f"busy_timeout_ms cannot be negative, got: {v}")
        return v

    @field_validator("journal_mode", "synchronous", mode="before")
    @classmethod
    def normalize_pragma_value(cls, v):
        """Accept lowercase PRAGMA values from YAML."""
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def is_in_memory(self) -> bool:
        return self.path == IN_MEMORY_DSN


class MigrationSettings(BaseModel):
    """
    Migration engine settings.

    Attributes:
        directory: Directory containing NNN_description.sql files
        enabled: When False, the CLI skips running migrations
        timeout_per_file_seconds: Deadline for a single migration's transaction
        max_retries: Extra attempts for migrations that hit a locked database
        verify_checksums: Fail when an applied migration's file was edited
        create_dir_if_not_exists: Create the directory instead of failing
        table_name: Name of the version tracking table
        atomic_record: Record the version inside the migration's own transaction
    """

    directory: str
    enabled: bool = True
    timeout_per_file_seconds: float = DEFAULT_TIMEOUT_PER_FILE_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    verify_checksums: bool = False
    create_dir_if_not_exists: bool = True
    table_name: str = DEFAULT_TABLE_NAME
    atomic_record: bool = False

    @field_validator("directory")
    @classmethod
    def validate_directory(cls, v: str) -> str:
        """Validate directory is non-empty."""
        if not v or v.isspace():
            raise ValueError("migrations directory cannot be empty")
        return v

    @field_validator("timeout_per_file_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"timeout_per_file_seconds must be positive, got: {v}")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate retry count is not negative."""
        if v < 0:
            raise ValueError(f"max_retries cannot be negative, got: {v}")
        return v

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Validate table name is a plain SQL identifier."""
        if not _IDENTIFIER_PATTERN.match(v):
            raise ValueError(
                f"table_name must be a plain SQL identifier "
                f"(letters, digits, underscore), got: {v!r}"
            )
        return v


class MigratorConfig(BaseModel):
    """
    Root configuration model for migrator.config.yaml.

    Attributes:
        database: SQLite connection settings
        migrations: Migration engine settings
    """

    database: DatabaseSettings
    migrations: MigrationSettings
