"""
SQLite connection setup for Schema Migrator.

This module opens the database the migration engine runs against and applies
the PRAGMA settings from DatabaseSettings.

Connections are opened with isolation_level=None so that the executor owns
transaction boundaries explicitly (BEGIN / COMMIT / ROLLBACK) and DDL inside a
migration is covered by the same transaction as its DML.

Example usage:
    >>> from schema_migrator.config.loader import build_config
    >>> from schema_migrator.storage.db import get_connection
    >>> config = build_config("./data/app.db", "./migrations")
    >>> conn = get_connection(config.database)
    >>> conn.execute("PRAGMA journal_mode").fetchone()[0]
    'wal'

Security:
    - PRAGMA values come from validated Literal/int config fields only
    - Connections are closed if configuration fails
"""

import sqlite3
from pathlib import Path

from ..config.schema import DatabaseSettings
from ..exceptions import DatabaseError


def get_connection(settings: DatabaseSettings) -> sqlite3.Connection:
    """
    Open and configure a SQLite connection.

    Steps:
    1. Create the database file (and parent directory) unless in-memory
    2. Open the connection in autocommit mode
    3. Apply PRAGMAs
    4. Ping with SELECT 1

    Args:
        settings: Validated database settings

    Returns:
        Configured sqlite3.Connection. Caller is responsible for closing it.

    Raises:
        DatabaseError: If the file cannot be created, or opening, configuring
                       or pinging the database fails
    """
    if not settings.is_in_memory:
        create_database_file(settings.path)

    try:
        conn = sqlite3.connect(settings.path, isolation_level=None)
    except sqlite3.Error as e:
        raise DatabaseError("", "", "open database", e) from e

    try:
        configure_database(conn, settings)
        conn.execute("SELECT 1").fetchone()
    except DatabaseError:
        conn.close()
        raise
    except sqlite3.Error as e:
        conn.close()
        raise DatabaseError("", "SELECT 1", "ping database", e) from e

    return conn


def configure_database(conn: sqlite3.Connection, settings: DatabaseSettings) -> None:
    """
    Apply SQLite PRAGMA settings to an existing connection.

    Args:
        conn: Open SQLite connection
        settings: Validated database settings

    Raises:
        DatabaseError: If any PRAGMA fails
    """
    pragmas: list[tuple[str, str | int]] = [
        ("busy_timeout", settings.busy_timeout_ms),
        ("journal_mode", settings.journal_mode),
        ("synchronous", settings.synchronous),
    ]

    if settings.foreign_keys:
        pragmas.append(("foreign_keys", "ON"))

    if settings.cache_size != 0:
        pragmas.append(("cache_size", settings.cache_size))

    for name, value in pragmas:
        statement = f"PRAGMA {name} = {value}"
        try:
            conn.execute(statement)
        except sqlite3.Error as e:
            raise DatabaseError("", statement, f"set PRAGMA {name}", e) from e


def create_database_file(db_path: str | Path) -> None:
    """
    Create the database file and its parent directory if missing.

    Args:
        db_path: Filesystem path of the SQLite database

    Raises:
        DatabaseError: If the directory or file cannot be created
    """
    path = Path(db_path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            path.touch(mode=0o644)
    except OSError as e:
        raise DatabaseError("", "", f"create database file {path}", e) from e
