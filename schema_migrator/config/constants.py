"""
Configuration constants for Schema Migrator.

Defaults shared by the config schema, the executor and the CLI.
"""

# Name of the version tracking table
DEFAULT_TABLE_NAME = "schema_migrations"

# Default configuration file looked up by the CLI
DEFAULT_CONFIG_FILENAME = "migrator.config.yaml"

# DSN that selects an in-memory SQLite database
IN_MEMORY_DSN = ":memory:"

# 30s lock wait before SQLite reports "database is locked"
DEFAULT_BUSY_TIMEOUT_MS = 30_000

# Negative means KiB; -2000 is roughly 2MB of page cache
DEFAULT_CACHE_SIZE = -2000

DEFAULT_TIMEOUT_PER_FILE_SECONDS = 300.0

DEFAULT_MAX_RETRIES = 3
