"""
Configuration loader for Schema Migrator.

This module loads YAML configuration files and validates them with Pydantic
models, or builds the same models from command-line values.

Functions:
    load_config: Main entrypoint to load and validate migrator.config.yaml
    build_config: Build a MigratorConfig without a file (CLI --db/--dir)
    in_memory_test_config: Preset tuned for fast tests
    prepare_migration_dir: Create or check the migration directory
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from schema_migrator.exceptions import (
    ConfigFileNotFoundError,
    ConfigValidationError,
    FileSystemError,
)

from .constants import IN_MEMORY_DSN
from .schema import MigrationSettings, MigratorConfig


def load_config(config_path: str | Path) -> MigratorConfig:
    """
    Load migrator.config.yaml and validate it.

    Args:
        config_path: Path to the YAML file (relative or absolute)

    Returns:
        Validated MigratorConfig

    Raises:
        ConfigFileNotFoundError: If the file doesn't exist
        ConfigValidationError: If YAML is invalid, empty, or fails validation

    Example:
        >>> config = load_config("migrator.config.yaml")
        >>> config.migrations.directory
        './migrations'

    Note:
        Relative database and migration paths are resolved against the
        directory containing the config file, so the CLI behaves the same
        regardless of the working directory.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    try:
        config = MigratorConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Configuration validation failed in {config_path}:\n"
            + _format_validation_errors(e)
        ) from e

    return _resolve_relative_paths(config, config_path.parent)


def build_config(
    db_path: str | Path,
    migration_dir: str | Path,
    **migration_overrides,
) -> MigratorConfig:
    """
    Build a MigratorConfig from plain values.

    Args:
        db_path: SQLite database path or ":memory:"
        migration_dir: Directory holding migration files
        **migration_overrides: Any MigrationSettings field (e.g. max_retries=0)

    Returns:
        Validated MigratorConfig with default database PRAGMAs

    Raises:
        ConfigValidationError: If a value fails validation
    """
    raw_config = {
        "database": {"path": str(db_path)},
        "migrations": {"directory": str(migration_dir), **migration_overrides},
    }

    try:
        return MigratorConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            "Configuration validation failed:\n" + _format_validation_errors(e)
        ) from e


def in_memory_test_config(migration_dir: str | Path) -> MigratorConfig:
    """
    Configuration preset for tests: in-memory database, fast PRAGMAs.

    Uses a memory journal, synchronous OFF, a short busy timeout, a 30s
    per-file deadline and a single retry.
    """
    return MigratorConfig.model_validate(
        {
            "database": {
                "path": IN_MEMORY_DSN,
                "busy_timeout_ms": 5_000,
                "journal_mode": "MEMORY",
                "synchronous": "OFF",
                "cache_size": -1000,
            },
            "migrations": {
                "directory": str(migration_dir),
                "timeout_per_file_seconds": 30,
                "max_retries": 1,
            },
        }
    )


def prepare_migration_dir(settings: MigrationSettings) -> Path:
    """
    Make sure the migration directory exists.

    Creates it when create_dir_if_not_exists is set, otherwise fails if missing.

    Args:
        settings: Migration settings

    Returns:
        Path to the migration directory

    Raises:
        FileSystemError: If the directory is missing and may not be created,
                         or creating it fails
    """
    directory = Path(settings.directory)

    if directory.is_dir():
        return directory

    if not settings.create_dir_if_not_exists:
        raise FileSystemError(
            str(directory), "check directory", "migration directory does not exist"
        )

    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileSystemError(str(directory), "create directory", e) from e

    return directory


def _format_validation_errors(exc: ValidationError) -> str:
    error_messages = []
    for error in exc.errors():
        loc = ".".join(str(x) for x in error["loc"])
        error_messages.append(f"  - {loc}: {error['msg']}")
    return "\n".join(error_messages)


def _resolve_relative_paths(config: MigratorConfig, base_dir: Path) -> MigratorConfig:
    database = config.database
    migrations = config.migrations

    if not database.is_in_memory and not Path(database.path).is_absolute():
        database = database.model_copy(update={"path": str(base_dir / database.path)})

    if not Path(migrations.directory).is_absolute():
        migrations = migrations.model_copy(
            update={"directory": str(base_dir / migrations.directory)}
        )

    return config.model_copy(update={"database": database, "migrations": migrations})
