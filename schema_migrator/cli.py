"""
CLI entrypoint for Schema Migrator.

Provides a dual-mode command-line interface with:
- Human-friendly output: Rich spinners, tables, panels, colored text
- Agent-friendly output: Structured JSON for automation
- Quiet mode: Tab-separated minimal output for shell scripts

Commands:
    up: Apply pending migrations
    status: Show current version and pending migrations
    pending: List pending migrations without applying them
    history: List applied migrations
    validate: Check migration files without touching a database

Exit codes:
    0: Success
    1: Configuration error (missing or invalid YAML, bad options)
    2: Database error (cannot open SQLite, tracking table unreadable)
    3: Invalid migration files (bad names, bad SQL, duplicates, gaps)
    4: Migration failed (a migration could not be applied or recorded)

Examples:
    # Apply migrations using a config file
    schema-migrator up --config migrator.config.yaml

    # Without a config file
    schema-migrator up --db app.db --dir migrations

    # Agent-friendly JSON output
    schema-migrator status --db app.db --dir migrations --format json
"""

from contextlib import closing
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from schema_migrator.config.constants import DEFAULT_CONFIG_FILENAME
from schema_migrator.config.loader import (
    build_config,
    load_config,
    prepare_migration_dir,
)
from schema_migrator.config.schema import MigratorConfig
from schema_migrator.exceptions import (
    ConfigurationError,
    DatabaseError,
    FileSystemError,
    MigrationError,
    MigrationInterruptedError,
    MigrationValidationError,
    SchemaMigratorError,
    SequenceError,
)
from schema_migrator.migration.context import MigrationContext
from schema_migrator.migration.executor import SQLiteExecutor
from schema_migrator.migration.manager import MigrationManager, validate_sequence
from schema_migrator.migration.scanner import FileScanner
from schema_migrator.storage.db import get_connection
from schema_migrator.utils.console import (
    error,
    info,
    output_mode,
    print_applied_table,
    print_banner,
    print_pending_table,
    print_run_summary,
    print_status,
    spinner,
    success,
    warning,
)
from schema_migrator.utils.logging import get_logger, setup_logging

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1  # Config missing or invalid
EXIT_DB_ERROR = 2  # Database could not be opened or queried
EXIT_INVALID_MIGRATIONS = 3  # Migration files failed validation
EXIT_MIGRATION_FAILED = 4  # A migration failed to apply

# Operations after which a MigrationError means the database was touched
_RUN_OPERATIONS = ("execute migration", "record migration")

app = typer.Typer(
    name="schema-migrator",
    help="Apply versioned SQL migrations to SQLite databases",
    add_completion=False,
)

# Shared options
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help=f"Path to YAML configuration file (default: ./{DEFAULT_CONFIG_FILENAME} if present)",
    dir_okay=False,
)
DB_OPTION = typer.Option(
    None,
    "--db",
    help="SQLite database path (used with --dir instead of --config)",
)
DIR_OPTION = typer.Option(
    None,
    "--dir",
    "-d",
    help="Migration directory (used with --db instead of --config)",
    file_okay=False,
)
FORMAT_OPTION = typer.Option(
    "text",
    "--format",
    "-f",
    help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
)
QUIET_OPTION = typer.Option(
    False,
    "--quiet",
    "-q",
    help="Minimal output (tab-separated values)",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Enable debug logging",
)


@app.command()
def up(
    config: Path = CONFIG_OPTION,
    db: str = DB_OPTION,
    directory: Path = DIR_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
    timeout: float = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Abort the run if it takes longer than this many seconds",
        min=0.0,
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show pending migrations without applying them",
    ),
):
    """
    Apply all pending migrations in ascending version order.

    Each migration runs in its own transaction. The first failure stops the
    run; migrations applied before it stay applied.

    Exit codes:
      0: All pending migrations applied (or none were pending)
      1: Configuration error
      2: Database error
      3: Invalid migration files
      4: A migration failed

    Examples:
      schema-migrator up --config migrator.config.yaml
      schema-migrator up --db app.db --dir migrations --dry-run
      schema-migrator up --db app.db --dir migrations --format json
    """
    _setup_output(format, quiet, verbose)
    print_banner(_read_version())

    runtime_config = _resolve_config(config, db, directory)

    if not runtime_config.migrations.enabled:
        warning("Migrations are disabled in configuration, nothing to do")
        if output_mode.is_agent():
            output_mode.add_json("enabled", False)
            output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    ctx = MigrationContext(timeout=timeout)

    try:
        prepare_migration_dir(runtime_config.migrations)

        with closing(_open_connection(runtime_config)) as conn:
            manager = _build_manager(runtime_config, conn)

            if dry_run:
                with spinner("Checking pending migrations..."):
                    pending = manager.get_pending_migrations(ctx)
                if pending:
                    info(f"{len(pending)} migrations would be applied (dry run)")
                else:
                    success("Database is up to date, no migrations to apply")
                if output_mode.is_agent():
                    output_mode.add_json("dry_run", True)
                print_pending_table(pending, title="Migrations To Apply")
                output_mode.flush_json()
                raise typer.Exit(EXIT_SUCCESS)

            with spinner("Applying migrations..."):
                result = manager.run_migrations(ctx)

    except typer.Exit:
        # Re-raise typer.Exit to avoid catching it in generic Exception handler
        raise
    except SchemaMigratorError as e:
        _fail_with(e, verbose)

    print_run_summary(result, runtime_config.database.path)
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def status(
    config: Path = CONFIG_OPTION,
    db: str = DB_OPTION,
    directory: Path = DIR_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    Show the current schema version and pending migrations.

    Examples:
      schema-migrator status --config migrator.config.yaml
      schema-migrator status --db app.db --dir migrations --format json
    """
    _setup_output(format, quiet, verbose)
    runtime_config = _resolve_config(config, db, directory)

    try:
        with closing(_open_connection(runtime_config)) as conn:
            manager = _build_manager(runtime_config, conn)
            with spinner("Reading migration status..."):
                migration_status = manager.get_migration_status()
    except SchemaMigratorError as e:
        _fail_with(e, verbose)

    print_status(migration_status)
    if not output_mode.quiet:
        print_applied_table(migration_status.applied_migrations)
        print_pending_table(migration_status.pending_migrations)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def pending(
    config: Path = CONFIG_OPTION,
    db: str = DB_OPTION,
    directory: Path = DIR_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    List migrations that have not been applied yet.

    Runs the same validation as 'up' but never executes a migration.
    """
    _setup_output(format, quiet, verbose)
    runtime_config = _resolve_config(config, db, directory)

    try:
        with closing(_open_connection(runtime_config)) as conn:
            manager = _build_manager(runtime_config, conn)
            with spinner("Checking pending migrations..."):
                pending_migrations = manager.get_pending_migrations()
    except SchemaMigratorError as e:
        _fail_with(e, verbose)

    if pending_migrations:
        info(f"{len(pending_migrations)} pending migrations")
    else:
        success("No pending migrations, database is up to date")
    print_pending_table(pending_migrations)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def history(
    config: Path = CONFIG_OPTION,
    db: str = DB_OPTION,
    directory: Path = DIR_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    List applied migrations with their apply time and duration.
    """
    _setup_output(format, quiet, verbose)
    runtime_config = _resolve_config(config, db, directory)

    try:
        with closing(_open_connection(runtime_config)) as conn:
            manager = _build_manager(runtime_config, conn)
            applied = manager.list_applied_migrations()
    except SchemaMigratorError as e:
        _fail_with(e, verbose)

    if not applied:
        info("No migrations applied yet")
    print_applied_table(applied)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def validate(
    config: Path = CONFIG_OPTION,
    directory: Path = DIR_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    Validate migration files without connecting to a database.

    Checks:
    - Filenames follow {version}_{description}.sql
    - Files are not empty and contain SQL outside comments
    - Parentheses balance and string literals are closed
    - Versions are unique and have no gaps

    Useful for CI/CD pipelines before deploying.

    Exit codes:
      0: All migration files are valid
      1: Configuration error
      3: Invalid migration files
    """
    _setup_output(format, quiet, verbose)

    if directory is not None:
        migration_dir = directory
    else:
        migration_dir = Path(_resolve_config(config, None, None).migrations.directory)

    try:
        with spinner("Validating migration files..."):
            migrations = FileScanner().scan_migrations(migration_dir)
            validate_sequence(migrations, [])
    except SchemaMigratorError as e:
        if output_mode.is_agent():
            output_mode.add_json("valid", False)
        _fail_with(e, verbose)

    success(f"{len(migrations)} migration files are valid")
    if output_mode.is_agent():
        output_mode.add_json("valid", True)
        output_mode.add_json("migration_count", len(migrations))
        output_mode.add_json(
            "latest_version", migrations[-1].version if migrations else None
        )
    print_pending_table(migrations, title="Migration Files")
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    Schema Migrator - versioned SQL migrations for SQLite.

    Use 'schema-migrator COMMAND --help' for detailed command documentation.
    """
    if version:
        from rich.console import Console

        console = Console()
        console.print(f"[bold cyan]schema-migrator[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        from rich.console import Console

        console = Console()
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Commands:")
        console.print("  up        Apply pending migrations")
        console.print("  status    Show current version and pending migrations")
        console.print("  pending   List pending migrations")
        console.print("  history   List applied migrations")
        console.print("  validate  Check migration files without a database")


def exit_code_for(exc: SchemaMigratorError) -> int:
    """
    Map an engine error to a CLI exit code.

    A MigrationError raised while executing or recording a migration means the
    run failed part-way; any other MigrationError comes from scanning or
    validation, before the database was changed.
    """
    if isinstance(exc, ConfigurationError):
        return EXIT_CONFIG_ERROR
    if isinstance(exc, MigrationError) and exc.operation in _RUN_OPERATIONS:
        return EXIT_MIGRATION_FAILED
    if isinstance(exc, MigrationInterruptedError):
        return EXIT_MIGRATION_FAILED
    if isinstance(exc, DatabaseError):
        return EXIT_DB_ERROR
    if isinstance(
        exc, (FileSystemError, MigrationValidationError, SequenceError, MigrationError)
    ):
        return EXIT_INVALID_MIGRATIONS
    return EXIT_MIGRATION_FAILED


def _setup_output(format: str, quiet: bool, verbose: bool) -> None:
    if format not in ("text", "json"):
        output_mode.format = "text"
        _fail(
            f"Invalid format: {format}. Must be 'text' or 'json'",
            EXIT_CONFIG_ERROR,
            "configuration_error",
        )

    output_mode.format = format
    output_mode.quiet = quiet
    output_mode.reset()

    # Info-level JSON logs on stderr only with --verbose, so stdout stays parseable
    setup_logging(verbose=verbose, quiet_logs=not verbose)


def _resolve_config(
    config: Path | None, db: str | None, directory: Path | None
) -> MigratorConfig:
    """Load config from --config, --db/--dir, or the default config file."""
    try:
        if config is not None:
            if db is not None or directory is not None:
                raise ConfigurationError("Use either --config or --db/--dir, not both")
            return load_config(config)

        if db is not None or directory is not None:
            if db is None or directory is None:
                raise ConfigurationError("--db and --dir must be given together")
            return build_config(db, directory)

        default_path = Path(DEFAULT_CONFIG_FILENAME)
        if default_path.is_file():
            return load_config(default_path)

        raise ConfigurationError(
            f"No configuration: pass --config, or --db and --dir "
            f"(or create ./{DEFAULT_CONFIG_FILENAME})"
        )
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG_ERROR, "configuration_error")


def _open_connection(runtime_config: MigratorConfig):
    with spinner("Opening database..."):
        return get_connection(runtime_config.database)


def _build_manager(runtime_config: MigratorConfig, conn) -> MigrationManager:
    settings = runtime_config.migrations
    executor = SQLiteExecutor(
        conn,
        table_name=settings.table_name,
        max_retries=settings.max_retries,
    )
    return MigrationManager(
        FileScanner(),
        executor,
        settings.directory,
        logger=get_logger("migration"),
        timeout_per_file=settings.timeout_per_file_seconds,
        verify_checksums=settings.verify_checksums,
        atomic_record=settings.atomic_record,
    )


def _fail_with(exc: SchemaMigratorError, verbose: bool) -> None:
    if output_mode.is_agent() and isinstance(exc, MigrationError):
        output_mode.add_json("version", exc.version or None)
        output_mode.add_json("file_path", exc.file_path)
        output_mode.add_json("operation", exc.operation)

    if verbose:
        import traceback

        traceback.print_exc()

    _fail(str(exc), exit_code_for(exc), type(exc).__name__)


def _fail(message: str, code: int, error_type: str) -> None:
    error(message)
    if output_mode.is_agent():
        output_mode.add_json("error_type", error_type)
        output_mode.add_json("exit_code", code)
        output_mode.flush_json()
    raise typer.Exit(code)


def _read_version() -> str:
    """
    Read version from package metadata (pyproject.toml).

    Returns:
        Version string (e.g., "0.1.0")
    """
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("schema-migrator")
    except PackageNotFoundError:
        return "0.1.0"


if __name__ == "__main__":
    app()
