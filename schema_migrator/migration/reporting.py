"""
Host-side reporting helpers.

The manager never needs these; they exist for hosts that want the familiar
"current version / pending migrations" lines in their startup logs.

Example:
    >>> logger = get_logger("startup")
    >>> log_pending_migrations(manager, logger)
    >>> result = manager.run_migrations()
    >>> log_run_result(result, logger)
    >>> log_current_schema_version(manager, logger)
"""

import logging

from ..utils.logging import log_with_context
from ..utils.time import to_milliseconds
from .context import MigrationContext
from .manager import MigrationManager
from .models import MigrationRunResult

APPLIED_AT_DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def log_current_schema_version(
    manager: MigrationManager,
    logger: logging.Logger,
    ctx: MigrationContext | None = None,
) -> None:
    """
    Log the current schema version and whether migrations are pending.

    Raises:
        Whatever manager.get_migration_status() raises; the error is logged
        first
    """
    try:
        status = manager.get_migration_status(ctx)
    except Exception as e:
        logger.error(f"Failed to get migration status: {e}")
        raise

    if not status.current_version:
        logger.info("Database schema: No migrations applied (empty database)")
    else:
        logger.info(f"Database schema: Current version is {status.current_version}")

        current = next(
            (
                m
                for m in status.applied_migrations
                if m.version == status.current_version
            ),
            None,
        )
        if current is not None:
            applied_at = (
                current.applied_at.strftime(APPLIED_AT_DISPLAY_FORMAT)
                if current.applied_at
                else "unknown"
            )
            log_with_context(
                logger,
                logging.INFO,
                f"Current version {current.version} applied at {applied_at}",
                context={
                    "version": current.version,
                    "execution_time_ms": to_milliseconds(current.execution_time),
                },
            )

    if status.pending_count > 0:
        logger.info(
            f"Database schema: {status.pending_count} pending migrations available"
        )
    else:
        logger.info("Database schema: Up to date (no pending migrations)")


def log_pending_migrations(
    manager: MigrationManager,
    logger: logging.Logger,
    ctx: MigrationContext | None = None,
) -> None:
    """Log each pending migration with its file and checksum."""
    try:
        pending = manager.get_pending_migrations(ctx)
    except Exception as e:
        logger.error(f"Failed to get pending migrations: {e}")
        raise

    if not pending:
        logger.info("Migration status: No pending migrations - database is up to date")
        return

    logger.info(f"Migration status: {len(pending)} pending migrations found")
    for index, migration in enumerate(pending, start=1):
        log_with_context(
            logger,
            logging.INFO,
            f"  {index}. Version {migration.version}: {migration.description}",
            context={"file_path": migration.file_path, "checksum": migration.checksum},
        )


def log_run_result(result: MigrationRunResult, logger: logging.Logger) -> None:
    """Log a one-line summary of a completed run."""
    if not result.applied:
        logger.info("No pending migrations - database is up to date")
        return

    log_with_context(
        logger,
        logging.INFO,
        f"Applied {len(result.applied)} migrations "
        f"({', '.join(result.applied_versions)})",
        context={
            "started_at": result.started_at.isoformat(),
            "total_time_ms": to_milliseconds(result.total_time),
        },
    )
