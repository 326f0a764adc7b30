"""
Rich console utilities for dual-mode CLI output.

Human Mode (--format text):
    - Rich spinners, colored tables and panels
    - ANSI colors and Unicode symbols

Agent Mode (--format json):
    - One structured JSON document on stdout per command
    - No ANSI codes or spinners

Quiet Mode (--quiet):
    - Tab-separated values, no decorations

Examples:
    >>> output_mode.format = "text"
    >>> with spinner("Scanning migrations..."):
    ...     migrations = FileScanner().scan_migrations("migrations")
    >>> success(f"Found {len(migrations)} migrations")

    >>> output_mode.format = "json"
    >>> success("Database is up to date")  # Buffers to JSON
    >>> output_mode.flush_json()           # Outputs JSON to stdout
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..migration.models import (
    AppliedMigration,
    Migration,
    MigrationRunResult,
    MigrationStatus,
)
from .time import to_milliseconds, utc_timestamp


class OutputMode:
    """
    Output mode configuration for dual-mode CLI.

    Attributes:
        format: Output format - "text" (human) or "json" (agent)
        quiet: If True, print tab-separated values only
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        """
        Initialize output mode.

        Raises:
            ValueError: If format_type is not "text" or "json"
        """
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """Add key-value pair to the JSON buffer (output later by flush_json)."""
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """
        Output buffered JSON to stdout and clear the buffer.

        No-op in human mode or when nothing was buffered.
        """
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()

    def reset(self) -> None:
        """Drop anything buffered by a previous command."""
        self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

# Global Rich console instances for human mode
console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


@contextmanager
def spinner(message: str):
    """
    Show a spinner while the block runs (human mode only).

    Examples:
        >>> with spinner("Applying migrations..."):
        ...     result = manager.run_migrations()
    """
    if output_mode.is_human() and not output_mode.quiet:
        with console.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    """Green checkmark in human mode; buffers status/message in agent mode."""
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """
    Print an error message.

    Human mode: Red X with message to stderr (also in quiet mode)
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {message}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        output_mode.add_json("warning", message)


def info(message: str) -> None:
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {message}")
    # Silent for agents and quiet mode


def print_banner(version: str) -> None:
    """Print the startup banner (human mode only)."""
    if not output_mode.is_human() or output_mode.quiet:
        return

    banner = f"""
[bold cyan]╔{"═" * 39}╗
║   Schema Migrator v{version:<18} ║
║   Versioned SQL migrations for SQLite ║
╚{"═" * 39}╝[/bold cyan]
"""

    console.print(banner)


def migration_to_dict(migration: Migration) -> dict:
    return {
        "version": migration.version,
        "description": migration.description,
        "file_path": migration.file_path,
        "checksum": migration.checksum,
    }


def applied_to_dict(applied: AppliedMigration) -> dict:
    return {
        "version": applied.version,
        "applied_at": utc_timestamp(applied.applied_at) if applied.applied_at else None,
        "execution_time_ms": to_milliseconds(applied.execution_time),
        "checksum": applied.checksum or None,
    }


def print_pending_table(migrations: list[Migration], title: str = "Pending Migrations") -> None:
    """
    Print migrations that have not been applied yet.

    Human mode: Rich table (version, description, file)
    Agent mode: Buffer as "pending" array
    Quiet mode: version<TAB>description<TAB>file_path per line
    """
    if output_mode.is_agent():
        output_mode.add_json("pending", [migration_to_dict(m) for m in migrations])
        return

    if output_mode.quiet:
        for m in migrations:
            print(f"{m.version}\t{m.description}\t{m.file_path}")
        return

    if not migrations:
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Version", style="cyan", no_wrap=True)
    table.add_column("Description", style="magenta")
    table.add_column("File", style="dim")

    for m in migrations:
        table.add_row(m.version, m.description, m.file_path)

    console.print(table)


def print_applied_table(
    applied: list[AppliedMigration], title: str = "Applied Migrations"
) -> None:
    """
    Print tracking table rows.

    Human mode: Rich table (version, applied at, duration, checksum prefix)
    Agent mode: Buffer as "applied" array
    Quiet mode: version<TAB>applied_at<TAB>execution_time_ms per line
    """
    rows = [applied_to_dict(m) for m in applied]

    if output_mode.is_agent():
        output_mode.add_json("applied", rows)
        return

    if output_mode.quiet:
        for row in rows:
            print(f"{row['version']}\t{row['applied_at'] or ''}\t{row['execution_time_ms']}")
        return

    if not rows:
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Version", style="cyan", no_wrap=True)
    table.add_column("Applied At (UTC)", style="magenta")
    table.add_column("Duration", justify="right", style="green")
    table.add_column("Checksum", style="dim")

    for row in rows:
        checksum = row["checksum"][:12] if row["checksum"] else "-"
        table.add_row(
            row["version"],
            row["applied_at"] or "[yellow]unknown[/yellow]",
            f"{row['execution_time_ms']} ms",
            checksum,
        )

    console.print(table)


def print_status(status: MigrationStatus) -> None:
    """
    Print a migration status summary.

    Human mode: Panel (green when up to date, yellow when migrations are pending)
    Agent mode: Buffer current_version / pending_count / up_to_date
    Quiet mode: current_version<TAB>pending_count
    """
    if output_mode.is_agent():
        output_mode.add_json("current_version", status.current_version or None)
        output_mode.add_json("pending_count", status.pending_count)
        output_mode.add_json("applied_count", len(status.applied_migrations))
        output_mode.add_json("up_to_date", status.is_up_to_date)
        return

    if output_mode.quiet:
        print(f"{status.current_version}\t{status.pending_count}")
        return

    summary_text = f"""
[bold]Current Version:[/bold] {status.current_version or "none (empty database)"}
[bold]Applied:[/bold] {len(status.applied_migrations)}
[bold]Pending:[/bold] {status.pending_count}
"""

    if status.is_up_to_date:
        border_style = "green"
        title = "[bold green]✓ Schema Up To Date[/bold green]"
    else:
        border_style = "yellow"
        title = "[bold yellow]⚠ Migrations Pending[/bold yellow]"

    console.print(
        Panel(summary_text.strip(), title=title, border_style=border_style, box=box.ROUNDED)
    )


def print_run_summary(result: MigrationRunResult, database: str) -> None:
    """
    Print the outcome of a migration run.

    Human mode: Panel listing applied versions and total time
    Agent mode: Buffer the run details and flush all JSON
    Quiet mode: one applied version per line
    """
    total_ms = to_milliseconds(result.total_time)

    if output_mode.is_agent():
        output_mode.add_json("database", database)
        output_mode.add_json("applied", [applied_to_dict(m) for m in result.applied])
        output_mode.add_json("applied_count", len(result.applied))
        output_mode.add_json("started_at", utc_timestamp(result.started_at))
        output_mode.add_json("total_time_ms", total_ms)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for version in result.applied_versions:
            print(version)
        return

    if not result.applied:
        success("Database is up to date, no migrations to apply")
        return

    lines = [f"[bold]Database:[/bold] {database}"]
    for m in result.applied:
        lines.append(f"  {m.version}  ({to_milliseconds(m.execution_time)} ms)")
    lines.append(f"[bold]Total Time:[/bold] {total_ms} ms")

    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold green]✓ Applied {len(result.applied)} Migrations[/bold green]",
            border_style="green",
            box=box.ROUNDED,
        )
    )
