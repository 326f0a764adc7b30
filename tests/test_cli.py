"""
Tests for CLI module - commands, output modes and exit codes.

This module tests the Typer CLI application end to end against real SQLite
files in tmp_path:

Commands:
    - up: Apply migrations (incl. --dry-run, disabled config, failures)
    - status / pending / history: Read-only inspection
    - validate: File checks without a database
    - main callback: Version flag and help output

Output Modes:
    - Human mode (--format text): Rich output with tables and panels
    - Agent mode (--format json): Valid JSON on stdout
    - Quiet mode (--quiet): Minimal tab-separated output

Exit Codes:
    - 0: Success
    - 1: Configuration error
    - 2: Database error
    - 3: Invalid migration files
    - 4: Migration failed
"""

import json
import logging
import shutil
import sqlite3
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from schema_migrator.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_DB_ERROR,
    EXIT_INVALID_MIGRATIONS,
    EXIT_MIGRATION_FAILED,
    EXIT_SUCCESS,
    app,
    exit_code_for,
)
from schema_migrator.exceptions import (
    ConfigValidationError,
    DatabaseError,
    DatabaseLockedError,
    DuplicateVersionError,
    FileSystemError,
    MigrationError,
    MigrationTimeoutError,
    VersionConflictError,
)
from schema_migrator.utils.console import output_mode

FIXTURE_MIGRATIONS = Path(__file__).parent / "fixtures" / "migrations"

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def cli_runner():
    """Return CliRunner for testing Typer apps."""
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_output_mode():
    """Reset global output_mode and root logging after each test."""
    original_format = output_mode.format
    original_quiet = output_mode.quiet
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level

    yield

    output_mode.format = original_format
    output_mode.quiet = original_quiet
    output_mode.reset()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def migration_dir(tmp_path):
    """Copy of the fixture migrations (001-003)."""
    directory = tmp_path / "migrations"
    shutil.copytree(FIXTURE_MIGRATIONS, directory)
    return directory


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "app.db"


@pytest.fixture
def db_args(db_path, migration_dir):
    return ["--db", str(db_path), "--dir", str(migration_dir)]


def table_names(db_path: Path) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    finally:
        conn.close()
    return {row[0] for row in rows}


def applied_versions(db_path: Path) -> list[str]:
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
    finally:
        conn.close()
    return [row[0] for row in rows]


# ============================================================================
# up
# ============================================================================


class TestUpCommand:
    """Test 'up' command."""

    def test_applies_all_migrations(self, cli_runner, db_args, db_path):
        result = cli_runner.invoke(app, ["up", *db_args])

        assert result.exit_code == EXIT_SUCCESS
        assert "Applied 3 Migrations" in result.output
        assert {"accounts", "notes", "note_audit", "schema_migrations"} <= table_names(db_path)
        assert applied_versions(db_path) == ["001", "002", "003"]

    def test_second_run_is_noop(self, cli_runner, db_args, db_path):
        cli_runner.invoke(app, ["up", *db_args])

        result = cli_runner.invoke(app, ["up", *db_args])

        assert result.exit_code == EXIT_SUCCESS
        assert "up to date" in result.output
        assert applied_versions(db_path) == ["001", "002", "003"]

    def test_json_output(self, cli_runner, db_args, db_path):
        result = cli_runner.invoke(app, ["up", *db_args, "--format", "json"])

        assert result.exit_code == EXIT_SUCCESS
        data = json.loads(result.stdout)
        assert data["database"] == str(db_path)
        assert data["applied_count"] == 3
        assert [m["version"] for m in data["applied"]] == ["001", "002", "003"]
        assert data["applied"][0]["checksum"]
        assert "\x1b[" not in result.stdout

    def test_quiet_output_lists_versions(self, cli_runner, db_args):
        result = cli_runner.invoke(app, ["up", *db_args, "--quiet"])

        assert result.exit_code == EXIT_SUCCESS
        assert result.stdout.splitlines() == ["001", "002", "003"]

    def test_applies_only_new_migrations(self, cli_runner, db_args, db_path, migration_dir):
        cli_runner.invoke(app, ["up", *db_args])
        (migration_dir / "004_add_account_display_name.sql").write_text(
            "ALTER TABLE accounts ADD COLUMN display_name TEXT;\n", encoding="utf-8"
        )

        result = cli_runner.invoke(app, ["up", *db_args, "--quiet"])

        assert result.exit_code == EXIT_SUCCESS
        assert result.stdout.splitlines() == ["004"]

    def test_dry_run_applies_nothing(self, cli_runner, db_args, db_path):
        result = cli_runner.invoke(app, ["up", *db_args, "--dry-run", "--format", "json"])

        assert result.exit_code == EXIT_SUCCESS
        data = json.loads(result.stdout)
        assert data["dry_run"] is True
        assert [m["version"] for m in data["pending"]] == ["001", "002", "003"]
        assert "accounts" not in table_names(db_path)
        assert "schema_migrations" not in table_names(db_path)

    def test_creates_missing_migration_dir(self, cli_runner, tmp_path, db_path):
        new_dir = tmp_path / "fresh" / "migrations"

        result = cli_runner.invoke(app, ["up", "--db", str(db_path), "--dir", str(new_dir)])

        assert result.exit_code == EXIT_SUCCESS
        assert new_dir.is_dir()

    def test_failing_migration_keeps_earlier_ones(
        self, cli_runner, db_args, db_path, migration_dir
    ):
        (migration_dir / "004_broken.sql").write_text(
            "CREATE TABLE broken (id INT);\nINSERT INTO nowhere VALUES (1);\n",
            encoding="utf-8",
        )

        result = cli_runner.invoke(app, ["up", *db_args])

        assert result.exit_code == EXIT_MIGRATION_FAILED
        assert "004" in result.output
        assert applied_versions(db_path) == ["001", "002", "003"]
        assert "broken" not in table_names(db_path)

    def test_failing_migration_json_error(self, cli_runner, db_args, migration_dir):
        (migration_dir / "004_broken.sql").write_text(
            "INSERT INTO nowhere VALUES (1);\n", encoding="utf-8"
        )

        result = cli_runner.invoke(app, ["up", *db_args, "--format", "json"])

        assert result.exit_code == EXIT_MIGRATION_FAILED
        assert '"error_type": "MigrationError"' in result.output
        assert '"operation": "execute migration"' in result.output

    def test_gap_in_sequence_is_invalid(self, cli_runner, db_args, db_path, migration_dir):
        (migration_dir / "002_create_notes.sql").unlink()

        result = cli_runner.invoke(app, ["up", *db_args])

        assert result.exit_code == EXIT_INVALID_MIGRATIONS
        assert "missing migration version 002" in result.output
        assert "accounts" not in table_names(db_path)

    def test_with_config_file(self, cli_runner, tmp_path, migration_dir):
        config_file = tmp_path / "migrator.config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "database": {"path": "data/app.db"},
                    "migrations": {"directory": "migrations", "atomic_record": True},
                }
            ),
            encoding="utf-8",
        )

        result = cli_runner.invoke(app, ["up", "--config", str(config_file)])

        assert result.exit_code == EXIT_SUCCESS
        assert applied_versions(tmp_path / "data" / "app.db") == ["001", "002", "003"]

    def test_disabled_in_config(self, cli_runner, tmp_path, migration_dir):
        config_file = tmp_path / "migrator.config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "database": {"path": "app.db"},
                    "migrations": {"directory": "migrations", "enabled": False},
                }
            ),
            encoding="utf-8",
        )

        result = cli_runner.invoke(app, ["up", "--config", str(config_file), "--format", "json"])

        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.stdout)["enabled"] is False
        assert not (tmp_path / "app.db").exists()


# ============================================================================
# status / pending / history
# ============================================================================


class TestInspectionCommands:
    """Test read-only commands."""

    def test_status_before_and_after(self, cli_runner, db_args):
        before = cli_runner.invoke(app, ["status", *db_args, "--format", "json"])
        cli_runner.invoke(app, ["up", *db_args])
        after = cli_runner.invoke(app, ["status", *db_args, "--format", "json"])

        assert before.exit_code == EXIT_SUCCESS
        before_data = json.loads(before.stdout)
        assert before_data["current_version"] is None
        assert before_data["pending_count"] == 3
        assert before_data["up_to_date"] is False

        after_data = json.loads(after.stdout)
        assert after_data["current_version"] == "003"
        assert after_data["pending_count"] == 0
        assert after_data["applied_count"] == 3
        assert after_data["up_to_date"] is True

    def test_status_quiet(self, cli_runner, db_args):
        cli_runner.invoke(app, ["up", *db_args])

        result = cli_runner.invoke(app, ["status", *db_args, "--quiet"])

        assert result.exit_code == EXIT_SUCCESS
        assert result.stdout == "003\t0\n"

    def test_status_human(self, cli_runner, db_args):
        result = cli_runner.invoke(app, ["status", *db_args])

        assert result.exit_code == EXIT_SUCCESS
        assert "Migrations Pending" in result.output

    def test_pending_quiet(self, cli_runner, db_args, migration_dir):
        result = cli_runner.invoke(app, ["pending", *db_args, "--quiet"])

        assert result.exit_code == EXIT_SUCCESS
        lines = result.stdout.splitlines()
        assert [line.split("\t")[0] for line in lines] == ["001", "002", "003"]
        assert lines[0].split("\t")[1] == "Create accounts table"

    def test_pending_after_up(self, cli_runner, db_args):
        cli_runner.invoke(app, ["up", *db_args])

        result = cli_runner.invoke(app, ["pending", *db_args, "--format", "json"])

        data = json.loads(result.stdout)
        assert data["pending"] == []
        assert data["status"] == "success"

    def test_history_json(self, cli_runner, db_args):
        cli_runner.invoke(app, ["up", *db_args])

        result = cli_runner.invoke(app, ["history", *db_args, "--format", "json"])

        assert result.exit_code == EXIT_SUCCESS
        applied = json.loads(result.stdout)["applied"]
        assert [m["version"] for m in applied] == ["001", "002", "003"]
        assert all(m["applied_at"].endswith("Z") for m in applied)

    @pytest.mark.parametrize("command", ["status", "pending", "history"])
    def test_read_only_commands_leave_database_untouched(
        self, cli_runner, db_args, db_path, command
    ):
        result = cli_runner.invoke(app, [command, *db_args, "--format", "json"])

        assert result.exit_code == EXIT_SUCCESS
        assert table_names(db_path) == set()

    def test_history_empty(self, cli_runner, db_args):
        result = cli_runner.invoke(app, ["history", *db_args])

        assert result.exit_code == EXIT_SUCCESS
        assert "No migrations applied yet" in result.output

    def test_unopenable_database(self, cli_runner, tmp_path, migration_dir):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")

        result = cli_runner.invoke(
            app, ["status", "--db", str(blocker / "app.db"), "--dir", str(migration_dir)]
        )

        assert result.exit_code == EXIT_DB_ERROR


# ============================================================================
# validate
# ============================================================================


class TestValidateCommand:
    """Test 'validate' command."""

    def test_valid_directory(self, cli_runner, migration_dir):
        result = cli_runner.invoke(
            app, ["validate", "--dir", str(migration_dir), "--format", "json"]
        )

        assert result.exit_code == EXIT_SUCCESS
        data = json.loads(result.stdout)
        assert data["valid"] is True
        assert data["migration_count"] == 3
        assert data["latest_version"] == "003"

    def test_valid_via_config(self, cli_runner, tmp_path, migration_dir):
        config_file = tmp_path / "migrator.config.yaml"
        config_file.write_text(
            yaml.dump({"database": {"path": "app.db"}, "migrations": {"directory": "migrations"}}),
            encoding="utf-8",
        )

        result = cli_runner.invoke(app, ["validate", "--config", str(config_file)])

        assert result.exit_code == EXIT_SUCCESS
        assert "3 migration files are valid" in result.output
        assert not (tmp_path / "app.db").exists()

    def test_gap_fails(self, cli_runner, migration_dir):
        (migration_dir / "002_create_notes.sql").unlink()

        result = cli_runner.invoke(app, ["validate", "--dir", str(migration_dir)])

        assert result.exit_code == EXIT_INVALID_MIGRATIONS
        assert "missing migration version 002" in result.output

    def test_bad_filename_fails(self, cli_runner, migration_dir):
        (migration_dir / "cleanup.sql").write_text("DELETE FROM notes;", encoding="utf-8")

        result = cli_runner.invoke(
            app, ["validate", "--dir", str(migration_dir), "--format", "json"]
        )

        assert result.exit_code == EXIT_INVALID_MIGRATIONS
        assert '"valid": false' in result.output
        assert '"file_path": "cleanup.sql"' in result.output

    def test_missing_directory_fails(self, cli_runner, tmp_path):
        result = cli_runner.invoke(app, ["validate", "--dir", str(tmp_path / "nope")])

        assert result.exit_code == EXIT_INVALID_MIGRATIONS


# ============================================================================
# Configuration errors
# ============================================================================


class TestConfigurationErrors:
    """Test option and config handling."""

    def test_no_configuration(self, cli_runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = cli_runner.invoke(app, ["status"])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "No configuration" in result.output

    def test_default_config_file_is_used(self, cli_runner, tmp_path, monkeypatch, migration_dir):
        (tmp_path / "migrator.config.yaml").write_text(
            yaml.dump({"database": {"path": "app.db"}, "migrations": {"directory": "migrations"}}),
            encoding="utf-8",
        )
        monkeypatch.chdir(tmp_path)

        result = cli_runner.invoke(app, ["up", "--quiet"])

        assert result.exit_code == EXIT_SUCCESS
        assert applied_versions(tmp_path / "app.db") == ["001", "002", "003"]

    def test_missing_config_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(app, ["up", "--config", str(tmp_path / "missing.yaml")])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Configuration file not found" in result.output

    def test_config_and_db_together(self, cli_runner, tmp_path, db_args):
        result = cli_runner.invoke(
            app, ["status", "--config", str(tmp_path / "x.yaml"), *db_args]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "not both" in result.output

    def test_db_without_dir(self, cli_runner, db_path):
        result = cli_runner.invoke(app, ["status", "--db", str(db_path)])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "must be given together" in result.output

    def test_invalid_format(self, cli_runner, db_args):
        result = cli_runner.invoke(app, ["status", *db_args, "--format", "xml"])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Invalid format" in result.output

    def test_config_error_json(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["up", "--config", str(tmp_path / "missing.yaml"), "--format", "json"]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert '"error_type": "configuration_error"' in result.output
        assert '"exit_code": 1' in result.output


# ============================================================================
# main callback
# ============================================================================


def test_version_flag(cli_runner):
    result = cli_runner.invoke(app, ["--version"])

    assert result.exit_code == EXIT_SUCCESS
    assert "schema-migrator" in result.output
    assert "version" in result.output


def test_no_command_shows_hint(cli_runner):
    result = cli_runner.invoke(app, [])

    assert result.exit_code == EXIT_SUCCESS
    assert "Use --help" in result.output
    assert "validate" in result.output


# ============================================================================
# exit_code_for()
# ============================================================================


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigValidationError("bad"), EXIT_CONFIG_ERROR),
        (DatabaseError("", "", "open database", "unable to open"), EXIT_DB_ERROR),
        (DatabaseLockedError("", "", "begin", "database is locked"), EXIT_DB_ERROR),
        (FileSystemError("m", "scan directory", "missing"), EXIT_INVALID_MIGRATIONS),
        (VersionConflictError("missing migration version 002"), EXIT_INVALID_MIGRATIONS),
        (
            MigrationError("001", "001_a.sql", "validate sequence", DuplicateVersionError("dup")),
            EXIT_INVALID_MIGRATIONS,
        ),
        (
            MigrationError("004", "004_x.sql", "execute migration", RuntimeError("boom")),
            EXIT_MIGRATION_FAILED,
        ),
        (
            MigrationError("004", "004_x.sql", "record migration", RuntimeError("boom")),
            EXIT_MIGRATION_FAILED,
        ),
        (MigrationTimeoutError("deadline exceeded"), EXIT_MIGRATION_FAILED),
    ],
)
def test_exit_code_for(exc, expected):
    assert exit_code_for(exc) == expected
