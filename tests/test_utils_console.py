"""
Tests for utils.console module - dual-mode CLI output utilities.

This module tests console output functions to ensure:
- OutputMode correctly manages format/quiet state
- Message helpers (success, error, warning, info) work in all modes
- Tables, status panels and run summaries adapt to modes
- JSON buffering and flushing works correctly in agent mode
- Quiet mode prints tab-separated values without decorations
"""

import json
from datetime import UTC, datetime, timedelta

import pytest

from schema_migrator.migration.models import (
    AppliedMigration,
    Migration,
    MigrationRunResult,
    MigrationStatus,
)
from schema_migrator.utils.console import (
    OutputMode,
    applied_to_dict,
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

# ========================================================================
# Fixtures
# ========================================================================


@pytest.fixture
def reset_output_mode():
    """Reset global output_mode to default state after each test."""
    original_format = output_mode.format
    original_quiet = output_mode.quiet
    output_mode.reset()

    yield

    output_mode.format = original_format
    output_mode.quiet = original_quiet
    output_mode.reset()


@pytest.fixture
def pending():
    return [
        Migration(
            "002", "create notes", "CREATE TABLE n (id INT);", "m/002_create_notes.sql", "c2"
        ),
        Migration(
            "003", "audit trigger", "CREATE TABLE a (id INT);", "m/003_audit.sql", "c3"
        ),
    ]


@pytest.fixture
def applied():
    return [
        AppliedMigration(
            "001",
            datetime(2025, 3, 4, 5, 6, 7, tzinfo=UTC),
            timedelta(milliseconds=12),
            "abcdef0123456789",
        ),
        AppliedMigration("002", None, timedelta(0), ""),
    ]


# ========================================================================
# OutputMode
# ========================================================================


class TestOutputMode:
    """Test OutputMode state handling."""

    def test_defaults(self):
        mode = OutputMode()

        assert mode.is_human()
        assert not mode.is_agent()
        assert mode.quiet is False

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid format"):
            OutputMode("xml")

    def test_flush_json_writes_and_clears(self, capsys):
        mode = OutputMode("json")
        mode.add_json("status", "success")
        mode.add_json("started_at", datetime(2025, 1, 1, tzinfo=UTC))

        mode.flush_json()

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "success"
        assert data["started_at"].startswith("2025-01-01")
        mode.flush_json()
        assert capsys.readouterr().out == ""

    def test_flush_json_noop_in_human_mode(self, capsys):
        mode = OutputMode("text")
        mode.add_json("status", "success")

        mode.flush_json()

        assert capsys.readouterr().out == ""

    def test_reset_drops_buffer(self, capsys):
        mode = OutputMode("json")
        mode.add_json("status", "error")

        mode.reset()
        mode.flush_json()

        assert capsys.readouterr().out == ""


# ========================================================================
# Message helpers
# ========================================================================


class TestMessages:
    """Test success/error/warning/info across modes."""

    def test_human_mode_prints(self, reset_output_mode, capsys):
        output_mode.format = "text"

        success("Applied 2 migrations")
        warning("Checksum verification disabled")
        info("Using migrator.config.yaml")
        error("Migration failed")

        captured = capsys.readouterr()
        assert "Applied 2 migrations" in captured.out
        assert "Checksum verification disabled" in captured.out
        assert "Using migrator.config.yaml" in captured.out
        assert "Migration failed" in captured.err

    def test_agent_mode_buffers(self, reset_output_mode, capsys):
        output_mode.format = "json"

        success("done")
        warning("careful")
        info("silent")

        assert capsys.readouterr().out == ""
        assert output_mode._json_buffer == {
            "status": "success",
            "message": "done",
            "warning": "careful",
        }

    def test_agent_mode_error(self, reset_output_mode):
        output_mode.format = "json"

        error("broken")

        assert output_mode._json_buffer["status"] == "error"
        assert output_mode._json_buffer["error"] == "broken"

    def test_quiet_mode_only_errors(self, reset_output_mode, capsys):
        output_mode.format = "text"
        output_mode.quiet = True

        success("hidden")
        warning("hidden")
        info("hidden")
        error("shown")

        captured = capsys.readouterr()
        assert "hidden" not in captured.out
        assert "shown" in captured.err

    def test_spinner_yields_none_outside_human_mode(self, reset_output_mode):
        output_mode.format = "json"

        with spinner("Working...") as status:
            assert status is None

    def test_banner_hidden_in_agent_mode(self, reset_output_mode, capsys):
        output_mode.format = "json"

        print_banner("1.2.3")

        assert capsys.readouterr().out == ""

    def test_banner_shows_version(self, reset_output_mode, capsys):
        output_mode.format = "text"

        print_banner("1.2.3")

        assert "1.2.3" in capsys.readouterr().out


# ========================================================================
# Tables
# ========================================================================


def test_applied_to_dict(applied):
    first, second = (applied_to_dict(m) for m in applied)

    assert first == {
        "version": "001",
        "applied_at": "2025-03-04T05:06:07Z",
        "execution_time_ms": 12,
        "checksum": "abcdef0123456789",
    }
    assert second["applied_at"] is None
    assert second["checksum"] is None


class TestPendingTable:
    """Test print_pending_table()."""

    def test_agent_mode(self, reset_output_mode, pending):
        output_mode.format = "json"

        print_pending_table(pending)

        assert [m["version"] for m in output_mode._json_buffer["pending"]] == ["002", "003"]

    def test_quiet_mode_tsv(self, reset_output_mode, pending, capsys):
        output_mode.quiet = True

        print_pending_table(pending)

        lines = capsys.readouterr().out.splitlines()
        assert lines == [
            "002\tcreate notes\tm/002_create_notes.sql",
            "003\taudit trigger\tm/003_audit.sql",
        ]

    def test_human_mode(self, reset_output_mode, pending, capsys):
        output_mode.format = "text"

        print_pending_table(pending, title="Pending")

        out = capsys.readouterr().out
        assert "002" in out
        assert "audit trigger" in out


class TestAppliedTable:
    """Test print_applied_table()."""

    def test_agent_mode(self, reset_output_mode, applied):
        output_mode.format = "json"

        print_applied_table(applied)

        assert output_mode._json_buffer["applied"][0]["execution_time_ms"] == 12

    def test_quiet_mode_tsv(self, reset_output_mode, applied, capsys):
        output_mode.quiet = True

        print_applied_table(applied)

        assert capsys.readouterr().out.splitlines() == [
            "001\t2025-03-04T05:06:07Z\t12",
            "002\t\t0",
        ]

    def test_human_mode_shows_unknown_time(self, reset_output_mode, applied, capsys):
        output_mode.format = "text"

        print_applied_table(applied)

        out = capsys.readouterr().out
        assert "abcdef012345" in out
        assert "unknown" in out


# ========================================================================
# Status and run summary
# ========================================================================


class TestPrintStatus:
    """Test print_status()."""

    def test_agent_mode(self, reset_output_mode, applied, pending):
        output_mode.format = "json"

        print_status(MigrationStatus("002", 2, applied, pending))

        assert output_mode._json_buffer == {
            "current_version": "002",
            "pending_count": 2,
            "applied_count": 2,
            "up_to_date": False,
        }

    def test_agent_mode_empty_database(self, reset_output_mode):
        output_mode.format = "json"

        print_status(MigrationStatus("", 0))

        assert output_mode._json_buffer["current_version"] is None
        assert output_mode._json_buffer["up_to_date"] is True

    def test_quiet_mode(self, reset_output_mode, capsys):
        output_mode.quiet = True

        print_status(MigrationStatus("003", 0))

        assert capsys.readouterr().out == "003\t0\n"

    def test_human_mode_pending(self, reset_output_mode, pending, capsys):
        output_mode.format = "text"

        print_status(MigrationStatus("001", 2, [], pending))

        assert "Migrations Pending" in capsys.readouterr().out


class TestPrintRunSummary:
    """Test print_run_summary()."""

    @pytest.fixture
    def result(self, applied):
        return MigrationRunResult(
            applied=applied,
            pending_before=2,
            started_at=datetime(2025, 3, 4, 5, 6, 0, tzinfo=UTC),
            total_time=timedelta(milliseconds=40),
        )

    def test_agent_mode_flushes_json(self, reset_output_mode, result, capsys):
        output_mode.format = "json"

        print_run_summary(result, "app.db")

        data = json.loads(capsys.readouterr().out)
        assert data["database"] == "app.db"
        assert data["applied_count"] == 2
        assert data["started_at"] == "2025-03-04T05:06:00Z"
        assert data["total_time_ms"] == 40

    def test_quiet_mode_lists_versions(self, reset_output_mode, result, capsys):
        output_mode.quiet = True

        print_run_summary(result, "app.db")

        assert capsys.readouterr().out == "001\n002\n"

    def test_human_mode_nothing_applied(self, reset_output_mode, capsys):
        output_mode.format = "text"
        empty = MigrationRunResult([], 0, datetime(2025, 1, 1, tzinfo=UTC), timedelta(0))

        print_run_summary(empty, "app.db")

        assert "up to date" in capsys.readouterr().out

    def test_human_mode_lists_applied(self, reset_output_mode, result, capsys):
        output_mode.format = "text"

        print_run_summary(result, "app.db")

        out = capsys.readouterr().out
        assert "Applied 2 Migrations" in out
        assert "001" in out
