"""Tests for the applied-migrations ledger."""

from pathlib import Path

import pytest

from schemashift.core.connection import DatabaseConnection
from schemashift.errors import MigrationError
from schemashift.managers.ledger import MigrationLedger
from schemashift.models import Migration
from schemashift.providers import SQLiteProvider
from schemashift.utils.sql import calculate_checksum


def make_migration(name, sql="SELECT 1;"):
    return Migration(name=name, path=Path(name), sql=sql, checksum=calculate_checksum(sql))


@pytest.fixture
def connection():
    conn = DatabaseConnection(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def ledger(connection):
    ledger = MigrationLedger(connection)
    ledger.ensure_table()
    return ledger


class TestMigrationLedger:
    """Test recording and reading ledger rows."""

    def test_ensure_table_is_idempotent(self, connection):
        """Test the ledger table is created once."""
        ledger = MigrationLedger(connection)
        ledger.ensure_table()
        ledger.ensure_table()

        rows = connection.fetch_all(
            "SELECT name FROM sqlite_master WHERE name = '_schemashift_migrations'"
        )
        assert rows == [("_schemashift_migrations",)]

    def test_custom_table_name(self, connection):
        """Test the ledger table name is configurable."""
        ledger = MigrationLedger(connection, "_history")
        assert ledger.get_entries() == []

        rows = connection.fetch_all("SELECT name FROM sqlite_master WHERE name = '_history'")
        assert len(rows) == 1

    def test_record_started_and_finished(self, ledger):
        """Test a finished entry counts as applied."""
        migration = make_migration("20240101000000_init")
        entry_id = ledger.record_started(migration)

        failed = ledger.get_failed()
        assert [e.migration_name for e in failed] == ["20240101000000_init"]
        assert ledger.get_applied() == []

        ledger.record_finished(entry_id, 3)

        applied = ledger.get_applied()
        assert len(applied) == 1
        entry = applied[0]
        assert entry.id == entry_id
        assert entry.checksum == migration.checksum
        assert entry.applied_steps_count == 3
        assert entry.started_at is not None
        assert entry.finished_at is not None
        assert ledger.get_failed() == []

    def test_record_failure_keeps_logs(self, ledger):
        """Test the error of a failed migration is stored."""
        entry_id = ledger.record_started(make_migration("20240101000000_init"))
        ledger.record_failure(entry_id, "no such table: users", 1)

        entry = ledger.get_failed()[0]
        assert entry.logs == "no such table: users"
        assert entry.applied_steps_count == 1

    def test_entries_in_application_order(self, ledger):
        """Test entries come back oldest first."""
        for name in ["20240101000000_a", "20240102000000_b", "20240103000000_c"]:
            ledger.record_finished(ledger.record_started(make_migration(name)), 1)

        assert [e.migration_name for e in ledger.get_applied()] == [
            "20240101000000_a",
            "20240102000000_b",
            "20240103000000_c",
        ]

    def test_mark_rolled_back(self, ledger):
        """Test a failed entry stops counting as failed once rolled back."""
        ledger.record_started(make_migration("20240101000000_init"))
        ledger.mark_rolled_back("20240101000000_init")

        assert ledger.get_failed() == []
        assert ledger.get_applied() == []
        assert ledger.get_entries()[0].rolled_back_at is not None

    def test_mark_rolled_back_requires_failure(self, ledger):
        """Test only failed migrations can be rolled back."""
        migration = make_migration("20240101000000_init")
        ledger.record_finished(ledger.record_started(migration), 1)

        with pytest.raises(MigrationError) as exc_info:
            ledger.mark_rolled_back(migration.name)
        assert "not in a failed state" in str(exc_info.value)

    def test_mark_applied(self, ledger):
        """Test a migration can be recorded without running it."""
        migration = make_migration("20240101000000_init")
        ledger.mark_applied(migration)

        applied = ledger.get_applied()
        assert [e.migration_name for e in applied] == [migration.name]
        assert applied[0].checksum == migration.checksum

        with pytest.raises(MigrationError) as exc_info:
            ledger.mark_applied(migration)
        assert "already recorded as applied" in str(exc_info.value)

    def test_mark_applied_resolves_failure(self, ledger):
        """Test marking a failed migration applied rolls back the failed row."""
        migration = make_migration("20240101000000_init")
        ledger.record_started(migration)

        ledger.mark_applied(migration)

        assert ledger.get_failed() == []
        assert len(ledger.get_applied()) == 1
        assert len(ledger.get_entries()) == 2

    def test_timestamps_follow_provider(self, ledger):
        """Test timestamps are stored timezone-aware unless the provider says naive."""
        ledger.record_started(make_migration("20240101000000_a"))
        assert ledger.get_entries()[0].started_at.tzinfo is not None

        class NaiveTimestampProvider(SQLiteProvider):
            naive_utc_timestamps = True

        with DatabaseConnection(":memory:", NaiveTimestampProvider()) as conn:
            naive = MigrationLedger(conn)
            naive.ensure_table()
            naive.record_started(make_migration("20240101000000_a"))
            assert naive.get_entries()[0].started_at.tzinfo is None
