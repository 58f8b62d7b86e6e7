"""Tests for database connection management."""

import sqlite3

import pytest

from schemashift.core.connection import DatabaseConnection
from schemashift.errors import ConnectivityError, UnsupportedProviderError
from schemashift.providers import PostgreSQLProvider
from schemashift.providers.sqlite import sqlite_path


class TestSqlitePath:
    """Test SQLite URL resolution."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("file:./dev.db", "./dev.db"),
            ("file:dev.db?connection_limit=1", "dev.db"),
            ("sqlite:///tmp/app.db", "/tmp/app.db"),
            ("sqlite://app.db", "app.db"),
            (":memory:", ":memory:"),
            ("file::memory:", ":memory:"),
            ("file:my%20db.db", "my db.db"),
        ],
    )
    def test_sqlite_path(self, url, expected):
        """Test URLs map to sqlite3 paths."""
        assert sqlite_path(url) == expected


class TestDatabaseConnection:
    """Test the SQLite connection wrapper."""

    def test_connection_creation(self, temp_dir):
        """Test connecting creates the database file and its directory."""
        db_path = temp_dir / "nested" / "dev.db"
        conn = DatabaseConnection(f"file:{db_path}")

        assert db_path.exists()
        assert conn.provider.name == "sqlite"
        conn.close()

    def test_foreign_keys_enabled(self, temp_dir):
        """Test foreign key enforcement is on."""
        with DatabaseConnection(f"file:{temp_dir / 'dev.db'}") as conn:
            assert conn.fetch_all("PRAGMA foreign_keys") == [(1,)]

    def test_execute_and_fetch(self):
        """Test statements and parameterized queries."""
        with DatabaseConnection(":memory:") as conn:
            conn.execute("CREATE TABLE t (id INTEGER, name TEXT)")
            conn.execute("INSERT INTO t VALUES (?, ?)", (1, "a"))

            assert conn.fetch_all("SELECT id, name FROM t") == [(1, "a")]
            assert conn.fetch_all("SELECT name FROM t WHERE id = ?", (2,)) == []

    def test_transaction_commit(self):
        """Test a successful block is committed."""
        with DatabaseConnection(":memory:") as conn:
            conn.execute("CREATE TABLE t (id INTEGER)")
            with conn.transaction():
                conn.execute("INSERT INTO t VALUES (1)")

            assert conn.fetch_all("SELECT COUNT(*) FROM t") == [(1,)]

    def test_transaction_rollback(self):
        """Test DDL and data are rolled back when the block raises."""
        with DatabaseConnection(":memory:") as conn:
            conn.execute("CREATE TABLE t (id INTEGER)")

            with pytest.raises(sqlite3.OperationalError):
                with conn.transaction():
                    conn.execute("INSERT INTO t VALUES (1)")
                    conn.execute("CREATE TABLE u (id INTEGER)")
                    conn.execute("SELECT * FROM missing")

            assert conn.fetch_all("SELECT COUNT(*) FROM t") == [(0,)]
            tables = conn.fetch_all("SELECT name FROM sqlite_master WHERE name = 'u'")
            assert tables == []

    def test_error_class(self):
        """Test the driver error class is exposed for callers."""
        with DatabaseConnection(":memory:") as conn:
            assert conn.error_class is sqlite3.Error
            assert conn.is_memory

    def test_closed_connection(self):
        """Test using a closed connection raises."""
        conn = DatabaseConnection(":memory:")
        conn.close()

        with pytest.raises(RuntimeError):
            conn.execute("SELECT 1")

    def test_unknown_scheme(self):
        """Test an unrecognized URL is rejected."""
        with pytest.raises(UnsupportedProviderError):
            DatabaseConnection("oracle://localhost/app")

    def test_unreachable_postgresql(self):
        """Test a refused connection is reported as a connectivity error."""
        pytest.importorskip("psycopg2")

        with pytest.raises(ConnectivityError):
            DatabaseConnection(
                "postgresql://nobody@127.0.0.1:1/none?connect_timeout=1",
                PostgreSQLProvider(),
            )
