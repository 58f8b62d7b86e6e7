"""Tests for reading a live SQLite database."""

import sqlite3

import pytest

from schemashift.core.builder import build_schema
from schemashift.core.connection import DatabaseConnection
from schemashift.core.differ import compare
from schemashift.core.introspector import Introspector, introspect
from schemashift.core.sql_generator import generate
from schemashift.errors import IntrospectionError
from schemashift.managers.ledger import MigrationLedger
from schemashift.managers.migration import execute_sql_script
from schemashift.models import DatabaseSchema
from schemashift.parser import load_schema
from schemashift.providers import get_provider


@pytest.fixture
def provider():
    return get_provider("sqlite")


@pytest.fixture
def connection(provider):
    conn = DatabaseConnection(":memory:", provider)
    yield conn
    conn.close()


def push(connection, provider, source):
    desired = build_schema(load_schema(source), provider)
    execute_sql_script(connection, generate(compare(desired, DatabaseSchema(), provider), provider))
    return desired


class TestIntrospector:
    """Test catalog reads on SQLite."""

    def test_empty_database(self, connection):
        """Test an empty database has no tables."""
        schema = introspect(connection)

        assert schema.is_empty
        assert schema.tables == {}

    def test_ledger_is_hidden(self, connection):
        """Test the ledger table is never reported."""
        MigrationLedger(connection).ensure_table()

        assert Introspector(connection).list_tables() == []

    def test_users_table(self, connection, provider, users_schema):
        """Test columns, keys and unique constraints are read back."""
        push(connection, provider, users_schema)

        table = introspect(connection).tables["users"]

        assert list(table.columns) == ["id", "email", "name"]
        assert table.primary_key == ["id"]
        assert table.columns["id"].default == "autoincrement()"
        assert table.columns["id"].nullable is False
        assert table.columns["email"].unique is True
        assert table.columns["name"].nullable is True

        assert len(table.indexes) == 1
        assert table.indexes[0].unique
        assert table.indexes[0].constraint
        assert table.indexes[0].column_names == ["email"]

    def test_defaults_and_relations(self, connection, provider, blog_schema):
        """Test defaults, foreign keys and indexes are read back."""
        push(connection, provider, blog_schema)

        schema = introspect(connection)
        user = schema.tables["User"].columns
        assert user["active"].default == "true"
        assert user["createdAt"].default == "now()"

        post = schema.tables["Post"]
        assert post.columns["status"].default == '"draft"'
        assert post.columns["views"].default == "0"

        fk = post.foreign_keys[0]
        assert fk.name == "Post_authorId_fkey"
        assert fk.columns == ["authorId"]
        assert fk.referenced_table == "User"
        assert fk.referenced_columns == ["id"]
        assert fk.on_delete == "RESTRICT"
        assert fk.on_update == "CASCADE"

        index = next(i for i in post.indexes if i.name == "Post_title_authorId_idx")
        assert index.column_names == ["title", "authorId"]
        assert index.unique is False

    @pytest.mark.parametrize("fixture", ["users_schema", "blog_schema"])
    def test_round_trip(self, connection, provider, fixture, request):
        """Test the introspected schema equals the declared one."""
        desired = push(connection, provider, request.getfixturevalue(fixture))

        assert compare(desired, introspect(connection), provider).is_empty()

    def test_descending_index(self, connection, provider):
        """Test index sort order is read back."""
        push(
            connection,
            provider,
            "model T {\n  id Int @id\n  a Int\n  @@index([a(sort: Desc)])\n}",
        )

        index = introspect(connection).tables["T"].indexes[0]
        assert [(c.name, c.sort) for c in index.columns] == [("a", "DESC")]

    def test_failed_tables_are_reported(self, connection, provider, monkeypatch):
        """Test a table that cannot be read fails the whole introspection."""
        for name in ("a", "b", "c"):
            connection.execute(f'CREATE TABLE "{name}" ("id" INTEGER PRIMARY KEY)')
        read_table = provider.read_table

        def failing_read_table(conn, table_name):
            if table_name == "b":
                raise sqlite3.OperationalError("disk I/O error")
            return read_table(conn, table_name)

        monkeypatch.setattr(provider, "read_table", failing_read_table)

        with pytest.raises(IntrospectionError) as exc_info:
            Introspector(connection, provider).introspect()
        assert exc_info.value.failed_tables == ["b"]
        assert "b" in str(exc_info.value)
