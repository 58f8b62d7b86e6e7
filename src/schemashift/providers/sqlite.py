"""SQLite provider."""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import unquote

from schemashift.models.change import AlterationStrategy, ColumnChange, TableAlteration
from schemashift.models.schema import (
    ColumnInfo,
    ForeignKeyInfo,
    IndexColumn,
    IndexInfo,
    TableInfo,
)
from schemashift.providers.base import Provider, parse_default

_INTROSPECTION_QUERIES = {
    "tables": """
        SELECT name FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
    """,
    "table_sql": "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?",
    "columns": "PRAGMA table_info({table})",
    "indexes": "PRAGMA index_list({table})",
    "index_columns": "PRAGMA index_xinfo({index})",
    "foreign_keys": "PRAGMA foreign_key_list({table})",
}


# Custom datetime adapter and converter for SQLite
def adapt_datetime(dt):
    """Convert datetime to ISO 8601 string."""
    return dt.isoformat()


def convert_datetime(val):
    """Convert ISO 8601 string to datetime."""
    return datetime.fromisoformat(val.decode())


# Register the adapter and converter
sqlite3.register_adapter(datetime, adapt_datetime)
sqlite3.register_converter("TIMESTAMP", convert_datetime)
sqlite3.register_converter("DATETIME", convert_datetime)


def sqlite_path(url: str) -> str:
    """Resolve a SQLite connection URL to a path for sqlite3.connect.

    Accepts ``file:./dev.db``, ``sqlite:///abs/path.db``, ``sqlite://rel.db``
    and ``:memory:``; any query string is ignored.
    """
    if url in (":memory:", "sqlite://:memory:", "file::memory:"):
        return ":memory:"
    if url.startswith("file:"):
        path = url[len("file:"):]
    elif url.startswith("sqlite://"):
        path = url[len("sqlite://"):]
    elif url.startswith("sqlite:"):
        path = url[len("sqlite:"):]
    else:
        path = url
    return unquote(path.split("?", 1)[0])


class SQLiteProvider(Provider):
    """SQLite 3.35 and later.

    SQLite cannot alter columns, primary keys or foreign keys in place, so
    those alterations rebuild the table: create ``new_<table>``, copy the
    shared columns, drop the old table and rename the new one.
    """

    name = "sqlite"

    scalar_types = {
        "String": "TEXT",
        "Int": "INTEGER",
        "BigInt": "BIGINT",
        "Float": "REAL",
        "Decimal": "DECIMAL",
        "Boolean": "BOOLEAN",
        "DateTime": "DATETIME",
        "Json": "TEXT",
        "Bytes": "BLOB",
    }

    native_types = {}

    inline_foreign_keys_only = True
    cursor_statements = False
    default_shadow_url = ":memory:"

    def driver_error(self) -> type:
        return sqlite3.Error

    def connect(self, url: str):
        path = sqlite_path(url)
        if path != ":memory:":
            # Ensure directory exists
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            path,
            detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
            isolation_level=None,
        )
        try:
            if path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.OperationalError:
            conn.close()
            raise
        return conn

    def is_memory_url(self, url: str) -> bool:
        return sqlite_path(url) == ":memory:"

    def introspection_queries(self) -> Dict[str, str]:
        return _INTROSPECTION_QUERIES

    def normalize_identifier(self, name: str) -> str:
        return name.lower()

    def autoincrement_type(self, sql_type: str) -> str:
        # AUTOINCREMENT is only allowed on INTEGER PRIMARY KEY
        if self.type_family(sql_type) == "integer":
            return "INTEGER"
        return sql_type

    def alteration_strategy(self, before: ColumnInfo, after: ColumnInfo) -> AlterationStrategy:
        return AlterationStrategy.REBUILD_TABLE

    def read_table(self, connection, table_name: str) -> TableInfo:
        queries = self.introspection_queries()
        quoted = self.quote_identifier(table_name)
        table = TableInfo(name=table_name)

        rows = connection.fetch_all(queries["table_sql"], (table_name,))
        table_sql = (rows[0][0] or "") if rows else ""
        autoincrement = "AUTOINCREMENT" in table_sql.upper()

        primary_key = []
        for _cid, name, raw_type, not_null, default, pk in connection.fetch_all(
            queries["columns"].format(table=quoted)
        ):
            column_type = self.normalize_type(raw_type or "")
            table.columns[name] = ColumnInfo(
                name=name,
                type=column_type,
                nullable=not (not_null or pk),
                primary_key=bool(pk),
                default=self.normalize_default(default, column_type),
            )
            if pk:
                primary_key.append((pk, name))
        table.primary_key = [name for _, name in sorted(primary_key)]

        if autoincrement and len(table.primary_key) == 1:
            column = table.columns[table.primary_key[0]]
            if column.type == "INTEGER":
                column.default = "autoincrement()"

        for _seq, index_name, unique, origin, _partial in connection.fetch_all(
            queries["indexes"].format(table=quoted)
        ):
            if origin == "pk":
                continue
            index = IndexInfo(name=index_name, unique=bool(unique), constraint=origin == "u")
            for _seqno, cid, column, desc, _coll, key in connection.fetch_all(
                queries["index_columns"].format(index=self.quote_identifier(index_name))
            ):
                if key and cid >= 0:
                    index.columns.append(IndexColumn(name=column, sort="DESC" if desc else None))
            table.indexes.append(index)
        table.indexes.sort(key=lambda index: index.name)
        self.mark_unique_columns(table)

        foreign_keys: Dict[int, ForeignKeyInfo] = {}
        for fk_id, _seq, referenced_table, column, referenced_column, on_update, on_delete, _match in connection.fetch_all(
            queries["foreign_keys"].format(table=quoted)
        ):
            fk = foreign_keys.setdefault(
                fk_id,
                ForeignKeyInfo(
                    name="",
                    columns=[],
                    referenced_table=referenced_table,
                    referenced_columns=[],
                    on_delete=on_delete,
                    on_update=on_update,
                ),
            )
            fk.columns.append(column)
            fk.referenced_columns.append(referenced_column)

        for fk in foreign_keys.values():
            # SQLite does not keep constraint names
            fk.name = f"{table_name}_{'_'.join(fk.columns)}_fkey"
            if any(column is None for column in fk.referenced_columns):
                fk.referenced_columns = self._primary_key_of(connection, fk.referenced_table)
        table.foreign_keys = list(foreign_keys.values())

        return table

    def _primary_key_of(self, connection, table_name: str) -> List[str]:
        rows = connection.fetch_all(
            self.introspection_queries()["columns"].format(table=self.quote_identifier(table_name))
        )
        return [row[1] for row in sorted(rows, key=lambda row: row[5]) if row[5]]

    def _autoincrement_column(self, table: TableInfo) -> Optional[str]:
        if len(table.primary_key) != 1:
            return None
        column = table.columns.get(table.primary_key[0])
        if column is not None and self._is_autoincrement(column):
            return column.name
        return None

    def column_definition(self, column: ColumnInfo, inline_unique: bool = False) -> str:
        if self._is_autoincrement(column):
            return (
                f"{self.quote_identifier(column.name)} {column.type} "
                f"NOT NULL PRIMARY KEY AUTOINCREMENT"
            )
        return super().column_definition(column, inline_unique)

    def primary_key_clause(self, table: TableInfo) -> Optional[str]:
        if self._autoincrement_column(table):
            return None
        return super().primary_key_clause(table)

    # Unreachable: requires_rebuild and inline_foreign_keys_only route these
    # alterations through rebuild_table
    def alter_column(self, table: TableInfo, change: ColumnChange) -> List[str]:
        raise NotImplementedError("SQLite columns are altered by rebuilding the table")

    def drop_primary_key(self, table: TableInfo) -> str:
        raise NotImplementedError("SQLite primary keys are altered by rebuilding the table")

    def drop_foreign_key(self, table_name: str, fk: ForeignKeyInfo) -> str:
        raise NotImplementedError("SQLite foreign keys are dropped by rebuilding the table")

    def _can_add_column(self, column: ColumnInfo) -> bool:
        if column.primary_key or self._is_autoincrement(column):
            return False
        if column.default is None:
            return column.nullable
        kind, value = parse_default(column.default)
        # ADD COLUMN only accepts constant defaults
        return kind != "function" or value[0] not in ("now", "dbgenerated")

    def requires_rebuild(self, alteration: TableAlteration) -> bool:
        return bool(
            alteration.modified_columns
            or alteration.dropped_columns
            or alteration.added_foreign_keys
            or alteration.dropped_foreign_keys
            or alteration.primary_key_changed
            or any(index.constraint for index in alteration.dropped_indexes)
            or not all(self._can_add_column(column) for column in alteration.added_columns)
        )

    def rebuild_table(self, alteration: TableAlteration) -> List[str]:
        """Redefine a table by copying it into a new definition."""
        desired = alteration.desired
        temporary = desired.model_copy(update={"name": f"new_{desired.name}"})
        added = {self.normalize_identifier(column.name) for column in alteration.added_columns}
        actual_columns = {self.normalize_identifier(name) for name in alteration.actual.columns}
        shared = [
            name
            for name in desired.columns
            if self.normalize_identifier(name) in actual_columns
            and self.normalize_identifier(name) not in added
        ]

        statements = [self.create_table(temporary, desired.foreign_keys)]
        if shared:
            columns = self.column_list(shared)
            statements.append(
                f"INSERT INTO {self.quote_identifier(temporary.name)} ({columns}) "
                f"SELECT {columns} FROM {self.quote_identifier(alteration.actual.name)}"
            )
        statements.append(self.drop_table(alteration.actual.name))
        statements.append(
            f"ALTER TABLE {self.quote_identifier(temporary.name)} "
            f"RENAME TO {self.quote_identifier(desired.name)}"
        )
        statements.extend(self.create_index(desired.name, index) for index in desired.indexes)
        return statements

    def ledger_table_ddl(self, table_name: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.quote_identifier(table_name)} (\n"
            "    \"id\" TEXT PRIMARY KEY NOT NULL,\n"
            "    \"checksum\" TEXT NOT NULL,\n"
            "    \"finished_at\" DATETIME,\n"
            "    \"migration_name\" TEXT NOT NULL,\n"
            "    \"logs\" TEXT,\n"
            "    \"rolled_back_at\" DATETIME,\n"
            "    \"started_at\" DATETIME NOT NULL DEFAULT current_timestamp,\n"
            "    \"applied_steps_count\" INTEGER UNSIGNED NOT NULL DEFAULT 0\n"
            ")"
        )

    def before_apply(self, connection) -> None:
        connection.execute("PRAGMA foreign_keys = OFF")

    def verify(self, connection) -> Optional[str]:
        violations = connection.fetch_all("PRAGMA foreign_key_check")
        if not violations:
            return None
        tables = sorted({row[0] for row in violations})
        return f"Foreign key check failed for table(s): {', '.join(tables)}"

    def after_apply(self, connection) -> None:
        connection.execute("PRAGMA foreign_keys = ON")

    def reset(self, connection) -> None:
        rows = connection.fetch_all(
            "SELECT type, name FROM sqlite_master "
            "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'"
        )
        connection.execute("PRAGMA foreign_keys = OFF")
        try:
            for kind, name in rows:
                connection.execute(f"DROP {kind.upper()} IF EXISTS {self.quote_identifier(name)}")
        finally:
            connection.execute("PRAGMA foreign_keys = ON")
