"""PostgreSQL provider."""

import re
from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from schemashift.errors import ConnectivityError
from schemashift.models.change import AlterationStrategy, ColumnChange, EnumAlteration
from schemashift.models.schema import (
    ColumnInfo,
    EnumInfo,
    ForeignKeyInfo,
    IndexColumn,
    IndexInfo,
    TableInfo,
)
from schemashift.providers.base import Provider

_INTROSPECTION_QUERIES = {
    "tables": """
        SELECT c.relname
        FROM pg_class c
        JOIN pg_namespace n ON n.oid = c.relnamespace
        WHERE n.nspname = current_schema() AND c.relkind IN ('r', 'p')
        ORDER BY c.relname
    """,
    "columns": """
        SELECT a.attname,
               format_type(a.atttypid, a.atttypmod),
               a.attnotnull,
               pg_get_expr(d.adbin, d.adrelid),
               t.typtype,
               t.typname
        FROM pg_attribute a
        JOIN pg_class c ON c.oid = a.attrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_type t ON t.oid = a.atttypid
        LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
        WHERE n.nspname = current_schema() AND c.relname = %s
          AND a.attnum > 0 AND NOT a.attisdropped
        ORDER BY a.attnum
    """,
    "indexes": """
        SELECT ic.relname,
               i.indisunique,
               i.indisprimary,
               con.conname IS NOT NULL,
               a.attname,
               (i.indoption[k.ord - 1] & 1) = 1
        FROM pg_index i
        JOIN pg_class c ON c.oid = i.indrelid
        JOIN pg_class ic ON ic.oid = i.indexrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        CROSS JOIN LATERAL unnest(i.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
        JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
        LEFT JOIN pg_constraint con
          ON con.conindid = i.indexrelid AND con.conrelid = c.oid AND con.contype IN ('u', 'p')
        WHERE n.nspname = current_schema() AND c.relname = %s
        ORDER BY ic.relname, k.ord
    """,
    "foreign_keys": """
        SELECT con.conname,
               a.attname,
               rc.relname,
               ra.attname,
               con.confdeltype,
               con.confupdtype
        FROM pg_constraint con
        JOIN pg_class c ON c.oid = con.conrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_class rc ON rc.oid = con.confrelid
        CROSS JOIN LATERAL unnest(con.conkey, con.confkey) WITH ORDINALITY AS k(attnum, refnum, ord)
        JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
        JOIN pg_attribute ra ON ra.attrelid = con.confrelid AND ra.attnum = k.refnum
        WHERE con.contype = 'f' AND n.nspname = current_schema() AND c.relname = %s
        ORDER BY con.conname, k.ord
    """,
    "enums": """
        SELECT t.typname, e.enumlabel
        FROM pg_type t
        JOIN pg_enum e ON e.enumtypid = t.oid
        JOIN pg_namespace n ON n.oid = t.typnamespace
        WHERE n.nspname = current_schema()
        ORDER BY t.typname, e.enumsortorder
    """,
}

_ACTION_CODES = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

_TYPE_PATTERNS = [
    (re.compile(r"^character varying(?:\((\d+)\))?$"), "VARCHAR"),
    (re.compile(r"^character(?:\((\d+)\))?$"), "CHAR"),
    (re.compile(r"^timestamp(?:\((\d+)\))? without time zone$"), "TIMESTAMP"),
    (re.compile(r"^timestamp(?:\((\d+)\))? with time zone$"), "TIMESTAMPTZ"),
    (re.compile(r"^time(?:\((\d+)\))? without time zone$"), "TIME"),
    (re.compile(r"^time(?:\((\d+)\))? with time zone$"), "TIMETZ"),
    (re.compile(r"^numeric(?:\((\d+,\d+)\))?$"), "DECIMAL"),
    (re.compile(r"^bit varying(?:\((\d+)\))?$"), "VARBIT"),
    (re.compile(r"^bit(?:\((\d+)\))?$"), "BIT"),
]

_SERIAL_TYPES = {"INTEGER": "SERIAL", "BIGINT": "BIGSERIAL", "SMALLINT": "SMALLSERIAL"}


class PostgreSQLProvider(Provider):
    """PostgreSQL 12 and later, using the connection's current schema."""

    name = "postgresql"
    placeholder = "%s"

    scalar_types = {
        "String": "TEXT",
        "Int": "INTEGER",
        "BigInt": "BIGINT",
        "Float": "DOUBLE PRECISION",
        "Decimal": "DECIMAL(65,30)",
        "Boolean": "BOOLEAN",
        "DateTime": "TIMESTAMP(3)",
        "Json": "JSONB",
        "Bytes": "BYTEA",
    }

    native_types = {
        "Text": "TEXT",
        "VarChar": "VARCHAR",
        "Char": "CHAR",
        "Uuid": "UUID",
        "Xml": "XML",
        "Inet": "INET",
        "Citext": "CITEXT",
        "SmallInt": "SMALLINT",
        "Integer": "INTEGER",
        "BigInt": "BIGINT",
        "Oid": "OID",
        "Real": "REAL",
        "DoublePrecision": "DOUBLE PRECISION",
        "Decimal": "DECIMAL",
        "Money": "MONEY",
        "Boolean": "BOOLEAN",
        "Timestamp": "TIMESTAMP",
        "Timestamptz": "TIMESTAMPTZ",
        "Date": "DATE",
        "Time": "TIME",
        "Timetz": "TIMETZ",
        "Json": "JSON",
        "JsonB": "JSONB",
        "ByteA": "BYTEA",
        "Bit": "BIT",
        "VarBit": "VARBIT",
    }

    supports_native_enums = True
    supports_scalar_lists = True

    alteration_policy = {
        ("integer", "float"): AlterationStrategy.IN_PLACE,
        ("integer", "decimal"): AlterationStrategy.IN_PLACE,
        ("float", "decimal"): AlterationStrategy.IN_PLACE,
        ("decimal", "float"): AlterationStrategy.IN_PLACE,
        ("float", "integer"): AlterationStrategy.IN_PLACE,
        ("decimal", "integer"): AlterationStrategy.IN_PLACE,
        ("boolean", "integer"): AlterationStrategy.IN_PLACE,
        ("integer", "boolean"): AlterationStrategy.IN_PLACE,
        ("text", "json"): AlterationStrategy.IN_PLACE,
        ("text", "uuid"): AlterationStrategy.IN_PLACE,
        ("text", "enum"): AlterationStrategy.IN_PLACE,
        ("*", "text"): AlterationStrategy.IN_PLACE,
    }

    def _driver(self):
        try:
            import psycopg2
        except ImportError as e:
            raise ConnectivityError(
                "The postgresql provider requires psycopg2; install schemashift[postgresql]"
            ) from e
        return psycopg2

    def driver_error(self) -> type:
        return self._driver().Error

    def connect(self, url: str):
        """Connect, creating and selecting the ``?schema=`` schema if given."""
        psycopg2 = self._driver()
        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        schema = params.pop("schema", [None])[0]
        options = {key: values[-1] for key, values in params.items()}

        dsn = parsed._replace(query="").geturl()
        conn = psycopg2.connect(dsn, **options)
        conn.autocommit = True
        if schema:
            with conn.cursor() as cursor:
                cursor.execute(f"CREATE SCHEMA IF NOT EXISTS {self.quote_identifier(schema)}")
                cursor.execute(f"SET search_path TO {self.quote_identifier(schema)}")
        return conn

    def introspection_queries(self) -> Dict[str, str]:
        return _INTROSPECTION_QUERIES

    def map_enum_type(self, enum: EnumInfo) -> str:
        return self.quote_identifier(enum.name)

    def array_type(self, sql_type: str) -> str:
        return f"{sql_type}[]"

    def normalize_type(self, raw_type: str) -> str:
        text = raw_type.strip()
        suffix = ""
        while text.endswith("[]"):
            suffix += "[]"
            text = text[:-2]

        lowered = text.lower()
        for pattern, base in _TYPE_PATTERNS:
            match = pattern.match(lowered)
            if match:
                args = match.group(1)
                return f"{base}({args}){suffix}" if args else f"{base}{suffix}"
        return f"{super().normalize_type(text)}{suffix}"

    def normalize_default(self, raw: Optional[str], column_type: str) -> Optional[str]:
        if raw is None:
            return None
        if raw.startswith("nextval("):
            return "autoincrement()"
        # Drop trailing casts such as 'x'::text or 'A'::"Role"
        expression = raw.strip()
        while True:
            stripped = re.sub(r"::[\w\s\".\[\]()]+$", "", expression)
            if stripped == expression:
                break
            expression = stripped
        if expression.startswith("(") and expression.endswith(")") and "'" in expression:
            inner = expression[1:-1].strip()
            if inner.startswith("'"):
                expression = inner
        return super().normalize_default(expression, column_type)

    def render_list_default(self, column: ColumnInfo, expression: str) -> Optional[str]:
        items = expression.strip()[1:-1].strip()
        if not items:
            return f"ARRAY[]::{column.type}"
        return f"ARRAY[{items.replace(chr(34), chr(39))}]::{column.type}"

    def read_table(self, connection, table_name: str) -> TableInfo:
        queries = self.introspection_queries()
        table = TableInfo(name=table_name)

        for name, raw_type, not_null, default, typtype, typname in connection.fetch_all(
            queries["columns"], (table_name,)
        ):
            enum_name = typname if typtype == "e" else None
            column_type = self.quote_identifier(typname) if enum_name else self.normalize_type(raw_type)
            table.columns[name] = ColumnInfo(
                name=name,
                type=column_type,
                nullable=not not_null,
                default=self.normalize_default(default, column_type),
                enum_name=enum_name,
            )

        indexes: Dict[str, IndexInfo] = {}
        for index_name, unique, primary, constraint, column, descending in connection.fetch_all(
            queries["indexes"], (table_name,)
        ):
            if primary:
                table.primary_key.append(column)
                if column in table.columns:
                    table.columns[column].primary_key = True
                continue
            index = indexes.setdefault(
                index_name,
                IndexInfo(name=index_name, unique=bool(unique), constraint=bool(constraint)),
            )
            index.columns.append(IndexColumn(name=column, sort="DESC" if descending else None))
        table.indexes = list(indexes.values())
        self.mark_unique_columns(table)

        foreign_keys: Dict[str, ForeignKeyInfo] = {}
        for fk_name, column, referenced_table, referenced_column, on_delete, on_update in connection.fetch_all(
            queries["foreign_keys"], (table_name,)
        ):
            fk = foreign_keys.setdefault(
                fk_name,
                ForeignKeyInfo(
                    name=fk_name,
                    columns=[],
                    referenced_table=referenced_table,
                    referenced_columns=[],
                    on_delete=_ACTION_CODES.get(on_delete, "NO ACTION"),
                    on_update=_ACTION_CODES.get(on_update, "NO ACTION"),
                ),
            )
            fk.columns.append(column)
            fk.referenced_columns.append(referenced_column)
        table.foreign_keys = list(foreign_keys.values())

        return table

    def read_enums(self, connection) -> Dict[str, EnumInfo]:
        enums: Dict[str, EnumInfo] = {}
        for name, value in connection.fetch_all(self.introspection_queries()["enums"]):
            enums.setdefault(name, EnumInfo(name=name)).values.append(value)
        return enums

    def column_type(self, column: ColumnInfo) -> str:
        if self._is_autoincrement(column):
            return _SERIAL_TYPES.get(column.type, column.type)
        return column.type

    def primary_key_clause(self, table: TableInfo) -> Optional[str]:
        if not table.primary_key:
            return None
        name = self.quote_identifier(f"{table.name}_pkey")
        return f"CONSTRAINT {name} PRIMARY KEY ({self.column_list(table.primary_key)})"

    def alter_column(self, table: TableInfo, change: ColumnChange) -> List[str]:
        prefix = (
            f"ALTER TABLE {self.quote_identifier(table.name)} "
            f"ALTER COLUMN {self.quote_identifier(change.name)}"
        )
        after = change.after
        statements = []

        if change.type_changed:
            if change.before.default is not None:
                statements.append(f"{prefix} DROP DEFAULT")
            column = self.quote_identifier(change.name)
            statements.append(
                f"{prefix} SET DATA TYPE {after.type} USING ({column}::text::{after.type})"
                if self.type_family(after.type) == "enum"
                else f"{prefix} SET DATA TYPE {after.type} USING ({column}::{after.type})"
            )
        if change.nullability_changed:
            statements.append(f"{prefix} {'DROP' if after.nullable else 'SET'} NOT NULL")
        if change.default_changed or (change.type_changed and change.before.default is not None):
            default = self.render_default(after)
            if default is not None:
                statements.append(f"{prefix} SET DEFAULT {default}")
            elif not change.type_changed:
                statements.append(f"{prefix} DROP DEFAULT")
        return statements

    def drop_primary_key(self, table: TableInfo) -> str:
        name = self.quote_identifier(f"{table.name}_pkey")
        return f"ALTER TABLE {self.quote_identifier(table.name)} DROP CONSTRAINT {name}"

    def drop_index(self, table_name: str, index: IndexInfo) -> str:
        if index.constraint:
            return (
                f"ALTER TABLE {self.quote_identifier(table_name)} "
                f"DROP CONSTRAINT {self.quote_identifier(index.name)}"
            )
        return f"DROP INDEX {self.quote_identifier(index.name)}"

    def create_enum(self, enum: EnumInfo) -> List[str]:
        values = ", ".join(self.quote_literal(value) for value in enum.values)
        return [f"CREATE TYPE {self.quote_identifier(enum.name)} AS ENUM ({values})"]

    def alter_enum(self, alteration: EnumAlteration) -> List[str]:
        """Add values in place; removing values swaps in a new type."""
        name = self.quote_identifier(alteration.name)
        if not alteration.removed_values:
            return [
                f"ALTER TYPE {name} ADD VALUE {self.quote_literal(value)}"
                for value in alteration.added_values
            ]

        new_name = self.quote_identifier(f"{alteration.name}_new")
        old_name = self.quote_identifier(f"{alteration.name}_old")
        values = ", ".join(self.quote_literal(value) for value in alteration.values)
        statements = [f"CREATE TYPE {new_name} AS ENUM ({values})"]
        for usage in alteration.usages:
            table = self.quote_identifier(usage.table_name)
            column = self.quote_identifier(usage.column_name)
            if usage.default is not None:
                statements.append(f"ALTER TABLE {table} ALTER COLUMN {column} DROP DEFAULT")
            statements.append(
                f"ALTER TABLE {table} ALTER COLUMN {column} TYPE {new_name} "
                f"USING ({column}::text::{new_name})"
            )
        statements.append(f"ALTER TYPE {name} RENAME TO {old_name}")
        statements.append(f"ALTER TYPE {new_name} RENAME TO {name}")
        statements.append(f"DROP TYPE {old_name}")
        for usage in alteration.usages:
            if usage.default is not None:
                default = self.render_default(
                    ColumnInfo(name=usage.column_name, type=name, default=usage.default)
                )
                statements.append(
                    f"ALTER TABLE {self.quote_identifier(usage.table_name)} "
                    f"ALTER COLUMN {self.quote_identifier(usage.column_name)} SET DEFAULT {default}"
                )
        return statements

    def drop_enum(self, name: str) -> List[str]:
        return [f"DROP TYPE {self.quote_identifier(name)}"]

    def ledger_table_ddl(self, table_name: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.quote_identifier(table_name)} (\n"
            "    \"id\" VARCHAR(36) PRIMARY KEY NOT NULL,\n"
            "    \"checksum\" VARCHAR(64) NOT NULL,\n"
            "    \"finished_at\" TIMESTAMPTZ,\n"
            "    \"migration_name\" VARCHAR(255) NOT NULL,\n"
            "    \"logs\" TEXT,\n"
            "    \"rolled_back_at\" TIMESTAMPTZ,\n"
            "    \"started_at\" TIMESTAMPTZ NOT NULL DEFAULT now(),\n"
            "    \"applied_steps_count\" INTEGER NOT NULL DEFAULT 0\n"
            ")"
        )

    def reset(self, connection) -> None:
        schema = connection.fetch_all("SELECT current_schema()")[0][0]
        quoted = self.quote_identifier(schema)
        connection.execute(f"DROP SCHEMA IF EXISTS {quoted} CASCADE")
        connection.execute(f"CREATE SCHEMA {quoted}")
