"""Provider capability interface.

Everything that differs between database engines lives behind
:class:`Provider`: the scalar type table, identifier quoting, default
rendering, catalog queries and DDL syntax. The builder, differ, generator
and introspector only talk to this interface.
"""

import json
import re
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Tuple

from schemashift.errors import SchemaValidationError
from schemashift.models.change import AlterationStrategy, ColumnChange, EnumAlteration, TableAlteration
from schemashift.models.schema import (
    ColumnInfo,
    EnumInfo,
    ForeignKeyInfo,
    IndexInfo,
    TableInfo,
)
from schemashift.utils.type_utils import join_type, split_type

# Defaults generated by the client rather than the database
CLIENT_SIDE_DEFAULTS = ("uuid", "cuid", "nanoid", "ulid")

_FUNCTION_DEFAULT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\((.*)\)$", re.DOTALL)
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")

# Type family of each base type name, used by the alteration policy
TYPE_FAMILIES = {
    "text": (
        "TEXT", "VARCHAR", "CHAR", "CHARACTER", "TINYTEXT", "MEDIUMTEXT",
        "LONGTEXT", "CITEXT", "ENUM", "XML", "INET", "CIDR",
    ),
    "integer": (
        "INTEGER", "INT", "SMALLINT", "TINYINT", "MEDIUMINT", "BIGINT",
        "SERIAL", "BIGSERIAL", "SMALLSERIAL", "YEAR", "OID",
    ),
    "float": ("REAL", "DOUBLE", "DOUBLE PRECISION", "FLOAT"),
    "decimal": ("DECIMAL", "NUMERIC", "MONEY"),
    "boolean": ("BOOLEAN", "BOOL"),
    "datetime": ("TIMESTAMP", "TIMESTAMPTZ", "DATETIME", "DATE", "TIME", "TIMETZ"),
    "json": ("JSON", "JSONB"),
    "binary": (
        "BYTEA", "BLOB", "TINYBLOB", "MEDIUMBLOB", "LONGBLOB", "BINARY",
        "VARBINARY", "BIT", "VARBIT",
    ),
    "uuid": ("UUID",),
}

_FAMILY_BY_BASE = {base: family for family, bases in TYPE_FAMILIES.items() for base in bases}

NUMERIC_FAMILIES = ("integer", "float", "decimal")

# Declaration keyword -> SQL referential action
REFERENTIAL_ACTIONS = {
    "Cascade": "CASCADE",
    "Restrict": "RESTRICT",
    "NoAction": "NO ACTION",
    "SetNull": "SET NULL",
    "SetDefault": "SET DEFAULT",
}


def parse_default(expression: str) -> Tuple[str, object]:
    """Classify a default written in declaration syntax.

    Returns:
        ``(kind, payload)`` where kind is one of string, boolean, number,
        function (payload is ``(name, argument text)``), list or identifier
    """
    expression = expression.strip()
    if expression.startswith('"'):
        try:
            return "string", json.loads(expression)
        except ValueError:
            return "string", expression.strip('"')
    if expression in ("true", "false"):
        return "boolean", expression == "true"
    if _NUMBER.match(expression):
        return "number", expression
    if expression.startswith("["):
        return "list", expression
    match = _FUNCTION_DEFAULT.match(expression)
    if match:
        return "function", (match.group(1), match.group(2).strip())
    return "identifier", expression


def canonical_number(text: str) -> str:
    """Render a numeric literal without insignificant zeros."""
    try:
        value = Decimal(text).normalize()
    except InvalidOperation:
        return text
    return format(value, "f")


def string_default(value: str) -> str:
    """Declaration-syntax string literal."""
    return json.dumps(value, ensure_ascii=False)


def dbgenerated(expression: str) -> str:
    """Declaration-syntax default for a raw database expression."""
    return f"dbgenerated({json.dumps(expression, ensure_ascii=False)})"


class Provider(ABC):
    """A database engine supported by the migration engine."""

    name: str = ""
    quote_char: str = '"'
    placeholder: str = "?"

    # Scalar type -> native type
    scalar_types: Dict[str, str] = {}
    # @db.<Name> attribute -> native base type
    native_types: Dict[str, str] = {}

    index_order_significant: bool = False
    supports_transactional_ddl: bool = True
    supports_native_enums: bool = False
    supports_scalar_lists: bool = False
    # Foreign keys can only be declared inside CREATE TABLE
    inline_foreign_keys_only: bool = False
    # Unique columns are emitted as table-level unique indexes
    inline_unique_as_index: bool = False

    # Statements run through driver cursors used as context managers
    cursor_statements: bool = True
    # Timestamp columns hold naive UTC values
    naive_utc_timestamps: bool = False
    # Shadow database used when none is configured
    default_shadow_url: Optional[str] = None

    # (from family, to family) -> strategy; "*" matches any family
    alteration_policy: Dict[Tuple[str, str], AlterationStrategy] = {}
    default_alteration: AlterationStrategy = AlterationStrategy.RECREATE_COLUMN

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    # Connections

    @abstractmethod
    def driver_error(self) -> type:
        """Base exception class of the database driver.

        Raises:
            ConnectivityError: If the driver is not installed
        """

    @abstractmethod
    def connect(self, url: str):
        """Open a driver connection to the database at url in autocommit mode."""

    def is_memory_url(self, url: str) -> bool:
        return False

    # Identifiers and literals

    def quote_identifier(self, name: str) -> str:
        q = self.quote_char
        return f"{q}{name.replace(q, q * 2)}{q}"

    def quote_literal(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def normalize_identifier(self, name: str) -> str:
        """Key used to match table and column names between two schemas."""
        return name

    def column_list(self, names: Sequence[str]) -> str:
        return ", ".join(self.quote_identifier(name) for name in names)

    # Types

    def map_type(self, scalar: str, native: Optional[str] = None, native_args: Sequence[str] = ()) -> str:
        """Map a scalar type, optionally refined by a @db.* attribute.

        Args:
            scalar: Built-in scalar type name
            native: Native type attribute name without the ``db.`` prefix
            native_args: Arguments given to the native type attribute

        Returns:
            Canonical SQL type

        Raises:
            SchemaValidationError: If the type is not supported by the provider
        """
        if native is not None:
            if native not in self.native_types:
                raise SchemaValidationError(
                    f"Native type '@db.{native}' is not supported by the '{self.name}' provider"
                )
            return join_type(self.native_types[native], [str(arg) for arg in native_args])

        if scalar not in self.scalar_types:
            raise SchemaValidationError(
                f"Type '{scalar}' is not supported by the '{self.name}' provider"
            )
        return self.scalar_types[scalar]

    def autoincrement_type(self, sql_type: str) -> str:
        """Canonical type of a primary key column with an autoincrement default."""
        return sql_type

    def map_enum_type(self, enum: EnumInfo) -> str:
        return "TEXT"

    def array_type(self, sql_type: str) -> str:
        raise SchemaValidationError(
            f"Scalar lists are not supported by the '{self.name}' provider"
        )

    def normalize_type(self, raw_type: str) -> str:
        """Map a catalog type name back to the canonical vocabulary."""
        return re.sub(r"\s+", " ", raw_type.strip()).upper()

    def type_family(self, sql_type: str) -> str:
        if not sql_type:
            return "other"
        if sql_type.endswith("[]"):
            return "array"
        if sql_type.startswith(self.quote_char):
            return "enum"
        base, _ = split_type(sql_type)
        base = base.upper().replace(" UNSIGNED", "")
        return _FAMILY_BY_BASE.get(base, "other")

    def alteration_strategy(self, before: ColumnInfo, after: ColumnInfo) -> AlterationStrategy:
        """Decide how a column modification is carried out."""
        if self._is_autoincrement(before) != self._is_autoincrement(after):
            return AlterationStrategy.RECREATE_COLUMN
        if before.type == after.type:
            return AlterationStrategy.IN_PLACE

        source, target = self.type_family(before.type), self.type_family(after.type)
        if source == target and source not in ("other", "array"):
            return AlterationStrategy.IN_PLACE
        for key in ((source, target), (source, "*"), ("*", target)):
            if key in self.alteration_policy:
                return self.alteration_policy[key]
        return self.default_alteration

    # Defaults

    @staticmethod
    def _is_autoincrement(column: ColumnInfo) -> bool:
        return column.default == "autoincrement()"

    def current_timestamp(self, sql_type: str) -> str:
        return "CURRENT_TIMESTAMP"

    def render_boolean(self, value: bool) -> str:
        return "true" if value else "false"

    def render_default(self, column: ColumnInfo) -> Optional[str]:
        """Render a column default as a SQL expression.

        Returns:
            SQL expression, or None when the database holds no default
            (no default declared, autoincrement, or client-generated ids)
        """
        if column.default is None:
            return None

        kind, value = parse_default(column.default)
        if kind == "string":
            return self.quote_literal(value)
        if kind == "boolean":
            return self.render_boolean(value)
        if kind == "number":
            return value
        if kind == "identifier":
            return self.quote_literal(value)
        if kind == "list":
            return self.render_list_default(column, value)

        function, args = value
        if function == "now":
            return self.current_timestamp(column.type)
        if function == "dbgenerated":
            return json.loads(args) if args else None
        return None

    def render_list_default(self, column: ColumnInfo, expression: str) -> Optional[str]:
        return None

    def comparable_default(self, column: ColumnInfo) -> Optional[str]:
        """Default reduced to a form both declared and introspected columns share."""
        if column.default is None:
            return None

        kind, value = parse_default(column.default)
        if kind == "function" and value[0] in CLIENT_SIDE_DEFAULTS:
            return None
        if kind == "identifier":
            return string_default(value)
        if kind == "number":
            return canonical_number(value)
        if kind == "string" and self.type_family(column.type) == "boolean":
            return "true" if value.lower() in ("1", "true") else "false"
        return column.default

    def normalize_default(self, raw: Optional[str], column_type: str) -> Optional[str]:
        """Map a catalog default expression to declaration syntax."""
        if raw is None:
            return None

        expression = raw.strip()
        if not expression or expression.upper() == "NULL":
            return None
        if re.match(r"^(CURRENT_TIMESTAMP|now\(\))(\(\d*\))?$", expression, re.IGNORECASE):
            return "now()"

        literal = self._unquote(expression)
        family = self.type_family(column_type)
        if family == "boolean":
            lowered = (literal if literal is not None else expression).lower()
            if lowered in ("true", "1", "t"):
                return "true"
            if lowered in ("false", "0", "f"):
                return "false"
        if literal is not None:
            if family in NUMERIC_FAMILIES and _NUMBER.match(literal):
                return canonical_number(literal)
            return string_default(literal)
        if _NUMBER.match(expression):
            return canonical_number(expression)
        if expression.lower() in ("true", "false"):
            return expression.lower()
        return dbgenerated(expression)

    @staticmethod
    def _unquote(expression: str) -> Optional[str]:
        if len(expression) >= 2 and expression[0] == "'" and expression[-1] == "'":
            return expression[1:-1].replace("''", "'")
        return None

    # Catalog

    @abstractmethod
    def introspection_queries(self) -> Dict[str, str]:
        """Catalog queries used by the introspector, keyed by purpose."""

    def list_tables(self, connection) -> List[str]:
        rows = connection.fetch_all(self.introspection_queries()["tables"])
        return [row[0] for row in rows]

    @abstractmethod
    def read_table(self, connection, table_name: str) -> TableInfo:
        """Read one table's columns, keys, indexes and foreign keys."""

    def read_enums(self, connection) -> Dict[str, EnumInfo]:
        return {}

    @staticmethod
    def mark_unique_columns(table: TableInfo) -> None:
        for index in table.indexes:
            if index.unique and len(index.columns) == 1:
                column = table.columns.get(index.columns[0].name)
                if column is not None:
                    column.unique = True

    # DDL

    def column_type(self, column: ColumnInfo) -> str:
        return column.type

    def column_extras(self, column: ColumnInfo) -> List[str]:
        return []

    def column_definition(self, column: ColumnInfo, inline_unique: bool = False) -> str:
        parts = [self.quote_identifier(column.name), self.column_type(column)]
        if not column.nullable:
            parts.append("NOT NULL")
        default = self.render_default(column)
        if default is not None:
            parts.append(f"DEFAULT {default}")
        parts.extend(self.column_extras(column))
        if inline_unique:
            parts.append("UNIQUE")
        return " ".join(parts)

    @staticmethod
    def inline_unique_columns(table: TableInfo) -> List[str]:
        """Unique columns not already covered by a single-column unique index."""
        covered = {
            index.columns[0].name
            for index in table.indexes
            if index.unique and len(index.columns) == 1
        }
        return [
            column.name
            for column in table.columns.values()
            if column.unique and column.name not in covered
        ]

    def primary_key_clause(self, table: TableInfo) -> Optional[str]:
        if not table.primary_key:
            return None
        return f"PRIMARY KEY ({self.column_list(table.primary_key)})"

    def foreign_key_clause(self, fk: ForeignKeyInfo) -> str:
        return (
            f"CONSTRAINT {self.quote_identifier(fk.name)} "
            f"FOREIGN KEY ({self.column_list(fk.columns)}) "
            f"REFERENCES {self.quote_identifier(fk.referenced_table)}"
            f"({self.column_list(fk.referenced_columns)}) "
            f"ON DELETE {fk.on_delete} ON UPDATE {fk.on_update}"
        )

    def table_options(self) -> str:
        return ""

    def create_table(self, table: TableInfo, foreign_keys: Sequence[ForeignKeyInfo] = ()) -> str:
        """Render CREATE TABLE with the given foreign keys declared inline."""
        unique_columns = self.inline_unique_columns(table)
        lines = [
            self.column_definition(
                column,
                inline_unique=column.name in unique_columns and not self.inline_unique_as_index,
            )
            for column in table.columns.values()
        ]

        primary_key = self.primary_key_clause(table)
        if primary_key:
            lines.append(primary_key)
        if self.inline_unique_as_index:
            for name in unique_columns:
                lines.append(
                    f"UNIQUE INDEX {self.quote_identifier(f'{table.name}_{name}_key')}"
                    f"({self.quote_identifier(name)})"
                )
        for fk in foreign_keys:
            lines.append(self.foreign_key_clause(fk))

        body = ",\n".join(f"    {line}" for line in lines)
        return f"CREATE TABLE {self.quote_identifier(table.name)} (\n{body}\n){self.table_options()}"

    def drop_table(self, table_name: str) -> str:
        return f"DROP TABLE {self.quote_identifier(table_name)}"

    def add_column(self, table_name: str, column: ColumnInfo) -> List[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(table_name)} "
            f"ADD COLUMN {self.column_definition(column)}"
        ]

    def drop_column(self, table_name: str, column_name: str) -> str:
        return (
            f"ALTER TABLE {self.quote_identifier(table_name)} "
            f"DROP COLUMN {self.quote_identifier(column_name)}"
        )

    @abstractmethod
    def alter_column(self, table: TableInfo, change: ColumnChange) -> List[str]:
        """Render an in-place column modification."""

    def recreate_column(self, table: TableInfo, change: ColumnChange) -> List[str]:
        return [self.drop_column(table.name, change.name)] + self.add_column(table.name, change.after)

    @abstractmethod
    def drop_primary_key(self, table: TableInfo) -> str:
        """Drop the primary key of an existing table."""

    def add_primary_key(self, table: TableInfo) -> str:
        return f"ALTER TABLE {self.quote_identifier(table.name)} ADD {self.primary_key_clause(table)}"

    def create_index(self, table_name: str, index: IndexInfo) -> str:
        unique = "UNIQUE " if index.unique else ""
        columns = ", ".join(self._index_column(column) for column in index.columns)
        return (
            f"CREATE {unique}INDEX {self.quote_identifier(index.name)} "
            f"ON {self.quote_identifier(table_name)}({columns})"
        )

    def _index_column(self, column) -> str:
        rendered = self.quote_identifier(column.name)
        if column.sort == "DESC":
            rendered += " DESC"
        return rendered

    def drop_index(self, table_name: str, index: IndexInfo) -> str:
        return f"DROP INDEX {self.quote_identifier(index.name)}"

    def add_foreign_key(self, table_name: str, fk: ForeignKeyInfo) -> str:
        return f"ALTER TABLE {self.quote_identifier(table_name)} ADD {self.foreign_key_clause(fk)}"

    def drop_foreign_key(self, table_name: str, fk: ForeignKeyInfo) -> str:
        return (
            f"ALTER TABLE {self.quote_identifier(table_name)} "
            f"DROP CONSTRAINT {self.quote_identifier(fk.name)}"
        )

    def create_enum(self, enum: EnumInfo) -> List[str]:
        return []

    def alter_enum(self, alteration: EnumAlteration) -> List[str]:
        return []

    def drop_enum(self, name: str) -> List[str]:
        return []

    def requires_rebuild(self, alteration: TableAlteration) -> bool:
        """Whether an alteration must be done by rebuilding the table."""
        return False

    def rebuild_table(self, alteration: TableAlteration) -> List[str]:
        # Only called when requires_rebuild returns True
        raise NotImplementedError(f"{self.name} does not rebuild tables")

    # Ledger, application and reset

    @abstractmethod
    def ledger_table_ddl(self, table_name: str) -> str:
        """CREATE TABLE IF NOT EXISTS statement for the migrations ledger."""

    def before_apply(self, connection) -> None:
        """Called before the transaction that applies a script."""

    def verify(self, connection) -> Optional[str]:
        """Called inside the transaction before commit.

        Returns:
            An error message if the applied script left the database invalid
        """
        return None

    def after_apply(self, connection) -> None:
        """Called after the transaction, whether it committed or not."""

    @abstractmethod
    def reset(self, connection) -> None:
        """Drop every table, type and constraint in the target schema."""
