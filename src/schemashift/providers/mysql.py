"""MySQL provider."""

import re
from typing import Dict, List, Optional
from urllib.parse import unquote, urlparse

from schemashift.errors import ConnectivityError
from schemashift.models.change import AlterationStrategy, ColumnChange
from schemashift.models.schema import (
    ColumnInfo,
    EnumInfo,
    ForeignKeyInfo,
    IndexColumn,
    IndexInfo,
    TableInfo,
)
from schemashift.providers.base import Provider, dbgenerated
from schemashift.utils.type_utils import split_type

_INTROSPECTION_QUERIES = {
    "tables": """
        SELECT TABLE_NAME
        FROM information_schema.TABLES
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
    """,
    "columns": """
        SELECT COLUMN_NAME, COLUMN_TYPE, IS_NULLABLE, COLUMN_DEFAULT, EXTRA, COLUMN_KEY
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
        ORDER BY ORDINAL_POSITION
    """,
    "indexes": """
        SELECT INDEX_NAME, NON_UNIQUE, COLUMN_NAME, COLLATION
        FROM information_schema.STATISTICS
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
        ORDER BY INDEX_NAME, SEQ_IN_INDEX
    """,
    "foreign_keys": """
        SELECT k.CONSTRAINT_NAME, k.COLUMN_NAME, k.REFERENCED_TABLE_NAME,
               k.REFERENCED_COLUMN_NAME, r.DELETE_RULE, r.UPDATE_RULE
        FROM information_schema.KEY_COLUMN_USAGE k
        JOIN information_schema.REFERENTIAL_CONSTRAINTS r
          ON r.CONSTRAINT_SCHEMA = k.CONSTRAINT_SCHEMA AND r.CONSTRAINT_NAME = k.CONSTRAINT_NAME
        WHERE k.TABLE_SCHEMA = DATABASE() AND k.TABLE_NAME = %s
          AND k.REFERENCED_TABLE_NAME IS NOT NULL
        ORDER BY k.CONSTRAINT_NAME, k.ORDINAL_POSITION
    """,
}

_INTEGER_DISPLAY_WIDTH = re.compile(r"^(tinyint|smallint|mediumint|int|bigint)\(\d+\)")


class MySQLProvider(Provider):
    """MySQL 8 and later."""

    name = "mysql"
    quote_char = "`"
    placeholder = "%s"

    scalar_types = {
        "String": "VARCHAR(191)",
        "Int": "INT",
        "BigInt": "BIGINT",
        "Float": "DOUBLE",
        "Decimal": "DECIMAL(65,30)",
        "Boolean": "BOOLEAN",
        "DateTime": "DATETIME(3)",
        "Json": "JSON",
        "Bytes": "LONGBLOB",
    }

    native_types = {
        "VarChar": "VARCHAR",
        "Char": "CHAR",
        "Text": "TEXT",
        "TinyText": "TINYTEXT",
        "MediumText": "MEDIUMTEXT",
        "LongText": "LONGTEXT",
        "TinyInt": "TINYINT",
        "SmallInt": "SMALLINT",
        "MediumInt": "MEDIUMINT",
        "Int": "INT",
        "BigInt": "BIGINT",
        "UnsignedInt": "INT UNSIGNED",
        "UnsignedBigInt": "BIGINT UNSIGNED",
        "Float": "FLOAT",
        "Double": "DOUBLE",
        "Decimal": "DECIMAL",
        "DateTime": "DATETIME",
        "Timestamp": "TIMESTAMP",
        "Date": "DATE",
        "Time": "TIME",
        "Year": "YEAR",
        "Json": "JSON",
        "Binary": "BINARY",
        "VarBinary": "VARBINARY",
        "Blob": "BLOB",
        "MediumBlob": "MEDIUMBLOB",
        "LongBlob": "LONGBLOB",
        "Bit": "BIT",
    }

    supports_transactional_ddl = False
    inline_unique_as_index = True
    naive_utc_timestamps = True

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
        ("datetime", "text"): AlterationStrategy.IN_PLACE,
        ("*", "text"): AlterationStrategy.IN_PLACE,
        ("binary", "*"): AlterationStrategy.RECREATE_COLUMN,
        ("*", "binary"): AlterationStrategy.RECREATE_COLUMN,
    }

    def _driver(self):
        try:
            import pymysql
        except ImportError as e:
            raise ConnectivityError(
                "The mysql provider requires PyMySQL; install schemashift[mysql]"
            ) from e
        return pymysql

    def driver_error(self) -> type:
        return self._driver().Error

    def connect(self, url: str):
        pymysql = self._driver()
        parsed = urlparse(url)
        return pymysql.connect(
            host=parsed.hostname or "localhost",
            port=parsed.port or 3306,
            user=unquote(parsed.username) if parsed.username else None,
            password=unquote(parsed.password) if parsed.password else "",
            database=parsed.path.lstrip("/") or None,
            charset="utf8mb4",
            autocommit=True,
        )

    def introspection_queries(self) -> Dict[str, str]:
        return _INTROSPECTION_QUERIES

    def map_enum_type(self, enum: EnumInfo) -> str:
        values = ",".join(self.quote_literal(value) for value in enum.values)
        return f"ENUM({values})"

    def type_family(self, sql_type: str) -> str:
        # Inline ENUM(...) columns hold text values
        if sql_type.upper().startswith("ENUM("):
            return "text"
        return super().type_family(sql_type)

    def normalize_type(self, raw_type: str) -> str:
        text = raw_type.strip()
        lowered = text.lower()
        if lowered in ("tinyint(1)", "boolean", "bool"):
            return "BOOLEAN"
        if lowered.startswith("enum("):
            return "ENUM" + text[4:]
        lowered = _INTEGER_DISPLAY_WIDTH.sub(r"\1", lowered)
        return super().normalize_type(lowered)

    def current_timestamp(self, sql_type: str) -> str:
        _, args = split_type(sql_type)
        if args:
            return f"CURRENT_TIMESTAMP({args[0]})"
        return "CURRENT_TIMESTAMP"

    def column_extras(self, column: ColumnInfo) -> List[str]:
        if self._is_autoincrement(column):
            return ["AUTO_INCREMENT"]
        return []

    def table_options(self) -> str:
        return " DEFAULT CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"

    def column_default(self, raw: Optional[str], extra: str, column_type: str) -> Optional[str]:
        """Normalize COLUMN_DEFAULT, which holds literals unquoted."""
        extra = (extra or "").lower()
        if "auto_increment" in extra:
            return "autoincrement()"
        if raw is None:
            return None
        if "default_generated" in extra:
            if re.match(r"^CURRENT_TIMESTAMP(\(\d*\))?$", raw, re.IGNORECASE):
                return "now()"
            return dbgenerated(raw)
        if raw.startswith("'") and raw.endswith("'") and len(raw) >= 2:
            # MariaDB quotes literal defaults
            return self.normalize_default(raw, column_type)
        family = self.type_family(column_type)
        if family in ("integer", "float", "decimal", "boolean"):
            return self.normalize_default(raw, column_type)
        return self.normalize_default(self.quote_literal(raw), column_type)

    def read_table(self, connection, table_name: str) -> TableInfo:
        queries = self.introspection_queries()
        table = TableInfo(name=table_name)

        for name, raw_type, is_nullable, default, extra, _key in connection.fetch_all(
            queries["columns"], (table_name,)
        ):
            column_type = self.normalize_type(raw_type)
            table.columns[name] = ColumnInfo(
                name=name,
                type=column_type,
                nullable=is_nullable == "YES",
                default=self.column_default(default, extra, column_type),
            )

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
                    on_delete=on_delete,
                    on_update=on_update,
                ),
            )
            fk.columns.append(column)
            fk.referenced_columns.append(referenced_column)
        table.foreign_keys = list(foreign_keys.values())

        indexes: Dict[str, IndexInfo] = {}
        for index_name, non_unique, column, collation in connection.fetch_all(
            queries["indexes"], (table_name,)
        ):
            if index_name == "PRIMARY":
                table.primary_key.append(column)
                if column in table.columns:
                    table.columns[column].primary_key = True
                continue
            index = indexes.setdefault(
                index_name, IndexInfo(name=index_name, unique=not int(non_unique))
            )
            index.columns.append(IndexColumn(name=column, sort="DESC" if collation == "D" else None))

        # Indexes MySQL created to back a foreign key carry the constraint's name
        table.indexes = [
            index
            for name, index in indexes.items()
            if index.unique or name not in foreign_keys
        ]
        self.mark_unique_columns(table)

        return table

    def alter_column(self, table: TableInfo, change: ColumnChange) -> List[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(table.name)} "
            f"MODIFY {self.column_definition(change.after)}"
        ]

    def drop_primary_key(self, table: TableInfo) -> str:
        return f"ALTER TABLE {self.quote_identifier(table.name)} DROP PRIMARY KEY"

    def drop_index(self, table_name: str, index: IndexInfo) -> str:
        return f"DROP INDEX {self.quote_identifier(index.name)} ON {self.quote_identifier(table_name)}"

    def drop_foreign_key(self, table_name: str, fk: ForeignKeyInfo) -> str:
        return (
            f"ALTER TABLE {self.quote_identifier(table_name)} "
            f"DROP FOREIGN KEY {self.quote_identifier(fk.name)}"
        )

    def ledger_table_ddl(self, table_name: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.quote_identifier(table_name)} (\n"
            "    `id` VARCHAR(36) PRIMARY KEY NOT NULL,\n"
            "    `checksum` VARCHAR(64) NOT NULL,\n"
            "    `finished_at` DATETIME(3),\n"
            "    `migration_name` VARCHAR(255) NOT NULL,\n"
            "    `logs` TEXT,\n"
            "    `rolled_back_at` DATETIME(3),\n"
            "    `started_at` DATETIME(3) NOT NULL DEFAULT CURRENT_TIMESTAMP(3),\n"
            "    `applied_steps_count` INTEGER UNSIGNED NOT NULL DEFAULT 0\n"
            ") DEFAULT CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )

    def reset(self, connection) -> None:
        tables = self.list_tables(connection)
        connection.execute("SET FOREIGN_KEY_CHECKS = 0")
        try:
            for name in tables:
                connection.execute(f"DROP TABLE IF EXISTS {self.quote_identifier(name)}")
        finally:
            connection.execute("SET FOREIGN_KEY_CHECKS = 1")
