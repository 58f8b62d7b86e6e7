"""Canonical schema model shared by declared and introspected schemas."""

from typing import Dict, List, Literal, Optional
from pydantic import Field

from .base import SchemaShiftModel


SortOrder = Literal["ASC", "DESC"]

# Foreign key actions
ReferentialAction = Literal["CASCADE", "SET NULL", "SET DEFAULT", "RESTRICT", "NO ACTION"]


class ColumnInfo(SchemaShiftModel):
    """Represents a column in a table."""

    name: str = Field(description="Column name")
    type: str = Field(description="Canonical SQL type for the provider")
    nullable: bool = Field(default=True, description="Whether column allows NULL values")
    primary_key: bool = Field(default=False, description="Part of the primary key")
    unique: bool = Field(default=False, description="Whether values must be unique")
    default: Optional[str] = Field(
        default=None,
        description="Default in declaration syntax, e.g. now() or \"draft\"",
    )
    enum_name: Optional[str] = Field(
        default=None, description="Enum backing this column, if any"
    )


class IndexColumn(SchemaShiftModel):
    """A column reference inside an index."""

    name: str = Field(description="Column name")
    sort: Optional[SortOrder] = Field(default=None, description="Sort direction")

    def key(self) -> tuple:
        return (self.name, self.sort or "ASC")


class IndexInfo(SchemaShiftModel):
    """Represents an index on a table."""

    name: str = Field(description="Index name")
    columns: List[IndexColumn] = Field(default_factory=list)
    unique: bool = Field(default=False, description="Whether this is a unique index")
    constraint: bool = Field(
        default=False,
        description="Backed by a table constraint rather than CREATE INDEX",
    )

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


class ForeignKeyInfo(SchemaShiftModel):
    """Represents a foreign key constraint."""

    name: str = Field(description="Constraint name")
    columns: List[str] = Field(description="Referencing columns")
    referenced_table: str = Field(description="Referenced table name")
    referenced_columns: List[str] = Field(description="Referenced columns")
    on_delete: ReferentialAction = Field(default="NO ACTION")
    on_update: ReferentialAction = Field(default="NO ACTION")


class TableInfo(SchemaShiftModel):
    """Represents a table in the database."""

    name: str = Field(description="Table name")
    columns: Dict[str, ColumnInfo] = Field(
        default_factory=dict, description="Columns in declaration order"
    )
    primary_key: List[str] = Field(
        default_factory=list, description="Primary key columns in key order"
    )
    indexes: List[IndexInfo] = Field(default_factory=list)
    foreign_keys: List[ForeignKeyInfo] = Field(default_factory=list)

    def get_column(self, name: str) -> Optional[ColumnInfo]:
        return self.columns.get(name)

    def effective_indexes(self) -> List[IndexInfo]:
        """Indexes plus the unique indexes implied by unique columns.

        A unique column that is not already covered by a single-column
        unique index gets a synthetic ``<table>_<column>_key`` entry, so a
        field-level unique flag and an equivalent unique index compare equal.
        """
        indexes = list(self.indexes)
        covered = {
            index.columns[0].name
            for index in self.indexes
            if index.unique and len(index.columns) == 1
        }
        for column in self.columns.values():
            if column.unique and column.name not in covered:
                indexes.append(
                    IndexInfo(
                        name=f"{self.name}_{column.name}_key",
                        columns=[IndexColumn(name=column.name)],
                        unique=True,
                        constraint=True,
                    )
                )
        return indexes


class EnumInfo(SchemaShiftModel):
    """A native enum type."""

    name: str = Field(description="Enum type name")
    values: List[str] = Field(default_factory=list, description="Values in order")


class DatabaseSchema(SchemaShiftModel):
    """Tables and enums of a database, declared or introspected."""

    tables: Dict[str, TableInfo] = Field(default_factory=dict)
    enums: Dict[str, EnumInfo] = Field(default_factory=dict)

    def get_table(self, name: str) -> Optional[TableInfo]:
        return self.tables.get(name)

    @property
    def is_empty(self) -> bool:
        return not self.tables and not self.enums
