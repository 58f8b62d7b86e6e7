"""Change set models produced by the differ."""

from enum import Enum
from typing import List, Optional
from pydantic import Field

from .base import SchemaShiftModel
from .schema import ColumnInfo, EnumInfo, ForeignKeyInfo, IndexInfo, TableInfo


class ChangeType(str, Enum):
    """Types of schema changes."""

    # Table changes
    CREATE_TABLE = "create_table"
    DROP_TABLE = "drop_table"

    # Column changes
    ADD_COLUMN = "add_column"
    DROP_COLUMN = "drop_column"
    MODIFY_COLUMN = "modify_column"
    ALTER_PRIMARY_KEY = "alter_primary_key"

    # Index changes
    CREATE_INDEX = "create_index"
    DROP_INDEX = "drop_index"

    # Foreign key changes
    ADD_FOREIGN_KEY = "add_foreign_key"
    DROP_FOREIGN_KEY = "drop_foreign_key"

    # Enum changes
    CREATE_ENUM = "create_enum"
    ALTER_ENUM = "alter_enum"
    DROP_ENUM = "drop_enum"


class AlterationStrategy(str, Enum):
    """How a provider carries out a column modification."""

    IN_PLACE = "in_place"
    RECREATE_COLUMN = "recreate_column"
    REBUILD_TABLE = "rebuild_table"


class Change(SchemaShiftModel):
    """A single entry in a flattened view of a change set."""

    type: ChangeType = Field(description="Type of change")
    table: Optional[str] = Field(default=None, description="Table affected, if any")
    name: str = Field(description="Name of the affected entity")


class ColumnChange(SchemaShiftModel):
    """A column present on both sides whose definition differs."""

    name: str = Field(description="Column name")
    before: ColumnInfo = Field(description="Current definition")
    after: ColumnInfo = Field(description="Desired definition")
    type_changed: bool = False
    nullability_changed: bool = False
    default_changed: bool = False
    strategy: AlterationStrategy = AlterationStrategy.IN_PLACE


class TableAlteration(SchemaShiftModel):
    """Changes to a table that exists on both sides."""

    table_name: str
    added_columns: List[ColumnInfo] = Field(default_factory=list)
    dropped_columns: List[str] = Field(default_factory=list)
    modified_columns: List[ColumnChange] = Field(default_factory=list)
    added_indexes: List[IndexInfo] = Field(default_factory=list)
    dropped_indexes: List[IndexInfo] = Field(default_factory=list)
    added_foreign_keys: List[ForeignKeyInfo] = Field(default_factory=list)
    dropped_foreign_keys: List[ForeignKeyInfo] = Field(default_factory=list)
    primary_key_changed: bool = False
    desired: TableInfo = Field(description="Desired definition of the table")
    actual: TableInfo = Field(description="Current definition of the table")

    def is_empty(self) -> bool:
        return not (
            self.added_columns
            or self.dropped_columns
            or self.modified_columns
            or self.added_indexes
            or self.dropped_indexes
            or self.added_foreign_keys
            or self.dropped_foreign_keys
            or self.primary_key_changed
        )


class IndexChange(SchemaShiftModel):
    """Index changes on a table that is otherwise unchanged."""

    table_name: str
    added: List[IndexInfo] = Field(default_factory=list)
    dropped: List[IndexInfo] = Field(default_factory=list)


class ForeignKeyDrop(SchemaShiftModel):
    """A foreign key that must be dropped before its table can be."""

    table_name: str
    foreign_key: ForeignKeyInfo


class EnumUsage(SchemaShiftModel):
    """A column that uses an enum type."""

    table_name: str
    column_name: str
    default: Optional[str] = None


class EnumAlteration(SchemaShiftModel):
    """Changes to a native enum type."""

    name: str
    values: List[str] = Field(description="Desired values in order")
    added_values: List[str] = Field(default_factory=list)
    removed_values: List[str] = Field(default_factory=list)
    usages: List[EnumUsage] = Field(default_factory=list)


class DataLossWarning(SchemaShiftModel):
    """A change that may destroy existing data."""

    type: ChangeType
    table: Optional[str] = None
    column: Optional[str] = None
    message: str


class ChangeSet(SchemaShiftModel):
    """Structured difference between a desired and an actual schema.

    A table in ``tables_to_create`` never appears in ``tables_to_alter`` or
    ``tables_to_drop``. ``tables_to_drop`` is ordered so that tables holding
    foreign keys come before the tables they reference.
    """

    tables_to_create: List[TableInfo] = Field(default_factory=list)
    tables_to_alter: List[TableAlteration] = Field(default_factory=list)
    tables_to_drop: List[str] = Field(default_factory=list)
    index_changes: List[IndexChange] = Field(default_factory=list)
    foreign_keys_to_drop: List[ForeignKeyDrop] = Field(
        default_factory=list,
        description="Foreign keys forming cycles among dropped tables",
    )
    enums_to_create: List[EnumInfo] = Field(default_factory=list)
    enums_to_alter: List[EnumAlteration] = Field(default_factory=list)
    enums_to_drop: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.tables_to_create
            or self.tables_to_alter
            or self.tables_to_drop
            or self.index_changes
            or self.foreign_keys_to_drop
            or self.enums_to_create
            or self.enums_to_alter
            or self.enums_to_drop
        )

    def changes(self) -> List[Change]:
        """Flatten the change set into individual changes."""
        changes = []
        for enum in self.enums_to_create:
            changes.append(Change(type=ChangeType.CREATE_ENUM, name=enum.name))
        for enum in self.enums_to_alter:
            changes.append(Change(type=ChangeType.ALTER_ENUM, name=enum.name))
        for table in self.tables_to_create:
            changes.append(Change(type=ChangeType.CREATE_TABLE, name=table.name))
        for alteration in self.tables_to_alter:
            table = alteration.table_name
            for column in alteration.added_columns:
                changes.append(Change(type=ChangeType.ADD_COLUMN, table=table, name=column.name))
            for name in alteration.dropped_columns:
                changes.append(Change(type=ChangeType.DROP_COLUMN, table=table, name=name))
            for column_change in alteration.modified_columns:
                changes.append(
                    Change(type=ChangeType.MODIFY_COLUMN, table=table, name=column_change.name)
                )
            if alteration.primary_key_changed:
                changes.append(
                    Change(type=ChangeType.ALTER_PRIMARY_KEY, table=table, name=table)
                )
            for index in alteration.added_indexes:
                changes.append(Change(type=ChangeType.CREATE_INDEX, table=table, name=index.name))
            for index in alteration.dropped_indexes:
                changes.append(Change(type=ChangeType.DROP_INDEX, table=table, name=index.name))
            for fk in alteration.added_foreign_keys:
                changes.append(Change(type=ChangeType.ADD_FOREIGN_KEY, table=table, name=fk.name))
            for fk in alteration.dropped_foreign_keys:
                changes.append(Change(type=ChangeType.DROP_FOREIGN_KEY, table=table, name=fk.name))
        for index_change in self.index_changes:
            for index in index_change.added:
                changes.append(
                    Change(type=ChangeType.CREATE_INDEX, table=index_change.table_name, name=index.name)
                )
            for index in index_change.dropped:
                changes.append(
                    Change(type=ChangeType.DROP_INDEX, table=index_change.table_name, name=index.name)
                )
        for name in self.tables_to_drop:
            changes.append(Change(type=ChangeType.DROP_TABLE, name=name))
        for name in self.enums_to_drop:
            changes.append(Change(type=ChangeType.DROP_ENUM, name=name))
        return changes
