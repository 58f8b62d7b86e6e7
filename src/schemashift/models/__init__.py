"""Core data models for schemashift."""

from .base import SchemaShiftModel, DeclarationModel
from .declaration import (
    Argument,
    Attribute,
    ConfigField,
    Datasource,
    EnumDef,
    EnumValue,
    FieldType,
    FunctionCall,
    Generator,
    ListValue,
    Model,
    ModelField,
    ScalarValue,
    Schema,
    Value,
)
from .schema import (
    ColumnInfo,
    DatabaseSchema,
    EnumInfo,
    ForeignKeyInfo,
    IndexColumn,
    IndexInfo,
    ReferentialAction,
    TableInfo,
)
from .change import (
    AlterationStrategy,
    Change,
    ChangeSet,
    ChangeType,
    ColumnChange,
    DataLossWarning,
    EnumAlteration,
    EnumUsage,
    ForeignKeyDrop,
    IndexChange,
    TableAlteration,
)
from .migration import (
    DevAction,
    DevResult,
    DiagnosticResult,
    DiffSource,
    LedgerEntry,
    Migration,
    MigrationState,
    MigrationStatus,
    MigrationStatusEntry,
    PushResult,
)

__all__ = [
    "SchemaShiftModel",
    "DeclarationModel",
    "Argument",
    "Attribute",
    "ConfigField",
    "Datasource",
    "EnumDef",
    "EnumValue",
    "FieldType",
    "FunctionCall",
    "Generator",
    "ListValue",
    "Model",
    "ModelField",
    "ScalarValue",
    "Schema",
    "Value",
    "ColumnInfo",
    "DatabaseSchema",
    "EnumInfo",
    "ForeignKeyInfo",
    "IndexColumn",
    "IndexInfo",
    "ReferentialAction",
    "TableInfo",
    "AlterationStrategy",
    "Change",
    "ChangeSet",
    "ChangeType",
    "ColumnChange",
    "DataLossWarning",
    "EnumAlteration",
    "EnumUsage",
    "ForeignKeyDrop",
    "IndexChange",
    "TableAlteration",
    "DevAction",
    "DevResult",
    "DiagnosticResult",
    "DiffSource",
    "LedgerEntry",
    "Migration",
    "MigrationState",
    "MigrationStatus",
    "MigrationStatusEntry",
    "PushResult",
]
