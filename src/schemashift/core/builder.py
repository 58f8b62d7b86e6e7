"""Build the canonical schema model from a parsed declaration."""

import logging
from typing import Dict, List, Optional

from schemashift.errors import SchemaValidationError
from schemashift.models.declaration import (
    Attribute,
    EnumDef,
    FunctionCall,
    ListValue,
    Model,
    ModelField,
    ScalarValue,
    Schema,
)
from schemashift.models.schema import (
    ColumnInfo,
    DatabaseSchema,
    EnumInfo,
    ForeignKeyInfo,
    IndexColumn,
    IndexInfo,
    TableInfo,
)
from schemashift.parser.validator import field_list
from schemashift.providers.base import REFERENTIAL_ACTIONS, Provider
from schemashift.utils.type_utils import is_scalar_type

logger = logging.getLogger(__name__)


def _string_argument(attribute: Optional[Attribute], name: str, position: Optional[int] = None) -> Optional[str]:
    if attribute is None:
        return None
    value = attribute.get_argument(name, position=position)
    if isinstance(value, ScalarValue):
        return str(value.value)
    return None


def _database_name(attributes: List[Attribute], map_name: str, default: str) -> str:
    """Name from a @map / @@map attribute, or the declared name."""
    for attribute in attributes:
        if attribute.name == map_name:
            mapped = _string_argument(attribute, "name", position=0)
            if mapped:
                return mapped
    return default


class SchemaBuilder:
    """Translates declared models and enums into tables for one provider."""

    def __init__(self, schema: Schema, provider: Provider):
        """Initialize builder.

        Args:
            schema: Validated declaration
            provider: Provider whose type system the tables use
        """
        self.schema = schema
        self.provider = provider
        self.enums: Dict[str, EnumInfo] = {
            enum.name: self._build_enum(enum) for enum in schema.enums
        }

    def build(self) -> DatabaseSchema:
        """Build the desired database schema.

        Returns:
            DatabaseSchema with one table per model

        Raises:
            SchemaValidationError: If a type or attribute is not supported by the provider
        """
        result = DatabaseSchema()
        for model in self.schema.models:
            table = self._build_table(model)
            result.tables[table.name] = table

        if self.provider.supports_native_enums:
            result.enums = {enum.name: enum for enum in self.enums.values()}

        logger.debug(
            f"Built {len(result.tables)} table(s) and {len(result.enums)} enum(s) "
            f"for {self.provider.name}"
        )
        return result

    def _build_enum(self, enum: EnumDef) -> EnumInfo:
        return EnumInfo(
            name=_database_name(enum.attributes, "map", enum.name),
            values=[_database_name(value.attributes, "map", value.name) for value in enum.values],
        )

    def table_name(self, model: Model) -> str:
        return _database_name(model.attributes, "map", model.name)

    def column_name(self, model: Model, field_name: str) -> str:
        field = model.get_field(field_name)
        if field is None:
            return field_name
        return _database_name(field.attributes, "map", field.name)

    def _is_relation(self, field: ModelField) -> bool:
        return self.schema.get_model(field.type.name) is not None

    def _build_table(self, model: Model) -> TableInfo:
        table = TableInfo(name=self.table_name(model))

        for field in model.fields:
            if self._is_relation(field):
                continue
            column = self._build_column(model, field)
            table.columns[column.name] = column
            if column.primary_key:
                table.primary_key.append(column.name)

        composite = model.get_attribute("id")
        if composite is not None:
            names = field_list(composite.get_argument("fields", position=0)) or []
            table.primary_key = [self.column_name(model, name) for name in names]
            for name in table.primary_key:
                table.columns[name].primary_key = True
                table.columns[name].nullable = False

        for field in model.fields:
            unique = field.get_attribute("unique")
            if unique is not None and not self._is_relation(field):
                index_name = _string_argument(unique, "map")
                column_name = self.column_name(model, field.name)
                if index_name:
                    table.indexes.append(
                        IndexInfo(name=index_name, columns=[IndexColumn(name=column_name)], unique=True)
                    )
                else:
                    table.columns[column_name].unique = True

        for attribute in model.attributes:
            if attribute.name in ("unique", "index"):
                table.indexes.append(self._build_index(model, table, attribute))

        for field in model.fields:
            relation = field.get_attribute("relation")
            if relation is not None and relation.get_argument("fields") is not None:
                table.foreign_keys.append(self._build_foreign_key(model, table, field, relation))

        return table

    def _build_column(self, model: Model, field: ModelField) -> ColumnInfo:
        field_type = field.type
        enum = self.enums.get(field_type.name)

        if field_type.is_unsupported:
            sql_type = self.provider.normalize_type(field_type.unsupported)
        elif enum is not None:
            sql_type = self.provider.map_enum_type(enum)
        elif is_scalar_type(field_type.name):
            native = next((a for a in field.attributes if a.name.startswith("db.")), None)
            if native is not None:
                args = [
                    str(argument.value.value)
                    for argument in native.arguments
                    if isinstance(argument.value, ScalarValue)
                ]
                sql_type = self.provider.map_type(field_type.name, native.name[3:], args)
            else:
                sql_type = self.provider.map_type(field_type.name)
        else:
            raise SchemaValidationError(
                f"Type '{field_type.name}' cannot be mapped to a column",
                f"model {model.name}, field {field.name}",
            )

        if field_type.is_array:
            sql_type = self.provider.array_type(sql_type)

        is_id = field.has_attribute("id")
        default = None
        default_attribute = field.get_attribute("default")
        if default_attribute is not None:
            value = default_attribute.get_argument("value", position=0)
            if value is not None:
                default = value.to_source()
                if enum is not None and isinstance(value, ScalarValue):
                    default = self._enum_default(field_type.name, str(value.value))

        if is_id and default == "autoincrement()":
            sql_type = self.provider.autoincrement_type(sql_type)

        return ColumnInfo(
            name=_database_name(field.attributes, "map", field.name),
            type=sql_type,
            nullable=not (is_id or field_type.is_array) and field_type.is_optional,
            primary_key=is_id,
            default=default,
            enum_name=enum.name if enum is not None else None,
        )

    def _enum_default(self, enum_name: str, member: str) -> str:
        """Default naming the database value of an enum member."""
        declared = self.schema.get_enum(enum_name)
        for value in declared.values:
            if value.name == member:
                return _database_name(value.attributes, "map", value.name)
        return member

    def _build_index(self, model: Model, table: TableInfo, attribute: Attribute) -> IndexInfo:
        unique = attribute.name == "unique"
        items = attribute.get_argument("fields", position=0)
        columns = []
        for item in items.items if isinstance(items, ListValue) else []:
            if isinstance(item, FunctionCall):
                sort = None
                for argument in item.args:
                    if argument.name == "sort" and isinstance(argument.value, ScalarValue):
                        sort = "DESC" if str(argument.value.value).lower() == "desc" else None
                columns.append(IndexColumn(name=self.column_name(model, item.name), sort=sort))
            else:
                columns.append(IndexColumn(name=self.column_name(model, str(item.value))))

        name = _string_argument(attribute, "map") or _string_argument(attribute, "name")
        if not name:
            suffix = "key" if unique else "idx"
            name = f"{table.name}_{'_'.join(column.name for column in columns)}_{suffix}"
        return IndexInfo(name=name, columns=columns, unique=unique)

    def _build_foreign_key(
        self, model: Model, table: TableInfo, field: ModelField, relation: Attribute
    ) -> ForeignKeyInfo:
        target = self.schema.get_model(field.type.name)
        fields = field_list(relation.get_argument("fields")) or []
        references = field_list(relation.get_argument("references")) or []
        columns = [self.column_name(model, name) for name in fields]

        optional = all(
            table.columns[column].nullable for column in columns if column in table.columns
        )
        on_delete = _string_argument(relation, "onDelete") or ("SetNull" if optional else "Restrict")
        on_update = _string_argument(relation, "onUpdate") or "Cascade"

        return ForeignKeyInfo(
            name=_string_argument(relation, "map") or f"{table.name}_{'_'.join(columns)}_fkey",
            columns=columns,
            referenced_table=self.table_name(target),
            referenced_columns=[self.column_name(target, name) for name in references],
            on_delete=REFERENTIAL_ACTIONS[on_delete],
            on_update=REFERENTIAL_ACTIONS[on_update],
        )


def build_schema(schema: Schema, provider: Provider) -> DatabaseSchema:
    """Build the canonical schema of a declaration for a provider."""
    return SchemaBuilder(schema, provider).build()
