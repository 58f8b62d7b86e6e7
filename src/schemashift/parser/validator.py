"""Semantic validation of a parsed declaration."""

from typing import List, Optional, Set

from schemashift.errors import SchemaValidationError
from schemashift.models.declaration import (
    Attribute,
    FunctionCall,
    ListValue,
    Model,
    ModelField,
    ScalarValue,
    Schema,
)
from schemashift.utils.type_utils import is_scalar_type

VALID_PROVIDERS = ("postgresql", "mysql", "sqlite")

REFERENTIAL_ACTIONS = ("Cascade", "Restrict", "NoAction", "SetNull", "SetDefault")


def field_list(value) -> Optional[List[str]]:
    """Read a ``[a, b(sort: Desc)]`` list into field names.

    Returns:
        Field names, or None if the value is not a list of field references
    """
    if not isinstance(value, ListValue):
        return None

    names = []
    for item in value.items:
        if isinstance(item, ScalarValue) and item.literal_type == "identifier":
            names.append(str(item.value))
        elif isinstance(item, FunctionCall):
            names.append(item.name)
        else:
            return None
    return names


class SchemaValidator:
    """Checks references and attributes that the parser accepts blindly."""

    def __init__(self, schema: Schema):
        self.schema = schema
        self.errors: List[SchemaValidationError] = []
        self.model_names: Set[str] = {model.name for model in schema.models}
        self.enum_names: Set[str] = {enum.name for enum in schema.enums}

    def error(self, message: str, location: Optional[str] = None) -> None:
        self.errors.append(SchemaValidationError(message, location))

    def validate(self) -> List[SchemaValidationError]:
        """Run every check.

        Returns:
            List of validation errors, empty when the schema is valid
        """
        for datasource in self.schema.datasources:
            location = f"datasource {datasource.name}"
            if datasource.get("provider") is None:
                self.error("Datasource must define a 'provider'", location)
            elif datasource.provider not in VALID_PROVIDERS:
                self.error(
                    f"Invalid provider '{datasource.get('provider').to_source()}'. "
                    f"Valid providers: {', '.join(VALID_PROVIDERS)}",
                    location,
                )

        if len(self.schema.datasources) > 1:
            self.error("Only one datasource block is allowed")

        for generator in self.schema.generators:
            if generator.get("provider") is None:
                self.error("Generator must define a 'provider'", f"generator {generator.name}")

        seen = set()
        for model in self.schema.models:
            if model.name in seen:
                self.error(f"Model '{model.name}' is defined more than once")
            seen.add(model.name)
            if model.name in self.enum_names:
                self.error(f"'{model.name}' is defined as both a model and an enum")
            self._validate_model(model)

        seen = set()
        for enum in self.schema.enums:
            location = f"enum {enum.name}"
            if enum.name in seen:
                self.error(f"Enum '{enum.name}' is defined more than once")
            seen.add(enum.name)
            if not enum.values:
                self.error("Enum must have at least one value", location)
            values = set()
            for value in enum.values:
                if value.name in values:
                    self.error(f"Value '{value.name}' is defined more than once", location)
                values.add(value.name)

        return self.errors

    def _validate_model(self, model: Model) -> None:
        field_names = set()
        id_fields = []

        for field in model.fields:
            location = f"model {model.name}, field {field.name}"
            if field.name in field_names:
                self.error(f"Field '{field.name}' is defined more than once", f"model {model.name}")
            field_names.add(field.name)

            self._validate_field_type(field, location)
            if field.has_attribute("id"):
                id_fields.append(field.name)

            for attribute in field.attributes:
                if attribute.name == "default":
                    self._validate_default(field, attribute, location)
                elif attribute.name == "relation":
                    self._validate_relation(model, field, attribute, location)

        if len(id_fields) > 1:
            self.error(
                "Only one field can be marked @id; use @@id([...]) for a composite key",
                f"model {model.name}",
            )
        if id_fields and model.get_attribute("id"):
            self.error("Model cannot have both @id and @@id", f"model {model.name}")

        for attribute in model.attributes:
            if attribute.name in ("id", "unique", "index"):
                names = field_list(attribute.get_argument("fields", position=0))
                if not names:
                    self.error(
                        f"@@{attribute.name} requires a list of fields",
                        f"model {model.name}",
                    )
                    continue
                for name in names:
                    if model.get_field(name) is None:
                        self.error(
                            f"@@{attribute.name} references unknown field '{name}'",
                            f"model {model.name}",
                        )

    def _validate_field_type(self, field: ModelField, location: str) -> None:
        type_name = field.type.name
        if field.type.is_unsupported:
            return
        if is_scalar_type(type_name):
            if field.type.is_array and self.schema.provider not in (None, "postgresql"):
                self.error(
                    f"Scalar lists are not supported by the '{self.schema.provider}' provider",
                    location,
                )
            return
        if type_name in self.enum_names or type_name in self.model_names:
            return
        self.error(f"Type '{type_name}' is neither a built-in type, a model nor an enum", location)

    def _validate_default(self, field: ModelField, attribute: Attribute, location: str) -> None:
        if not attribute.arguments:
            self.error("@default requires a value", location)
            return

        enum = self.schema.get_enum(field.type.name)
        value = attribute.get_argument("value", position=0)
        if enum is not None and isinstance(value, ScalarValue):
            members = [member.name for member in enum.values]
            if value.literal_type == "identifier" and value.value not in members:
                self.error(
                    f"Default '{value.value}' is not a value of enum '{enum.name}'", location
                )

    def _validate_relation(
        self, model: Model, field: ModelField, attribute: Attribute, location: str
    ) -> None:
        fields_value = attribute.get_argument("fields")
        references_value = attribute.get_argument("references")

        if (fields_value is None) != (references_value is None):
            self.error("@relation requires both 'fields' and 'references' or neither", location)
            return

        for action_name in ("onDelete", "onUpdate"):
            action = attribute.get_argument(action_name)
            if action is not None and (
                not isinstance(action, ScalarValue) or action.value not in REFERENTIAL_ACTIONS
            ):
                self.error(
                    f"Invalid {action_name} action. Valid actions: {', '.join(REFERENTIAL_ACTIONS)}",
                    location,
                )

        if fields_value is None:
            return

        target = self.schema.get_model(field.type.name)
        if target is None:
            self.error(f"@relation target '{field.type.name}' is not a model", location)
            return

        fields = field_list(fields_value)
        references = field_list(references_value)
        if fields is None or references is None:
            self.error("@relation 'fields' and 'references' must be lists of fields", location)
            return

        if len(fields) != len(references):
            self.error(
                f"@relation 'fields' has {len(fields)} entries but 'references' has {len(references)}",
                location,
            )

        for name in fields:
            if model.get_field(name) is None:
                self.error(f"@relation references unknown field '{name}'", location)
        for name in references:
            if target.get_field(name) is None:
                self.error(
                    f"@relation references unknown field '{name}' on model '{target.name}'",
                    location,
                )


def validate(schema: Schema) -> List[SchemaValidationError]:
    """Validate a parsed schema.

    Args:
        schema: Schema returned by the parser without syntax errors

    Returns:
        List of validation errors
    """
    return SchemaValidator(schema).validate()
