"""Abstract syntax tree of a parsed schema declaration."""

import json
from typing import Annotated, List, Literal, Optional, Union
from pydantic import Field

from .base import DeclarationModel


class ScalarValue(DeclarationModel):
    """A string, number, boolean or bare identifier."""

    kind: Literal["scalar"] = "scalar"
    value: Union[bool, int, float, str] = Field(description="Literal value")
    literal_type: Literal["string", "number", "boolean", "identifier"] = Field(
        description="How the literal was written in the source"
    )

    def to_source(self) -> str:
        """Render the value in declaration syntax."""
        if self.literal_type == "string":
            return json.dumps(self.value, ensure_ascii=False)
        if self.literal_type == "boolean":
            return "true" if self.value else "false"
        return str(self.value)


class ListValue(DeclarationModel):
    """A bracketed list of values, e.g. ``[id, email]``."""

    kind: Literal["list"] = "list"
    items: List["Value"] = Field(default_factory=list, description="List items")

    def to_source(self) -> str:
        return "[" + ", ".join(item.to_source() for item in self.items) + "]"


class FunctionCall(DeclarationModel):
    """A call such as ``now()``, ``dbgenerated("...")`` or ``title(sort: Desc)``."""

    kind: Literal["function"] = "function"
    name: str = Field(description="Function name")
    args: List["Argument"] = Field(default_factory=list, description="Call arguments")

    def to_source(self) -> str:
        return f"{self.name}(" + ", ".join(arg.to_source() for arg in self.args) + ")"


Value = Annotated[
    Union[ScalarValue, ListValue, FunctionCall], Field(discriminator="kind")
]


class Argument(DeclarationModel):
    """A positional or named attribute argument."""

    name: Optional[str] = Field(default=None, description="Argument name if named")
    value: Value = Field(description="Argument value")

    def to_source(self) -> str:
        if self.name:
            return f"{self.name}: {self.value.to_source()}"
        return self.value.to_source()


ListValue.model_rebuild()
FunctionCall.model_rebuild()
Argument.model_rebuild()


class Attribute(DeclarationModel):
    """A field attribute (``@id``) or block attribute (``@@index([...])``)."""

    name: str = Field(description="Attribute name without @, may be dotted")
    arguments: List[Argument] = Field(default_factory=list)

    def get_argument(
        self, name: Optional[str] = None, position: Optional[int] = None
    ) -> Optional[Value]:
        """Find an argument by name, falling back to a positional slot.

        Args:
            name: Argument name to look for
            position: Index among the positional arguments to use if no
                named argument matches

        Returns:
            The argument value, or None
        """
        if name is not None:
            for arg in self.arguments:
                if arg.name == name:
                    return arg.value

        if position is not None:
            positional = [arg for arg in self.arguments if arg.name is None]
            if position < len(positional):
                return positional[position].value

        return None


class FieldType(DeclarationModel):
    """The type of a model field."""

    name: str = Field(description="Scalar, model or enum name")
    is_array: bool = Field(default=False, description="Declared with []")
    is_optional: bool = Field(default=False, description="Declared with ?")
    unsupported: Optional[str] = Field(
        default=None, description="Database type for Unsupported(\"...\") fields"
    )

    @property
    def is_unsupported(self) -> bool:
        return self.unsupported is not None


class ModelField(DeclarationModel):
    """A field inside a model block."""

    name: str = Field(description="Field name")
    type: FieldType = Field(description="Field type")
    attributes: List[Attribute] = Field(default_factory=list)

    def get_attribute(self, name: str) -> Optional[Attribute]:
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None

    def has_attribute(self, name: str) -> bool:
        return self.get_attribute(name) is not None


class Model(DeclarationModel):
    """A ``model`` block."""

    name: str = Field(description="Model name")
    fields: List[ModelField] = Field(default_factory=list)
    attributes: List[Attribute] = Field(default_factory=list)

    def get_field(self, name: str) -> Optional[ModelField]:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def get_attributes(self, name: str) -> List[Attribute]:
        return [attribute for attribute in self.attributes if attribute.name == name]

    def get_attribute(self, name: str) -> Optional[Attribute]:
        matches = self.get_attributes(name)
        return matches[0] if matches else None


class EnumValue(DeclarationModel):
    """A member of an ``enum`` block."""

    name: str = Field(description="Value name")
    attributes: List[Attribute] = Field(default_factory=list)


class EnumDef(DeclarationModel):
    """An ``enum`` block."""

    name: str = Field(description="Enum name")
    values: List[EnumValue] = Field(default_factory=list)
    attributes: List[Attribute] = Field(default_factory=list)


class ConfigField(DeclarationModel):
    """A ``key = value`` line in a datasource or generator block."""

    name: str
    value: Value


class ConfigBlock(DeclarationModel):
    """Common shape of datasource and generator blocks."""

    name: str = Field(description="Block name")
    fields: List[ConfigField] = Field(default_factory=list)

    def get(self, key: str) -> Optional[Value]:
        for field in self.fields:
            if field.name == key:
                return field.value
        return None

    @property
    def provider(self) -> Optional[str]:
        value = self.get("provider")
        if isinstance(value, ScalarValue) and value.literal_type == "string":
            return str(value.value)
        return None


class Datasource(ConfigBlock):
    """A ``datasource`` block."""

    pass


class Generator(ConfigBlock):
    """A ``generator`` block."""

    pass


class Schema(DeclarationModel):
    """Root of a parsed declaration."""

    datasources: List[Datasource] = Field(default_factory=list)
    generators: List[Generator] = Field(default_factory=list)
    models: List[Model] = Field(default_factory=list)
    enums: List[EnumDef] = Field(default_factory=list)

    def get_model(self, name: str) -> Optional[Model]:
        for model in self.models:
            if model.name == name:
                return model
        return None

    def get_enum(self, name: str) -> Optional[EnumDef]:
        for enum in self.enums:
            if enum.name == name:
                return enum
        return None

    @property
    def provider(self) -> Optional[str]:
        """Provider declared by the first datasource, if any."""
        for datasource in self.datasources:
            if datasource.provider:
                return datasource.provider
        return None
