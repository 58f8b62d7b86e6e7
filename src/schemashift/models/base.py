"""Base models for schemashift."""

from pydantic import BaseModel, ConfigDict


class SchemaShiftModel(BaseModel):
    """Base model for engine data structures."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        extra="forbid",
    )


class DeclarationModel(BaseModel):
    """Base model for the parsed declaration, which is immutable once built."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
