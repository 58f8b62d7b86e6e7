"""Declaration language parser and validator."""

from pathlib import Path
from typing import Union

from schemashift.errors import SchemaSyntaxErrors, SchemaValidationErrors
from schemashift.models.declaration import Schema
from schemashift.parser.parser import parse
from schemashift.parser.validator import validate


def parse_file(path: Union[str, Path]):
    """Parse a declaration file.

    Returns:
        Tuple of the parsed schema and the list of syntax errors
    """
    return parse(Path(path).read_text(encoding="utf-8"))


def load_schema(text: str) -> Schema:
    """Parse and validate declaration text.

    Raises:
        SchemaSyntaxErrors: If the text has syntax errors
        SchemaValidationErrors: If the schema is not semantically valid
    """
    schema, errors = parse(text)
    if errors:
        raise SchemaSyntaxErrors(errors)

    problems = validate(schema)
    if problems:
        raise SchemaValidationErrors(problems)

    return schema


__all__ = ["parse", "parse_file", "validate", "load_schema"]
