"""Type utilities shared by the builder and the providers."""

import re
from typing import List, Tuple

# Built-in scalar types of the declaration language
SCALAR_TYPES = (
    "String",
    "Int",
    "BigInt",
    "Float",
    "Decimal",
    "Boolean",
    "DateTime",
    "Json",
    "Bytes",
)

_TYPE_PATTERN = re.compile(r"^\s*([^(]+?)\s*(?:\((.*)\))?\s*(\[\])?\s*$", re.DOTALL)


def is_scalar_type(name: str) -> bool:
    """Check if a type name is a built-in scalar type."""
    return name in SCALAR_TYPES


def split_type(type_str: str) -> Tuple[str, List[str]]:
    """Split a SQL type into its base name and arguments.

    ``"VARCHAR(255)"`` gives ``("VARCHAR", ["255"])`` and
    ``"DECIMAL(65, 30)"`` gives ``("DECIMAL", ["65", "30"])``. Array
    suffixes are kept on the base name.

    Args:
        type_str: The type string to split

    Returns:
        Tuple of base name and argument strings

    Raises:
        ValueError: If the type string is empty
    """
    if not type_str or not type_str.strip():
        raise ValueError("Type cannot be empty")

    match = _TYPE_PATTERN.match(type_str)
    if not match:
        return type_str.strip(), []

    base, args, array = match.groups()
    arguments = [arg.strip() for arg in args.split(",")] if args else []
    return base + (array or ""), arguments


def join_type(base: str, arguments: List[str]) -> str:
    """Inverse of split_type for types without an array suffix."""
    if not arguments:
        return base
    return f"{base}({','.join(arguments)})"
