"""Utility functions for schemashift."""

from schemashift.utils.name_validator import (
    InvalidMigrationNameError,
    is_valid_migration_name,
    normalize_migration_name,
    validate_migration_name,
)
from schemashift.utils.sql import (
    calculate_checksum,
    split_sql_statements,
    strip_sql_comments,
)
from schemashift.utils.type_utils import SCALAR_TYPES, is_scalar_type, split_type

__all__ = [
    "InvalidMigrationNameError",
    "is_valid_migration_name",
    "normalize_migration_name",
    "validate_migration_name",
    "calculate_checksum",
    "split_sql_statements",
    "strip_sql_comments",
    "SCALAR_TYPES",
    "is_scalar_type",
    "split_type",
]
