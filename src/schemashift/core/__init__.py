"""Core schemashift functionality."""

from schemashift.core.builder import SchemaBuilder, build_schema
from schemashift.core.connection import DatabaseConnection
from schemashift.core.differ import SchemaDiffer, compare, ensure_no_data_loss, find_data_loss
from schemashift.core.introspector import Introspector, introspect
from schemashift.core.sql_generator import SQLGenerator, generate

__all__ = [
    "SchemaBuilder",
    "build_schema",
    "DatabaseConnection",
    "SchemaDiffer",
    "compare",
    "ensure_no_data_loss",
    "find_data_loss",
    "Introspector",
    "introspect",
    "SQLGenerator",
    "generate",
]
