"""schemashift - declarative schema migrations for PostgreSQL, MySQL and SQLite."""

from schemashift.config import EngineConfig
from schemashift.core.engine import MigrationEngine
from schemashift.errors import (
    ApplyError,
    ConnectivityError,
    DestructiveChangeError,
    DriftError,
    IntrospectionError,
    MigrationError,
    MigrationLockError,
    SchemaShiftError,
    SchemaSyntaxError,
    SchemaSyntaxErrors,
    SchemaValidationError,
    SchemaValidationErrors,
    UnsupportedProviderError,
)
from schemashift.models import DevAction, DiffSource
from schemashift.parser import load_schema

try:
    from importlib.metadata import version
    __version__ = version("schemashift")
except Exception:
    # Package metadata is not available when running from a source checkout
    __version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "MigrationEngine",
    "DevAction",
    "DiffSource",
    "load_schema",
    "ApplyError",
    "ConnectivityError",
    "DestructiveChangeError",
    "DriftError",
    "IntrospectionError",
    "MigrationError",
    "MigrationLockError",
    "SchemaShiftError",
    "SchemaSyntaxError",
    "SchemaSyntaxErrors",
    "SchemaValidationError",
    "SchemaValidationErrors",
    "UnsupportedProviderError",
]
