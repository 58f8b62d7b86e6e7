"""schemashift managers."""

from schemashift.managers.ledger import MigrationLedger
from schemashift.managers.migration import MigrationManager, execute_sql_script, load_migrations
from schemashift.managers.shadow import ShadowDatabase
from schemashift.managers.diagnostic import DevDiagnostic, format_drift_summary

__all__ = [
    "MigrationLedger",
    "MigrationManager",
    "execute_sql_script",
    "load_migrations",
    "ShadowDatabase",
    "DevDiagnostic",
    "format_drift_summary",
]
