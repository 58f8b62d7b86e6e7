"""Read the live database structure into the canonical schema model."""

import logging
from typing import List, Optional

from schemashift.config import DEFAULT_LEDGER_TABLE
from schemashift.errors import ConnectivityError, IntrospectionError
from schemashift.models.schema import DatabaseSchema
from schemashift.providers.base import Provider

logger = logging.getLogger(__name__)


class Introspector:
    """Builds a DatabaseSchema from the catalog of a connected database."""

    def __init__(self, connection, provider: Optional[Provider] = None, ledger_table: str = DEFAULT_LEDGER_TABLE):
        """Initialize introspector.

        Args:
            connection: Open DatabaseConnection
            provider: Provider of the database; the connection's when None
            ledger_table: Migrations ledger table, which is never reported
        """
        self.connection = connection
        self.provider = provider or connection.provider
        self.ledger_table = ledger_table

    def list_tables(self) -> List[str]:
        """List user tables, excluding the ledger.

        Raises:
            ConnectivityError: If the catalog cannot be queried at all
        """
        try:
            names = self.provider.list_tables(self.connection)
        except self.connection.error_class as e:
            raise ConnectivityError(f"Failed to list tables: {e}") from e

        ledger = self.provider.normalize_identifier(self.ledger_table)
        return [
            name
            for name in names
            if self.provider.normalize_identifier(name) != ledger
            and not name.startswith("sqlite_")
        ]

    def introspect(self) -> DatabaseSchema:
        """Read every table and enum.

        Returns:
            The complete current schema

        Raises:
            ConnectivityError: If the database cannot be queried
            IntrospectionError: If reading any table fails; no partial
                schema is returned
        """
        schema = DatabaseSchema()
        failed = []

        for name in self.list_tables():
            try:
                schema.tables[name] = self.provider.read_table(self.connection, name)
            except self.connection.error_class as e:
                logger.error(f"Failed to introspect table {name}: {e}")
                failed.append(name)

        if failed:
            raise IntrospectionError(
                f"Failed to introspect table(s): {', '.join(failed)}", failed_tables=failed
            )

        try:
            schema.enums = self.provider.read_enums(self.connection)
        except self.connection.error_class as e:
            raise IntrospectionError(f"Failed to introspect enums: {e}") from e

        logger.debug(f"Introspected {len(schema.tables)} table(s) and {len(schema.enums)} enum(s)")
        return schema


def introspect(connection, provider: Optional[Provider] = None, ledger_table: str = DEFAULT_LEDGER_TABLE) -> DatabaseSchema:
    """Introspect a connected database.

    Args:
        connection: Open DatabaseConnection
        provider: Provider of the database; the connection's when None
        ledger_table: Migrations ledger table to leave out

    Returns:
        DatabaseSchema of the live database
    """
    return Introspector(connection, provider, ledger_table).introspect()
