"""Replay migration history into a scratch database."""

import logging
from typing import List, Optional

from schemashift.config import DEFAULT_LEDGER_TABLE
from schemashift.core.connection import DatabaseConnection
from schemashift.core.introspector import introspect
from schemashift.errors import MigrationError
from schemashift.managers.migration import execute_sql_script
from schemashift.models import DatabaseSchema, Migration
from schemashift.providers.base import Provider

logger = logging.getLogger(__name__)


class ShadowDatabase:
    """Computes the structure a migration history produces.

    The shadow database is wiped before every replay. SQLite uses a private
    in-memory database unless a URL is given.
    """

    def __init__(
        self,
        provider: Provider,
        url: Optional[str] = None,
        ledger_table: str = DEFAULT_LEDGER_TABLE,
    ):
        """Initialize shadow database.

        Args:
            provider: Provider of the target database
            url: Connection URL of the shadow database
            ledger_table: Ledger table name, excluded from introspection
        """
        self.provider = provider
        self.url = url if url is not None else provider.default_shadow_url
        self.ledger_table = ledger_table

    @property
    def available(self) -> bool:
        return self.url is not None

    def replay(self, migrations: List[Migration]) -> DatabaseSchema:
        """Apply migrations to an empty shadow database and introspect it.

        Args:
            migrations: Migrations in the order they should run

        Returns:
            The schema the migrations produce

        Raises:
            MigrationError: If no shadow database is configured
            ApplyError: If a migration fails to apply
        """
        if not self.available:
            raise MigrationError(
                f"A shadow database URL is required to replay migrations for {self.provider.name}"
            )

        with DatabaseConnection(self.url, self.provider) as connection:
            if not connection.is_memory:
                logger.debug("Resetting shadow database")
                self.provider.reset(connection)

            for migration in migrations:
                logger.debug(f"Replaying migration {migration.name} on shadow database")
                execute_sql_script(connection, migration.sql, migration.name)

            schema = introspect(connection, self.provider, self.ledger_table)

        logger.debug(f"Replayed {len(migrations)} migration(s) on shadow database")
        return schema
