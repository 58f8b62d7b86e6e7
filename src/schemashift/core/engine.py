"""Library entry points for the migration workflows."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from schemashift.config import EngineConfig
from schemashift.core.builder import build_schema
from schemashift.core.connection import DatabaseConnection
from schemashift.core.differ import compare, ensure_no_data_loss, find_data_loss
from schemashift.core.introspector import introspect
from schemashift.core.sql_generator import generate
from schemashift.errors import (
    ConnectivityError,
    DriftError,
    MigrationError,
    SchemaValidationError,
    UnsupportedProviderError,
)
from schemashift.managers.diagnostic import DevDiagnostic
from schemashift.managers.migration import MigrationManager, execute_sql_script, load_migrations
from schemashift.managers.shadow import ShadowDatabase
from schemashift.models import (
    DatabaseSchema,
    DevAction,
    DevResult,
    DiagnosticResult,
    DiffSource,
    MigrationStatus,
    PushResult,
    Schema,
)
from schemashift.parser import load_schema
from schemashift.providers import detect_provider, get_provider
from schemashift.providers.base import Provider

logger = logging.getLogger(__name__)


class MigrationEngine:
    """Runs the development, deploy and push workflows for one database.

    Every call opens its own connection and closes it before returning.
    """

    def __init__(self, config: EngineConfig):
        """Initialize migration engine.

        Args:
            config: Resolved engine inputs
        """
        self.config = config

    def resolve_provider(self, schema: Optional[Schema] = None) -> Provider:
        """Pick the provider from the config, the datasource or the URL scheme.

        Raises:
            SchemaValidationError: If the datasource disagrees with the config or URL
            UnsupportedProviderError: If no provider can be determined
        """
        declared = schema.provider if schema is not None else None
        from_url = detect_provider(self.config.database_url) if self.config.database_url else None
        name = self.config.provider or declared or from_url

        if name is None:
            raise UnsupportedProviderError(
                "Cannot determine the provider: set a datasource provider or a database URL"
            )
        if declared is not None and declared != name:
            raise SchemaValidationError(
                f"The datasource provider '{declared}' does not match the configured provider '{name}'"
            )
        if from_url is not None and from_url != name:
            raise SchemaValidationError(
                f"The database URL is for '{from_url}' but the provider is '{name}'"
            )
        return get_provider(name)

    def _load(self, schema_text: str):
        schema = load_schema(schema_text)
        provider = self.resolve_provider(schema)
        return provider, build_schema(schema, provider)

    @contextmanager
    def _connect(self, provider: Provider):
        if not self.config.database_url:
            raise ConnectivityError("No database URL configured")
        connection = DatabaseConnection(self.config.database_url, provider)
        try:
            yield connection
        finally:
            connection.close()

    def _manager(self, connection) -> MigrationManager:
        return MigrationManager(connection, self.config.migrations_dir, self.config.ledger_table)

    def _shadow(self, provider: Provider) -> ShadowDatabase:
        return ShadowDatabase(provider, self.config.shadow_database_url, self.config.ledger_table)

    def _introspect(self, connection) -> DatabaseSchema:
        return introspect(connection, connection.provider, self.config.ledger_table)

    def _diagnose(self, connection, desired: DatabaseSchema) -> DiagnosticResult:
        diagnostic = DevDiagnostic(
            self._manager(connection),
            connection.provider,
            self._shadow(connection.provider),
            self.config.index_order_significant,
        )
        return diagnostic.diagnose(desired)

    def diagnose(self, schema_text: str) -> DiagnosticResult:
        """Run the development diagnostic for a declaration.

        Returns:
            DiagnosticResult naming APPLY, CREATE or RESET
        """
        provider, desired = self._load(schema_text)
        with self._connect(provider) as connection:
            return self._diagnose(connection, desired)

    def migrate_dev(self, schema_text: str, name: str = "", create_only: bool = False) -> DevResult:
        """Bring the database in line with the declaration through a new migration.

        Pending migrations are applied first. If the declaration still differs
        from the database, a migration is written and, unless ``create_only``,
        applied.

        Args:
            schema_text: Declaration text
            name: Description for the new migration
            create_only: Write the migration without applying it

        Returns:
            DevResult with applied migrations, the created migration and
            any accepted data-loss warnings

        Raises:
            DriftError: If the database must be reset first
            DestructiveChangeError: If the changes lose data and that was not accepted
        """
        provider, desired = self._load(schema_text)
        result = DevResult()

        with self._connect(provider) as connection:
            manager = self._manager(connection)
            diagnostic = self._diagnose(connection, desired)

            if diagnostic.action == DevAction.RESET:
                logger.error("Database must be reset before migrating")
                raise DriftError(diagnostic.reason)

            if diagnostic.action == DevAction.APPLY:
                result.applied.extend(manager.apply_pending())

            change_set = compare(
                desired, self._introspect(connection), provider, self.config.index_order_significant
            )
            if change_set.is_empty():
                logger.info("Database is in sync with the declaration")
                return result

            if create_only:
                result.warnings = find_data_loss(change_set, provider)
            else:
                result.warnings = ensure_no_data_loss(
                    change_set, provider, self.config.accept_data_loss
                )

            migration = manager.create_migration(name, generate(change_set, provider))
            result.created = migration
            if not create_only:
                manager.apply_migration(migration)
                result.applied.append(migration.name)

        return result

    def migrate_deploy(self) -> List[str]:
        """Apply all pending migrations.

        Returns:
            Names of the applied migrations

        Raises:
            DriftError: If applied migrations are missing, modified or failed
        """
        provider = self.resolve_provider()
        with self._connect(provider) as connection:
            manager = self._manager(connection)

            problems = []
            missing = manager.get_missing_migrations()
            if missing:
                problems.append(f"missing locally: {', '.join(missing)}")
            modified = manager.get_modified_migrations()
            if modified:
                problems.append(f"modified after being applied: {', '.join(modified)}")
            failed = manager.get_failed_migrations()
            if failed:
                problems.append(f"failed: {', '.join(failed)}")
            if problems:
                raise DriftError(
                    "The migration history does not match the database. Migrations "
                    + "; ".join(problems)
                )

            applied = manager.apply_pending()
            if not applied:
                logger.info("No pending migrations to apply")
            return applied

    def migrate_reset(self) -> List[str]:
        """Drop every object in the database and replay all local migrations.

        Returns:
            Names of the applied migrations
        """
        provider = self.resolve_provider()
        with self._connect(provider) as connection:
            logger.info(f"Resetting {provider.name} database")
            provider.reset(connection)
            return self._manager(connection).apply_pending()

    def migrate_status(self) -> MigrationStatus:
        """Compare local migrations with the ledger."""
        provider = self.resolve_provider()
        with self._connect(provider) as connection:
            return self._manager(connection).status()

    def migrate_resolve(
        self, applied: Optional[str] = None, rolled_back: Optional[str] = None
    ) -> None:
        """Record a migration as applied or a failed one as rolled back.

        Raises:
            MigrationError: Unless exactly one of the arguments is given
        """
        if (applied is None) == (rolled_back is None):
            raise MigrationError("Specify exactly one of applied or rolled_back")

        provider = self.resolve_provider()
        with self._connect(provider) as connection:
            manager = self._manager(connection)
            if applied is not None:
                manager.mark_applied(applied)
            else:
                manager.mark_rolled_back(rolled_back)

    def db_push(self, schema_text: str) -> PushResult:
        """Apply the declaration directly, without writing a migration.

        Raises:
            DestructiveChangeError: If the changes lose data and that was not accepted
        """
        provider, desired = self._load(schema_text)
        with self._connect(provider) as connection:
            change_set = compare(
                desired, self._introspect(connection), provider, self.config.index_order_significant
            )
            warnings = ensure_no_data_loss(change_set, provider, self.config.accept_data_loss)
            sql = generate(change_set, provider)
            if sql:
                steps = execute_sql_script(connection, sql)
                logger.info(f"Pushed {steps} statement(s) to the database")
            else:
                logger.info("Database is already in sync with the declaration")

        return PushResult(change_set=change_set, sql=sql, warnings=warnings)

    def _diff_provider(self, sources: List[DiffSource]) -> Provider:
        if self.config.provider:
            return get_provider(self.config.provider)
        for source in sources:
            if source.kind == "schema":
                return self.resolve_provider(load_schema(source.value))
        for source in sources:
            if source.kind == "database":
                return get_provider(detect_provider(source.value))
        return self.resolve_provider()

    def _source_schema(self, source: DiffSource, provider: Provider) -> DatabaseSchema:
        if source.kind == "empty":
            return DatabaseSchema()
        if source.kind == "schema":
            return build_schema(load_schema(source.value), provider)
        if source.kind == "database":
            with DatabaseConnection(source.value, provider) as connection:
                return self._introspect(connection)
        return self._shadow(provider).replay(load_migrations(Path(source.value)))

    def diff(self, from_source: DiffSource, to_source: DiffSource) -> str:
        """Render the script that turns one schema source into another.

        Args:
            from_source: Current side
            to_source: Target side

        Returns:
            SQL script, empty when the sources are equivalent
        """
        provider = self._diff_provider([from_source, to_source])
        actual = self._source_schema(from_source, provider)
        desired = self._source_schema(to_source, provider)
        change_set = compare(desired, actual, provider, self.config.index_order_significant)
        return generate(change_set, provider)
