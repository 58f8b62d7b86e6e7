"""Applied-migrations ledger stored in the target database."""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from schemashift.config import DEFAULT_LEDGER_TABLE
from schemashift.errors import MigrationError
from schemashift.models import LedgerEntry, Migration

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "migration_name",
    "checksum",
    "started_at",
    "finished_at",
    "rolled_back_at",
    "logs",
    "applied_steps_count",
)


class MigrationLedger:
    """Tracks which migrations were applied to a database.

    Every read re-queries the table; nothing is cached between calls.
    """

    def __init__(self, connection, table_name: str = DEFAULT_LEDGER_TABLE):
        """Initialize ledger.

        Args:
            connection: Open DatabaseConnection
            table_name: Name of the ledger table
        """
        self.connection = connection
        self.provider = connection.provider
        self.table_name = table_name
        self._table = self.provider.quote_identifier(table_name)
        self._p = self.provider.placeholder

    def ensure_table(self) -> None:
        """Create the ledger table if it does not exist."""
        try:
            self.connection.execute(self.provider.ledger_table_ddl(self.table_name))
        except self.connection.error_class as e:
            raise MigrationError(f"Failed to create ledger table {self.table_name}: {e}") from e

    def get_entries(self) -> List[LedgerEntry]:
        """Get every ledger row in application order.

        Returns:
            List of LedgerEntry objects, oldest first
        """
        self.ensure_table()
        columns = ", ".join(self.provider.quote_identifier(c) for c in _COLUMNS)
        rows = self.connection.fetch_all(
            f"SELECT {columns} FROM {self._table} ORDER BY "
            f"{self.provider.quote_identifier('started_at')}, "
            f"{self.provider.quote_identifier('migration_name')}"
        )
        return [LedgerEntry(**dict(zip(_COLUMNS, row))) for row in rows]

    def get_applied(self) -> List[LedgerEntry]:
        """Get entries of successfully applied, not rolled back migrations."""
        return [entry for entry in self.get_entries() if entry.is_applied]

    def get_failed(self) -> List[LedgerEntry]:
        """Get entries of migrations that started but never finished."""
        return [entry for entry in self.get_entries() if entry.is_failed]

    def _now(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self.provider.naive_utc_timestamps:
            return now.replace(tzinfo=None)
        return now

    def record_started(self, migration: Migration) -> str:
        """Insert a row for a migration that is about to run.

        Returns:
            ID of the new ledger row
        """
        entry_id = str(uuid.uuid4())
        self.connection.execute(
            f"INSERT INTO {self._table} ({self.provider.column_list(['id', 'checksum', 'migration_name', 'started_at', 'applied_steps_count'])}) "
            f"VALUES ({self._p}, {self._p}, {self._p}, {self._p}, 0)",
            (entry_id, migration.checksum, migration.name, self._now()),
        )
        return entry_id

    def record_finished(self, entry_id: str, applied_steps_count: int) -> None:
        """Mark a ledger row as finished."""
        self.connection.execute(
            f"UPDATE {self._table} SET "
            f"{self.provider.quote_identifier('finished_at')} = {self._p}, "
            f"{self.provider.quote_identifier('applied_steps_count')} = {self._p} "
            f"WHERE {self.provider.quote_identifier('id')} = {self._p}",
            (self._now(), applied_steps_count, entry_id),
        )

    def record_failure(self, entry_id: str, logs: str, applied_steps_count: int) -> None:
        """Store the error of a migration that failed part way."""
        self.connection.execute(
            f"UPDATE {self._table} SET "
            f"{self.provider.quote_identifier('logs')} = {self._p}, "
            f"{self.provider.quote_identifier('applied_steps_count')} = {self._p} "
            f"WHERE {self.provider.quote_identifier('id')} = {self._p}",
            (logs, applied_steps_count, entry_id),
        )

    def _find_failed(self, migration_name: str) -> Optional[LedgerEntry]:
        for entry in self.get_failed():
            if entry.migration_name == migration_name:
                return entry
        return None

    def mark_rolled_back(self, migration_name: str) -> None:
        """Mark a failed migration as rolled back.

        Raises:
            MigrationError: If the migration has no failed ledger entry
        """
        entry = self._find_failed(migration_name)
        if entry is None:
            raise MigrationError(
                f"Migration {migration_name} cannot be rolled back because it is not in a failed state"
            )
        self.connection.execute(
            f"UPDATE {self._table} SET {self.provider.quote_identifier('rolled_back_at')} = {self._p} "
            f"WHERE {self.provider.quote_identifier('id')} = {self._p}",
            (self._now(), entry.id),
        )
        logger.info(f"Marked migration {migration_name} as rolled back")

    def mark_applied(self, migration: Migration) -> None:
        """Record a migration as applied without running it.

        A failed entry for the same migration is marked rolled back first.

        Raises:
            MigrationError: If the migration is already recorded as applied
        """
        if any(entry.migration_name == migration.name for entry in self.get_applied()):
            raise MigrationError(f"Migration {migration.name} is already recorded as applied")

        failed = self._find_failed(migration.name)
        if failed is not None:
            self.mark_rolled_back(migration.name)

        entry_id = self.record_started(migration)
        self.record_finished(entry_id, 0)
        logger.info(f"Marked migration {migration.name} as applied")
