"""Migration history management for schemashift."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

from schemashift.config import DEFAULT_LEDGER_TABLE, MigrationLock
from schemashift.errors import ApplyError, MigrationError
from schemashift.managers.ledger import MigrationLedger
from schemashift.models import (
    LedgerEntry,
    Migration,
    MigrationState,
    MigrationStatus,
    MigrationStatusEntry,
)
from schemashift.utils.name_validator import normalize_migration_name, validate_migration_name
from schemashift.utils.sql import calculate_checksum, split_sql_statements

logger = logging.getLogger(__name__)

MIGRATION_FILE_NAME = "migration.sql"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def execute_sql_script(
    connection,
    sql: str,
    migration_name: Optional[str] = None,
    before_commit: Optional[Callable[[int], None]] = None,
) -> int:
    """Run a script as one unit of work.

    On providers with transactional DDL the whole script, plus whatever
    ``before_commit`` writes, commits or rolls back together.

    Args:
        connection: Open DatabaseConnection
        sql: Script text
        migration_name: Name used in error messages
        before_commit: Called with the number of executed statements
            just before the transaction commits

    Returns:
        Number of statements executed

    Raises:
        ApplyError: If a statement fails; carries the offending statement
    """
    provider = connection.provider
    statements = split_sql_statements(sql)
    applied = 0

    provider.before_apply(connection)
    try:
        with connection.transaction():
            for statement in statements:
                logger.debug(f"Executing: {statement}")
                try:
                    connection.execute(statement)
                except connection.error_class as e:
                    raise ApplyError(migration_name, statement, str(e), applied) from e
                applied += 1

            problem = provider.verify(connection)
            if problem:
                raise ApplyError(migration_name, "PRAGMA foreign_key_check", problem, applied)

            if before_commit is not None:
                before_commit(applied)
    finally:
        provider.after_apply(connection)

    return applied


def load_migrations(migrations_dir: Path) -> List[Migration]:
    """Read the migration folders of a directory.

    Args:
        migrations_dir: Root directory of migration folders

    Returns:
        Migrations in name (timestamp) order; empty if the directory does not exist

    Raises:
        MigrationError: If the directory or a migration cannot be read
    """
    migrations_dir = Path(migrations_dir)
    if not migrations_dir.exists():
        return []

    try:
        entries = sorted(path for path in migrations_dir.iterdir() if path.is_dir())
    except OSError as e:
        raise MigrationError(f"Failed to read migrations directory {migrations_dir}: {e}") from e

    migrations = []
    for path in entries:
        sql_path = path / MIGRATION_FILE_NAME
        if not sql_path.exists():
            raise MigrationError(f"Migration directory {path.name} has no {MIGRATION_FILE_NAME}")
        try:
            sql = sql_path.read_text(encoding="utf-8")
        except OSError as e:
            raise MigrationError(f"Failed to read {sql_path}: {e}") from e
        migrations.append(
            Migration(name=path.name, path=path, sql=sql, checksum=calculate_checksum(sql))
        )
    return migrations


class MigrationManager:
    """Compares local migration folders with the ledger and applies them."""

    def __init__(
        self,
        connection,
        migrations_dir: Path,
        ledger_table: str = DEFAULT_LEDGER_TABLE,
    ):
        """Initialize migration manager.

        Args:
            connection: Open DatabaseConnection
            migrations_dir: Root directory of migration folders
            ledger_table: Name of the ledger table
        """
        self.connection = connection
        self.provider = connection.provider
        self.migrations_dir = Path(migrations_dir)
        self.ledger = MigrationLedger(connection, ledger_table)
        self.lock = MigrationLock(self.migrations_dir)

    def get_local_migrations(self) -> List[Migration]:
        """Get migrations on disk in timestamp order."""
        return load_migrations(self.migrations_dir)

    def get_applied_migrations(self) -> List[LedgerEntry]:
        """Get ledger entries of applied migrations, oldest first."""
        return self.ledger.get_applied()

    def get_pending_migrations(self) -> List[Migration]:
        """Get local migrations not yet applied, in ascending order."""
        applied = {entry.migration_name for entry in self.get_applied_migrations()}
        return [m for m in self.get_local_migrations() if m.name not in applied]

    def get_missing_migrations(self) -> List[str]:
        """Get names of applied migrations with no local folder."""
        local = {m.name for m in self.get_local_migrations()}
        return [
            entry.migration_name
            for entry in self.get_applied_migrations()
            if entry.migration_name not in local
        ]

    def get_modified_migrations(self) -> List[str]:
        """Get names of applied migrations whose local SQL has changed since."""
        local = {m.name: m for m in self.get_local_migrations()}
        modified = []
        for entry in self.get_applied_migrations():
            migration = local.get(entry.migration_name)
            if migration is not None and migration.checksum != entry.checksum:
                modified.append(entry.migration_name)
        return modified

    def get_failed_migrations(self) -> List[str]:
        """Get names of migrations that started but never finished."""
        applied = {entry.migration_name for entry in self.get_applied_migrations()}
        return [
            entry.migration_name
            for entry in self.ledger.get_failed()
            if entry.migration_name not in applied
        ]

    def apply_migration(self, migration: Migration) -> None:
        """Apply one migration and record it in the ledger.

        With transactional DDL the ledger row is written in the same commit,
        so a failure leaves nothing recorded. Otherwise the row is written
        first and keeps the error in its logs when a statement fails.

        Raises:
            ApplyError: If a statement fails
        """
        self.ledger.ensure_table()
        logger.info(f"Applying migration {migration.name}")

        try:
            if self.provider.supports_transactional_ddl:

                def record(applied_steps: int) -> None:
                    entry_id = self.ledger.record_started(migration)
                    self.ledger.record_finished(entry_id, applied_steps)

                execute_sql_script(self.connection, migration.sql, migration.name, record)
            else:
                entry_id = self.ledger.record_started(migration)
                try:
                    steps = execute_sql_script(self.connection, migration.sql, migration.name)
                except ApplyError as e:
                    self.ledger.record_failure(entry_id, str(e), e.applied_steps_count)
                    raise
                self.ledger.record_finished(entry_id, steps)
        except ApplyError as e:
            logger.error(f"Migration {migration.name} failed: {e.cause}")
            raise

    def apply_pending(self) -> List[str]:
        """Apply every pending migration in order, stopping at the first failure.

        Returns:
            Names of the migrations applied
        """
        applied = []
        for migration in self.get_pending_migrations():
            self.apply_migration(migration)
            applied.append(migration.name)
        if applied:
            logger.info(f"Applied {len(applied)} migration(s)")
        return applied

    def _next_timestamp(self) -> str:
        now = datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None)
        local = self.get_local_migrations()
        if local:
            try:
                latest = datetime.strptime(local[-1].timestamp, TIMESTAMP_FORMAT)
            except ValueError:
                latest = None
            # Keep names strictly increasing even within the same second
            if latest is not None and now <= latest:
                now = latest + timedelta(seconds=1)
        return now.strftime(TIMESTAMP_FORMAT)

    def create_migration(self, description: str, sql: str) -> Migration:
        """Write a new migration folder.

        Args:
            description: Free-form description, normalized into the name
            sql: Script contents

        Returns:
            The created Migration

        Raises:
            MigrationLockError: If the lock file names another provider
            MigrationError: If the folder already exists
        """
        self.lock.ensure(self.provider.name)

        name = f"{self._next_timestamp()}_{normalize_migration_name(description)}"
        validate_migration_name(name)

        path = self.migrations_dir / name
        if path.exists():
            raise MigrationError(f"Migration {name} already exists")

        path.mkdir(parents=True)
        (path / MIGRATION_FILE_NAME).write_text(sql, encoding="utf-8")
        logger.info(f"Created migration {name}")

        return Migration(name=name, path=path, sql=sql, checksum=calculate_checksum(sql))

    def _get_local(self, name: str) -> Migration:
        for migration in self.get_local_migrations():
            if migration.name == name:
                return migration
        raise MigrationError(f"Migration {name} does not exist in {self.migrations_dir}")

    def mark_applied(self, name: str) -> None:
        """Record a local migration as applied without running it."""
        self.ledger.mark_applied(self._get_local(name))

    def mark_rolled_back(self, name: str) -> None:
        """Mark a failed migration as rolled back."""
        self.ledger.mark_rolled_back(name)

    def status(self) -> MigrationStatus:
        """Report the state of every local and recorded migration."""
        local = self.get_local_migrations()
        applied = {entry.migration_name: entry for entry in self.get_applied_migrations()}
        failed = set(self.get_failed_migrations())

        status = MigrationStatus(
            missing=self.get_missing_migrations(),
            modified=self.get_modified_migrations(),
            failed=sorted(failed),
        )

        for migration in local:
            entry = applied.get(migration.name)
            if entry is not None:
                state = MigrationState.APPLIED
            elif migration.name in failed:
                state = MigrationState.FAILED
            else:
                state = MigrationState.LOCAL_ONLY
                status.pending.append(migration.name)
            status.migrations.append(
                MigrationStatusEntry(
                    name=migration.name,
                    state=state,
                    applied_at=entry.finished_at if entry is not None else None,
                )
            )

        for name in status.missing:
            status.migrations.append(
                MigrationStatusEntry(
                    name=name,
                    state=MigrationState.MISSING_LOCALLY,
                    applied_at=applied[name].finished_at,
                )
            )

        return status

