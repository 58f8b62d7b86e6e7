"""Migration, ledger and workflow result models."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional
from pydantic import Field, field_serializer

from .base import SchemaShiftModel
from .change import ChangeSet, DataLossWarning


class Migration(SchemaShiftModel):
    """A migration directory on disk."""

    name: str = Field(description="<14-digit timestamp>_<description>")
    path: Path = Field(description="Path to the migration directory")
    sql: str = Field(description="Contents of migration.sql")
    checksum: str = Field(description="SHA-256 checksum of the normalized SQL")

    @property
    def timestamp(self) -> str:
        return self.name[:14]


class LedgerEntry(SchemaShiftModel):
    """A row of the applied-migrations ledger table."""

    id: str
    migration_name: str
    checksum: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    rolled_back_at: Optional[datetime] = None
    logs: Optional[str] = None
    applied_steps_count: int = 0

    @property
    def is_applied(self) -> bool:
        return self.finished_at is not None and self.rolled_back_at is None

    @property
    def is_failed(self) -> bool:
        return self.finished_at is None and self.rolled_back_at is None

    @field_serializer("started_at", "finished_at", "rolled_back_at")
    def serialize_datetime(self, dt: Optional[datetime], _info) -> Optional[str]:
        """Serialize datetime to ISO format."""
        return dt.isoformat() if dt else None


class MigrationState(str, Enum):
    """Where a migration is known from."""

    LOCAL_ONLY = "local_only"
    APPLIED = "applied"
    MISSING_LOCALLY = "missing_locally"
    FAILED = "failed"


class MigrationStatusEntry(SchemaShiftModel):
    name: str
    state: MigrationState
    applied_at: Optional[datetime] = None


class MigrationStatus(SchemaShiftModel):
    """Comparison of local migrations with the ledger."""

    migrations: List[MigrationStatusEntry] = Field(default_factory=list)
    pending: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def is_up_to_date(self) -> bool:
        return not (self.pending or self.missing or self.modified or self.failed)


class DevAction(str, Enum):
    """Outcome of the development diagnostic."""

    APPLY = "apply"
    CREATE = "create"
    RESET = "reset"


class DiagnosticResult(SchemaShiftModel):
    """What the development workflow should do next and why."""

    action: DevAction
    reason: Optional[str] = None
    pending: List[str] = Field(
        default_factory=list, description="Pending migrations, for APPLY"
    )
    change_set: Optional[ChangeSet] = Field(
        default=None, description="Declared vs database changes, for CREATE"
    )
    drift: Optional[ChangeSet] = Field(
        default=None, description="Expected vs actual structure, when drifted"
    )

    @property
    def in_sync(self) -> bool:
        return (
            self.action == DevAction.CREATE
            and self.change_set is not None
            and self.change_set.is_empty()
        )


class DevResult(SchemaShiftModel):
    """Result of a development migrate run."""

    applied: List[str] = Field(default_factory=list)
    created: Optional[Migration] = None
    warnings: List[DataLossWarning] = Field(default_factory=list)


class PushResult(SchemaShiftModel):
    """Result of pushing a declaration straight to the database."""

    change_set: ChangeSet
    sql: str = ""
    warnings: List[DataLossWarning] = Field(default_factory=list)


class DiffSource(SchemaShiftModel):
    """One side of a ``diff`` between two schema sources."""

    kind: Literal["empty", "schema", "database", "migrations"]
    value: Optional[str] = Field(
        default=None,
        description="Declaration text, connection URL or migrations directory",
    )

    @classmethod
    def empty(cls) -> "DiffSource":
        return cls(kind="empty")

    @classmethod
    def from_schema(cls, text: str) -> "DiffSource":
        return cls(kind="schema", value=text)

    @classmethod
    def from_url(cls, url: str) -> "DiffSource":
        return cls(kind="database", value=url)

    @classmethod
    def from_migrations(cls, path) -> "DiffSource":
        return cls(kind="migrations", value=str(path))
