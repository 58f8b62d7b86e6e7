"""Configuration for the migration engine and the migration lock file."""

from pathlib import Path
from typing import Optional
import toml
from pydantic import BaseModel, Field, ConfigDict

from schemashift.errors import MigrationLockError

DEFAULT_LEDGER_TABLE = "_schemashift_migrations"
LOCK_FILE_NAME = "migration_lock.toml"

LOCK_FILE_HEADER = (
    "# Please do not edit this file manually\n"
    "# It should be added in your version-control system (i.e. Git)\n"
)


class EngineConfig(BaseModel):
    """Resolved inputs for one engine invocation.

    The engine never reads environment variables or config files itself;
    callers build this object and pass it in.
    """

    model_config = ConfigDict(extra="forbid")

    database_url: Optional[str] = Field(
        default=None, description="Connection URL of the target database"
    )
    migrations_dir: Path = Field(
        default=Path("migrations"), description="Root directory of migration folders"
    )
    provider: Optional[str] = Field(
        default=None,
        description="Provider override; detected from the URL scheme when unset",
    )
    shadow_database_url: Optional[str] = Field(
        default=None,
        description="Scratch database used to replay migrations for drift checks",
    )
    accept_data_loss: bool = Field(
        default=False, description="Allow destructive changes to be applied"
    )
    skip_generate: bool = Field(
        default=False,
        description="Carried for callers that run client generation after migrating",
    )
    index_order_significant: Optional[bool] = Field(
        default=None,
        description="Compare index columns in order; provider default when unset",
    )
    ledger_table: str = Field(
        default=DEFAULT_LEDGER_TABLE, description="Name of the applied-migrations table"
    )


class MigrationLock:
    """Reads and writes migration_lock.toml in a migrations directory."""

    def __init__(self, migrations_dir: Path):
        """Initialize lock file handler.

        Args:
            migrations_dir: Root directory of migration folders
        """
        self.migrations_dir = Path(migrations_dir)
        self.lock_path = self.migrations_dir / LOCK_FILE_NAME

    @property
    def exists(self) -> bool:
        """Check if the lock file exists."""
        return self.lock_path.exists()

    def load(self) -> Optional[str]:
        """Return the provider recorded in the lock file.

        Returns:
            Provider name, or None if there is no lock file
        """
        if not self.exists:
            return None

        with open(self.lock_path, "r") as f:
            data = toml.load(f)

        return data.get("provider")

    def save(self, provider: str) -> None:
        """Write the lock file for a provider."""
        self.migrations_dir.mkdir(parents=True, exist_ok=True)

        with open(self.lock_path, "w") as f:
            f.write(LOCK_FILE_HEADER)
            f.write(toml.dumps({"provider": provider}))

    def ensure(self, provider: str) -> None:
        """Create the lock file, or check it matches the provider.

        Raises:
            MigrationLockError: If the lock file names a different provider
        """
        recorded = self.load()
        if recorded is None:
            self.save(provider)
            return

        if recorded != provider:
            raise MigrationLockError(
                f"The migrations in {self.migrations_dir} were created for "
                f"'{recorded}' but the current provider is '{provider}'. "
                f"Remove the migrations directory to start a new history."
            )
