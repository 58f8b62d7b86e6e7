"""End-to-end migration workflows against a SQLite file database."""

import pytest

from schemashift import (
    DestructiveChangeError,
    DevAction,
    DiffSource,
    DriftError,
    EngineConfig,
    MigrationEngine,
    MigrationError,
    SchemaValidationError,
)
from schemashift.core.connection import DatabaseConnection
from schemashift.models import MigrationState


@pytest.fixture
def engine(sqlite_config):
    return MigrationEngine(sqlite_config)


def migration_dirs(config):
    return sorted(path.name for path in config.migrations_dir.iterdir() if path.is_dir())


def query(config, sql):
    with DatabaseConnection(config.database_url) as conn:
        return conn.fetch_all(sql)


def table_names(config):
    rows = query(
        config,
        "SELECT name FROM sqlite_master WHERE type = 'table' "
        "AND name NOT LIKE 'sqlite_%' ORDER BY name",
    )
    return [row[0] for row in rows]


class TestMigrateDev:
    """Test the development workflow."""

    def test_initial_migration(self, engine, sqlite_config, users_schema):
        """Test the first run creates and applies a migration."""
        result = engine.migrate_dev(users_schema, name="init")

        assert result.created is not None
        assert result.created.name.endswith("_init")
        assert result.applied == [result.created.name]
        assert result.warnings == []

        assert migration_dirs(sqlite_config) == [result.created.name]
        assert (sqlite_config.migrations_dir / "migration_lock.toml").exists()
        sql = (sqlite_config.migrations_dir / result.created.name / "migration.sql").read_text()
        assert sql.startswith('-- CreateTable\nCREATE TABLE "users"')

        assert table_names(sqlite_config) == ["_schemashift_migrations", "users"]

    def test_second_run_is_a_no_op(self, engine, sqlite_config, users_schema):
        """Test running again with the same declaration changes nothing."""
        engine.migrate_dev(users_schema, name="init")
        result = engine.migrate_dev(users_schema, name="again")

        assert result.created is None
        assert result.applied == []
        assert len(migration_dirs(sqlite_config)) == 1
        assert engine.diagnose(users_schema).in_sync

    def test_round_trip_convergence(self, engine, blog_schema):
        """Test the database matches the declaration after migrating."""
        engine.migrate_dev(blog_schema, name="init")

        result = engine.diagnose(blog_schema)
        assert result.action == DevAction.CREATE
        assert result.in_sync

    def test_evolving_schema(self, engine, sqlite_config, users_schema):
        """Test each declaration change becomes its own migration."""
        first = engine.migrate_dev(users_schema, name="init").created
        evolved = users_schema.replace("name  String?", "name  String?\n  bio   String?")
        second = engine.migrate_dev(evolved, name="add bio").created

        assert second.name.endswith("_add_bio")
        assert migration_dirs(sqlite_config) == [first.name, second.name]
        assert "ALTER TABLE \"users\" ADD COLUMN \"bio\" TEXT" in second.sql
        assert engine.diagnose(evolved).in_sync

    def test_bigint_autoincrement_key(self, engine, sqlite_config):
        """Test a BigInt autoincrement key applies and converges."""
        schema = "model A {\n  id BigInt @id @default(autoincrement())\n  label String\n}"

        result = engine.migrate_dev(schema, name="init")

        assert result.applied == [result.created.name]
        assert engine.diagnose(schema).in_sync
        with DatabaseConnection(sqlite_config.database_url) as conn:
            conn.execute("INSERT INTO A (label) VALUES ('x')")
        assert query(sqlite_config, "SELECT id, label FROM A") == [(1, "x")]

    def test_rebuild_keeps_rows(self, engine, sqlite_config, users_schema):
        """Test table redefinition copies existing rows."""
        engine.migrate_dev(users_schema, name="init")
        with DatabaseConnection(sqlite_config.database_url) as conn:
            conn.execute("INSERT INTO users (email, name) VALUES ('a@example.com', 'A')")
            conn.execute("INSERT INTO users (email, name) VALUES ('b@example.com', NULL)")

        evolved = users_schema.replace(
            "name  String?", "name  String?\n  createdAt DateTime @default(now())"
        )
        result = engine.migrate_dev(evolved, name="timestamps")

        assert "-- RedefineTables" in result.created.sql
        rows = query(sqlite_config, "SELECT email, name FROM users ORDER BY id")
        assert rows == [("a@example.com", "A"), ("b@example.com", None)]
        assert engine.diagnose(evolved).in_sync

    def test_dropped_column_needs_acceptance(self, sqlite_config, users_schema):
        """Test destructive changes are refused unless accepted."""
        MigrationEngine(sqlite_config).migrate_dev(users_schema, name="init")
        desired = users_schema.replace("  name  String?\n", "")

        with pytest.raises(DestructiveChangeError) as exc_info:
            MigrationEngine(sqlite_config).migrate_dev(desired, name="drop name")
        assert "`name`" in str(exc_info.value)
        assert len(migration_dirs(sqlite_config)) == 1

        accepting = MigrationEngine(sqlite_config.model_copy(update={"accept_data_loss": True}))
        result = accepting.migrate_dev(desired, name="drop name")

        assert len(result.warnings) == 1
        assert len(migration_dirs(sqlite_config)) == 2
        columns = [row[1] for row in query(sqlite_config, "PRAGMA table_info(users)")]
        assert columns == ["id", "email"]

    def test_create_only(self, engine, sqlite_config, users_schema):
        """Test create_only writes the migration without applying it."""
        result = engine.migrate_dev(users_schema, name="init", create_only=True)

        assert result.created is not None
        assert result.applied == []
        assert "users" not in table_names(sqlite_config)

        status = engine.migrate_status()
        assert status.pending == [result.created.name]

        assert engine.migrate_deploy() == [result.created.name]
        assert "users" in table_names(sqlite_config)

    def test_drift_requires_reset(self, engine, sqlite_config, users_schema):
        """Test manual changes block development until the database is reset."""
        init = engine.migrate_dev(users_schema, name="init").created
        with DatabaseConnection(sqlite_config.database_url) as conn:
            conn.execute('CREATE TABLE "manual" ("id" INTEGER)')

        with pytest.raises(DriftError) as exc_info:
            engine.migrate_dev(users_schema, name="next")
        assert "Drift detected" in str(exc_info.value)
        assert "[+] Added tables\n  - manual" in str(exc_info.value)

        assert engine.migrate_reset() == [init.name]
        assert "manual" not in table_names(sqlite_config)
        assert engine.diagnose(users_schema).in_sync


class TestDeployAndStatus:
    """Test deploy, status and resolve."""

    def test_deploy_applies_pending(self, engine, sqlite_config, users_schema, temp_dir):
        """Test deploying a history to a second database."""
        engine.migrate_dev(users_schema, name="init")
        other = sqlite_config.model_copy(update={"database_url": f"file:{temp_dir / 'prod.db'}"})
        deployer = MigrationEngine(other)

        applied = deployer.migrate_deploy()

        assert len(applied) == 1
        assert deployer.migrate_deploy() == []
        assert deployer.migrate_status().is_up_to_date

    def test_deploy_refuses_modified_history(self, engine, sqlite_config, users_schema):
        """Test deploy stops when an applied migration was edited."""
        init = engine.migrate_dev(users_schema, name="init").created
        with open(init.path / "migration.sql", "a") as f:
            f.write("\n-- edited\nCREATE TABLE extra (id INTEGER);\n")

        with pytest.raises(DriftError) as exc_info:
            engine.migrate_deploy()
        assert "modified after being applied" in str(exc_info.value)

    def test_status(self, engine, users_schema):
        """Test status after a development run."""
        init = engine.migrate_dev(users_schema, name="init").created

        status = engine.migrate_status()

        assert status.is_up_to_date
        assert [(m.name, m.state) for m in status.migrations] == [
            (init.name, MigrationState.APPLIED)
        ]

    def test_resolve_arguments(self, engine):
        """Test resolve needs exactly one target."""
        with pytest.raises(MigrationError):
            engine.migrate_resolve()
        with pytest.raises(MigrationError):
            engine.migrate_resolve(applied="a", rolled_back="b")

    def test_resolve_applied(self, engine, sqlite_config, users_schema):
        """Test a created migration can be marked applied without running it."""
        init = engine.migrate_dev(users_schema, name="init", create_only=True).created

        engine.migrate_resolve(applied=init.name)

        assert engine.migrate_status().is_up_to_date
        assert "users" not in table_names(sqlite_config)


class TestDbPush:
    """Test pushing a declaration without migrations."""

    def test_push(self, engine, sqlite_config, blog_schema):
        """Test push creates the tables and a second push is empty."""
        result = engine.db_push(blog_schema)

        assert [t.name for t in result.change_set.tables_to_create] == ["User", "Post"]
        assert result.sql.startswith("-- CreateTable")
        assert {"User", "Post"} <= set(table_names(sqlite_config))
        assert not sqlite_config.migrations_dir.exists()

        again = engine.db_push(blog_schema)
        assert again.sql == ""
        assert again.change_set.is_empty()

    def test_push_refuses_data_loss(self, engine, users_schema):
        """Test push guards destructive changes too."""
        engine.db_push(users_schema)

        with pytest.raises(DestructiveChangeError):
            engine.db_push(users_schema.replace("  name  String?\n", ""))


class TestDiff:
    """Test diffing schema sources."""

    def test_empty_to_schema(self, engine, users_schema):
        """Test the script creating a declaration from nothing."""
        sql = engine.diff(DiffSource.empty(), DiffSource.from_schema(users_schema))

        assert sql.startswith('-- CreateTable\nCREATE TABLE "users"')

    def test_schema_to_empty(self, engine, users_schema):
        """Test the script removing everything."""
        sql = engine.diff(DiffSource.from_schema(users_schema), DiffSource.empty())

        assert sql == '-- DropTable\nDROP TABLE "users";\n'

    def test_sources_in_sync(self, engine, sqlite_config, users_schema):
        """Test migrations, database and declaration agree after migrating."""
        engine.migrate_dev(users_schema, name="init")
        target = DiffSource.from_schema(users_schema)

        assert engine.diff(DiffSource.from_migrations(sqlite_config.migrations_dir), target) == ""
        assert engine.diff(DiffSource.from_url(sqlite_config.database_url), target) == ""


class TestProviderResolution:
    """Test provider selection."""

    def test_mismatched_provider(self, sqlite_config, users_schema):
        """Test a datasource that disagrees with the configured provider."""
        engine = MigrationEngine(sqlite_config.model_copy(update={"provider": "postgresql"}))

        with pytest.raises(SchemaValidationError):
            engine.migrate_dev(users_schema)

    def test_provider_from_url(self, temp_dir):
        """Test the provider is detected from the URL without a declaration."""
        engine = MigrationEngine(EngineConfig(database_url=f"file:{temp_dir / 'x.db'}"))
        assert engine.resolve_provider().name == "sqlite"
