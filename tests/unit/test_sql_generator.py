"""Tests for rendering change sets as SQL scripts."""

from schemashift.core.builder import build_schema
from schemashift.core.differ import compare
from schemashift.core.sql_generator import generate
from schemashift.models import ChangeSet, DatabaseSchema
from schemashift.parser import load_schema
from schemashift.providers import get_provider
from schemashift.utils.sql import split_sql_statements

USERS = """
model users {
  id    Int     @id @default(autoincrement())
  email String  @unique
  name  String?
}
"""


def build(source, provider):
    return build_schema(load_schema(source), get_provider(provider))


def migration_sql(desired, actual, provider="postgresql"):
    desired_schema = build(desired, provider) if desired else DatabaseSchema()
    actual_schema = build(actual, provider) if actual else DatabaseSchema()
    change_set = compare(desired_schema, actual_schema, get_provider(provider))
    return generate(change_set, get_provider(provider))


class TestCreateTable:
    """Test CREATE TABLE rendering per provider."""

    def test_postgresql(self):
        """Test serial primary key and inline unique on PostgreSQL."""
        assert migration_sql(USERS, None) == (
            "-- CreateTable\n"
            'CREATE TABLE "users" (\n'
            '    "id" SERIAL NOT NULL,\n'
            '    "email" TEXT NOT NULL UNIQUE,\n'
            '    "name" TEXT,\n'
            '    CONSTRAINT "users_pkey" PRIMARY KEY ("id")\n'
            ");\n"
        )

    def test_sqlite(self):
        """Test the autoincrement primary key is declared on the column."""
        assert migration_sql(USERS, None, "sqlite") == (
            "-- CreateTable\n"
            'CREATE TABLE "users" (\n'
            '    "id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,\n'
            '    "email" TEXT NOT NULL UNIQUE,\n'
            '    "name" TEXT\n'
            ");\n"
        )

    def test_sqlite_bigint_autoincrement(self):
        """Test a BigInt autoincrement key renders as INTEGER PRIMARY KEY."""
        schema = "model A {\n  id BigInt @id @default(autoincrement())\n}"

        assert migration_sql(schema, None, "sqlite") == (
            "-- CreateTable\n"
            'CREATE TABLE "A" (\n'
            '    "id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT\n'
            ");\n"
        )

    def test_mysql(self):
        """Test MySQL declares unique columns as named unique indexes."""
        assert migration_sql(USERS, None, "mysql") == (
            "-- CreateTable\n"
            "CREATE TABLE `users` (\n"
            "    `id` INT NOT NULL AUTO_INCREMENT,\n"
            "    `email` VARCHAR(191) NOT NULL,\n"
            "    `name` VARCHAR(191),\n"
            "    PRIMARY KEY (`id`),\n"
            "    UNIQUE INDEX `users_email_key`(`email`)\n"
            ") DEFAULT CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;\n"
        )

    def test_defaults_and_related_tables(self, blog_schema):
        """Test defaults, creation order, inline foreign keys and indexes."""
        sql = migration_sql(blog_schema, None)

        assert sql.index('CREATE TABLE "User"') < sql.index('CREATE TABLE "Post"')
        assert '"active" BOOLEAN NOT NULL DEFAULT true' in sql
        assert '"createdAt" TIMESTAMP(3) NOT NULL DEFAULT CURRENT_TIMESTAMP' in sql
        assert "\"status\" TEXT NOT NULL DEFAULT 'draft'" in sql
        assert '"views" INTEGER NOT NULL DEFAULT 0' in sql
        assert (
            'CONSTRAINT "Post_authorId_fkey" FOREIGN KEY ("authorId") '
            'REFERENCES "User"("id") ON DELETE RESTRICT ON UPDATE CASCADE'
        ) in sql
        assert (
            '-- CreateIndex\nCREATE INDEX "Post_title_authorId_idx" ON "Post"("title", "authorId");'
        ) in sql

    def test_statements_split_cleanly(self, blog_schema):
        """Test the script splits into one statement per step."""
        statements = split_sql_statements(migration_sql(blog_schema, None))
        assert len(statements) == 3

    def test_enum_created_before_table(self):
        """Test native enums are created before the tables using them."""
        schema = """
        enum Role {
          USER
          ADMIN
        }
        model User {
          id   Int  @id
          role Role @default(USER)
        }
        """
        sql = migration_sql(schema, None)

        assert sql.startswith("-- CreateEnum\nCREATE TYPE \"Role\" AS ENUM ('USER', 'ADMIN');")
        assert "\"role\" \"Role\" NOT NULL DEFAULT 'USER'" in sql


class TestAlterations:
    """Test rendering of changes to existing tables."""

    def test_empty_change_set(self):
        """Test an empty change set renders nothing."""
        assert generate(ChangeSet(), get_provider("postgresql")) == ""
        assert migration_sql(USERS, USERS) == ""

    def test_drop_column_postgresql(self):
        """Test a dropped column is a single ALTER TABLE."""
        desired = USERS.replace("  name  String?\n", "")

        assert migration_sql(desired, USERS) == (
            '-- AlterTable\nALTER TABLE "users" DROP COLUMN "name";\n'
        )

    def test_add_column_mysql(self):
        """Test MySQL ADD COLUMN."""
        desired = USERS.replace("name  String?", "name  String?\n  age Int @default(0)")

        assert migration_sql(desired, USERS, "mysql") == (
            "-- AlterTable\nALTER TABLE `users` ADD COLUMN `age` INT NOT NULL DEFAULT 0;\n"
        )

    def test_alter_column_postgresql(self):
        """Test in-place type and nullability changes."""
        desired = USERS.replace("name  String?", "name  String @db.VarChar(100)")
        sql = migration_sql(desired, USERS)

        assert 'ALTER TABLE "users" ALTER COLUMN "name" SET DATA TYPE VARCHAR(100)' in sql
        assert 'ALTER TABLE "users" ALTER COLUMN "name" SET NOT NULL' in sql

    def test_recreated_column(self):
        """Test incompatible type changes drop and re-add the column."""
        desired = USERS.replace("name  String?", "name  Int?")
        statements = split_sql_statements(migration_sql(desired, USERS))

        assert statements == [
            '-- AlterTable\nALTER TABLE "users" DROP COLUMN "name"',
            'ALTER TABLE "users" ADD COLUMN "name" INTEGER',
        ]

    def test_sqlite_rebuilds_table(self):
        """Test SQLite drops columns by redefining the table."""
        desired = USERS.replace("  name  String?\n", "")
        statements = split_sql_statements(migration_sql(desired, USERS, "sqlite"))

        assert statements[0].startswith('-- RedefineTables\nCREATE TABLE "new_users"')
        assert statements[1:] == [
            'INSERT INTO "new_users" ("id", "email") SELECT "id", "email" FROM "users"',
            'DROP TABLE "users"',
            'ALTER TABLE "new_users" RENAME TO "users"',
        ]

    def test_sqlite_dropped_foreign_key_rebuilds(self):
        """Test SQLite removes a foreign key by redefining the table."""
        actual = (
            "model A {\n  id Int @id\n  bId Int\n"
            "  b B @relation(fields: [bId], references: [id])\n}\n"
            "model B {\n  id Int @id\n  items A[]\n}"
        )
        desired = "model A {\n  id Int @id\n  bId Int\n}\nmodel B {\n  id Int @id\n}"
        sql = migration_sql(desired, actual, "sqlite")

        assert sql.startswith('-- RedefineTables\nCREATE TABLE "new_A"')
        assert "FOREIGN KEY" not in sql
        assert "DROP CONSTRAINT" not in sql

    def test_sqlite_add_optional_column(self):
        """Test SQLite adds nullable columns without a rebuild."""
        desired = USERS.replace("name  String?", "name  String?\n  bio String?")

        assert migration_sql(desired, USERS, "sqlite") == (
            '-- AlterTable\nALTER TABLE "users" ADD COLUMN "bio" TEXT;\n'
        )

    def test_drop_tables_in_dependency_order(self, blog_schema):
        """Test referencing tables are dropped first."""
        sql = migration_sql(None, blog_schema)

        assert sql == '-- DropTable\nDROP TABLE "Post";\n\n-- DropTable\nDROP TABLE "User";\n'

    def test_index_changes(self):
        """Test index-only changes on PostgreSQL and MySQL."""
        desired = "model T {\n  id Int @id\n  a Int\n  @@index([a])\n}"
        actual = "model T {\n  id Int @id\n  a Int\n}"

        assert migration_sql(desired, actual) == (
            '-- CreateIndex\nCREATE INDEX "T_a_idx" ON "T"("a");\n'
        )
        assert migration_sql(actual, desired, "mysql") == (
            "-- DropIndex\nDROP INDEX `T_a_idx` ON `T`;\n"
        )

    def test_enum_value_added(self):
        """Test new enum values are added in place on PostgreSQL."""
        base = "enum Role {\n  %s\n}\nmodel User {\n  id Int @id\n  role Role\n}"

        assert migration_sql(base % "A\n B", base % "A") == (
            "-- AlterEnum\nALTER TYPE \"Role\" ADD VALUE 'B';\n"
        )

    def test_enum_value_removed(self):
        """Test removing a value swaps in a new enum type."""
        base = "enum Role {\n  %s\n}\nmodel User {\n  id Int @id\n  role Role\n}"
        statements = split_sql_statements(migration_sql(base % "A", base % "A\n B"))

        assert statements[0] == "-- AlterEnum\nCREATE TYPE \"Role_new\" AS ENUM ('A')"
        assert (
            'ALTER TABLE "User" ALTER COLUMN "role" TYPE "Role_new" USING ("role"::text::"Role_new")'
            in statements
        )
        assert statements[-1] == 'DROP TYPE "Role_old"'
