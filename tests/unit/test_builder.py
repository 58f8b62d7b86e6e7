"""Tests for building the canonical schema from a declaration."""

import pytest

from schemashift.core.builder import build_schema
from schemashift.errors import SchemaValidationError
from schemashift.parser import load_schema
from schemashift.providers import get_provider


def build(source, provider="postgresql"):
    return build_schema(load_schema(source), get_provider(provider))


class TestSchemaBuilder:
    """Test declaration to table translation."""

    def test_users_table(self, users_schema):
        """Test the users model becomes one table with three columns."""
        schema = build(users_schema, "sqlite")

        assert list(schema.tables) == ["users"]
        table = schema.tables["users"]
        assert list(table.columns) == ["id", "email", "name"]
        assert table.primary_key == ["id"]

        id_column = table.columns["id"]
        assert id_column.type == "INTEGER"
        assert id_column.nullable is False
        assert id_column.default == "autoincrement()"

        assert table.columns["email"].unique is True
        assert table.columns["email"].nullable is False
        assert table.columns["name"].nullable is True

    def test_relation_fields_are_not_columns(self, blog_schema):
        """Test relation fields produce foreign keys instead of columns."""
        schema = build(blog_schema)

        assert "posts" not in schema.tables["User"].columns
        post = schema.tables["Post"]
        assert "author" not in post.columns
        assert len(post.foreign_keys) == 1

        fk = post.foreign_keys[0]
        assert fk.name == "Post_authorId_fkey"
        assert fk.columns == ["authorId"]
        assert fk.referenced_table == "User"
        assert fk.referenced_columns == ["id"]
        assert fk.on_delete == "RESTRICT"
        assert fk.on_update == "CASCADE"

    def test_optional_relation_sets_null(self):
        """Test an optional relation defaults to ON DELETE SET NULL."""
        schema = build(
            """
            model User {
              id Int @id
            }
            model Post {
              id       Int   @id
              authorId Int?
              author   User? @relation(fields: [authorId], references: [id])
            }
            """
        )

        assert schema.tables["Post"].foreign_keys[0].on_delete == "SET NULL"

    def test_explicit_referential_actions(self):
        """Test onDelete and onUpdate are mapped to SQL actions."""
        schema = build(
            """
            model User {
              id Int @id
            }
            model Post {
              id       Int  @id
              authorId Int
              author   User @relation(fields: [authorId], references: [id], onDelete: Cascade, onUpdate: NoAction)
            }
            """
        )

        fk = schema.tables["Post"].foreign_keys[0]
        assert fk.on_delete == "CASCADE"
        assert fk.on_update == "NO ACTION"

    def test_scalar_types_per_provider(self, blog_schema):
        """Test scalar types map to each provider's native types."""
        pg = build(blog_schema, "postgresql").tables["User"].columns
        mysql = build(blog_schema.replace('"sqlite"', '"mysql"'), "mysql").tables["User"].columns
        sqlite = build(blog_schema, "sqlite").tables["User"].columns

        assert pg["email"].type == "TEXT"
        assert mysql["email"].type == "VARCHAR(191)"
        assert sqlite["email"].type == "TEXT"

        assert pg["createdAt"].type == "TIMESTAMP(3)"
        assert mysql["createdAt"].type == "DATETIME(3)"
        assert sqlite["createdAt"].type == "DATETIME"

    def test_autoincrement_bigint_key(self):
        """Test SQLite stores autoincrement keys as INTEGER whatever the scalar."""
        source = "model A {\n  id BigInt @id @default(autoincrement())\n  n BigInt\n}"

        sqlite = build(source, "sqlite").tables["A"].columns
        assert sqlite["id"].type == "INTEGER"
        assert sqlite["n"].type == "BIGINT"

        assert build(source, "postgresql").tables["A"].columns["id"].type == "BIGINT"

    def test_defaults_keep_declaration_syntax(self, blog_schema):
        """Test defaults are stored as written in the declaration."""
        schema = build(blog_schema)

        assert schema.tables["User"].columns["createdAt"].default == "now()"
        assert schema.tables["User"].columns["active"].default == "true"
        assert schema.tables["Post"].columns["status"].default == '"draft"'
        assert schema.tables["Post"].columns["views"].default == "0"

    def test_block_index(self, blog_schema):
        """Test @@index gets a generated name and keeps column order."""
        index = build(blog_schema).tables["Post"].indexes[0]

        assert index.name == "Post_title_authorId_idx"
        assert index.column_names == ["title", "authorId"]
        assert index.unique is False

    def test_composite_unique_with_sort(self):
        """Test @@unique with a descending column and a custom name."""
        schema = build(
            """
            model Post {
              id    Int    @id
              slug  String
              year  Int
              @@unique([slug, year(sort: Desc)], name: "slug_year")
            }
            """
        )

        index = schema.tables["Post"].indexes[0]
        assert index.name == "slug_year"
        assert index.unique is True
        assert [(c.name, c.sort) for c in index.columns] == [("slug", None), ("year", "DESC")]

    def test_unique_with_map_becomes_index(self):
        """Test @unique(map:) produces a named unique index."""
        schema = build(
            """
            model User {
              id    Int    @id
              email String @unique(map: "user_email_uq")
            }
            """
        )

        table = schema.tables["User"]
        assert table.columns["email"].unique is False
        assert table.indexes[0].name == "user_email_uq"
        assert table.indexes[0].unique is True

    def test_map_attributes(self):
        """Test @map and @@map rename columns and tables."""
        schema = build(
            """
            model User {
              id    Int    @id
              email String @map("email_address")
              @@map("users")
            }
            model Post {
              id       Int  @id
              authorId Int  @map("author_id")
              author   User @relation(fields: [authorId], references: [id])
            }
            """
        )

        assert "users" in schema.tables
        assert "email_address" in schema.tables["users"].columns
        fk = schema.tables["Post"].foreign_keys[0]
        assert fk.columns == ["author_id"]
        assert fk.referenced_table == "users"
        assert fk.name == "Post_author_id_fkey"

    def test_composite_primary_key(self):
        """Test @@id sets a multi-column primary key."""
        schema = build(
            """
            model Membership {
              userId  Int
              groupId Int
              role    String?
              @@id([userId, groupId])
            }
            """
        )

        table = schema.tables["Membership"]
        assert table.primary_key == ["userId", "groupId"]
        assert table.columns["userId"].primary_key is True
        assert table.columns["role"].primary_key is False

    def test_native_enum_on_postgresql(self):
        """Test enums become native types with mapped values."""
        schema = build(
            """
            enum Role {
              USER
              ADMIN @map("admin")
            }
            model User {
              id   Int  @id
              role Role @default(ADMIN)
            }
            """
        )

        assert schema.enums["Role"].values == ["USER", "admin"]
        column = schema.tables["User"].columns["role"]
        assert column.type == '"Role"'
        assert column.enum_name == "Role"
        assert column.default == "admin"

    def test_enum_on_mysql_is_inline(self):
        """Test MySQL enums are column types, not separate objects."""
        schema = build(
            """
            enum Role {
              USER
              ADMIN
            }
            model User {
              id   Int  @id
              role Role
            }
            """,
            "mysql",
        )

        assert schema.enums == {}
        assert schema.tables["User"].columns["role"].type == "ENUM('USER','ADMIN')"

    def test_native_type_attribute(self):
        """Test @db.* attributes refine the column type."""
        schema = build(
            """
            model User {
              id   Int    @id
              code String @db.VarChar(255)
              uid  String @db.Uuid
            }
            """
        )

        columns = schema.tables["User"].columns
        assert columns["code"].type == "VARCHAR(255)"
        assert columns["uid"].type == "UUID"

    def test_unsupported_native_type_raises(self):
        """Test a native type the provider lacks is a validation error."""
        with pytest.raises(SchemaValidationError) as exc_info:
            build("model User {\n  id Int @id\n  uid String @db.Uuid\n}", "sqlite")
        assert "@db.Uuid" in str(exc_info.value)

    def test_scalar_list_on_postgresql(self):
        """Test scalar lists map to array types and are required."""
        schema = build("model Post {\n  id Int @id\n  tags String[]\n}")

        column = schema.tables["Post"].columns["tags"]
        assert column.type == "TEXT[]"
        assert column.nullable is False

    def test_unsupported_type(self):
        """Test Unsupported fields keep their database type."""
        schema = build('model Place {\n  id Int @id\n  area Unsupported("polygon")?\n}')

        assert schema.tables["Place"].columns["area"].type == "POLYGON"
