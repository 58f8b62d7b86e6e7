"""Tests for the declaration parser."""

import pytest

from schemashift.errors import SchemaSyntaxErrors, SchemaValidationErrors
from schemashift.models import FunctionCall, ListValue, ScalarValue
from schemashift.parser import load_schema, parse, parse_file


class TestParser:
    """Test parsing of declaration blocks."""

    def test_parse_datasource_and_generator(self):
        """Test config blocks keep their key/value pairs."""
        schema, errors = parse(
            """
            datasource db {
              provider = "postgresql"
              url      = "postgresql://localhost/app"
            }

            generator client {
              provider = "schemashift-client"
            }
            """
        )

        assert errors == []
        assert schema.provider == "postgresql"
        assert schema.datasources[0].name == "db"
        assert schema.datasources[0].get("url").value == "postgresql://localhost/app"
        assert schema.generators[0].provider == "schemashift-client"

    def test_parse_model_fields(self, blog_schema):
        """Test fields, optionality, lists and attributes."""
        schema, errors = parse(blog_schema)

        assert errors == []
        user = schema.get_model("User")
        assert [f.name for f in user.fields] == [
            "id", "email", "name", "active", "createdAt", "posts",
        ]

        name = user.get_field("name")
        assert name.type.name == "String"
        assert name.type.is_optional is True

        posts = user.get_field("posts")
        assert posts.type.is_array is True

        id_field = user.get_field("id")
        assert id_field.has_attribute("id")
        default = id_field.get_attribute("default").get_argument("value", position=0)
        assert isinstance(default, FunctionCall)
        assert default.name == "autoincrement"

    def test_parse_relation_arguments(self, blog_schema):
        """Test named list arguments of @relation."""
        schema, _ = parse(blog_schema)
        relation = schema.get_model("Post").get_field("author").get_attribute("relation")

        fields = relation.get_argument("fields")
        assert isinstance(fields, ListValue)
        assert [item.value for item in fields.items] == ["authorId"]
        assert relation.get_argument("references").to_source() == "[id]"

    def test_parse_block_attribute_with_sort(self):
        """Test @@index items may be function calls with a sort argument."""
        schema, errors = parse(
            """
            model Post {
              id    Int    @id
              title String
              @@index([title(sort: Desc), id], map: "post_title")
            }
            """
        )

        assert errors == []
        index = schema.get_model("Post").get_attribute("index")
        items = index.get_argument("fields", position=0).items
        assert isinstance(items[0], FunctionCall)
        assert items[0].name == "title"
        assert items[0].args[0].name == "sort"
        assert items[0].args[0].value.value == "Desc"
        assert isinstance(items[1], ScalarValue)
        assert index.get_argument("map").value == "post_title"

    def test_parse_native_type_and_unsupported(self):
        """Test dotted attribute names and Unsupported field types."""
        schema, errors = parse(
            """
            model Place {
              id       Int                      @id
              code     String                   @db.VarChar(255)
              location Unsupported("point")?
            }
            """
        )

        assert errors == []
        place = schema.get_model("Place")
        native = place.get_field("code").get_attribute("db.VarChar")
        assert native.arguments[0].value.value == 255

        location = place.get_field("location")
        assert location.type.is_unsupported
        assert location.type.unsupported == "point"
        assert location.type.is_optional

    def test_parse_enum(self):
        """Test enum values with @map and a block @@map."""
        schema, errors = parse(
            """
            enum Role {
              USER
              ADMIN @map("admin")
              @@map("user_role")
            }
            """
        )

        assert errors == []
        role = schema.get_enum("Role")
        assert [value.name for value in role.values] == ["USER", "ADMIN"]
        assert role.values[1].attributes[0].name == "map"
        assert role.attributes[0].name == "map"

    def test_default_values_render_back_to_source(self):
        """Test default values keep their declaration syntax."""
        schema, _ = parse(
            """
            model T {
              id    String  @id @default(dbgenerated("gen_random_uuid()"))
              label String  @default("it's")
              flag  Boolean @default(false)
              ratio Float   @default(1.5)
            }
            """
        )
        model = schema.get_model("T")

        def default_of(name):
            attribute = model.get_field(name).get_attribute("default")
            return attribute.get_argument("value", position=0).to_source()

        assert default_of("id") == 'dbgenerated("gen_random_uuid()")'
        assert default_of("label") == '"it\'s"'
        assert default_of("flag") == "false"
        assert default_of("ratio") == "1.5"


class TestParserErrors:
    """Test syntax error collection and recovery."""

    def test_multiple_errors_in_one_pass(self):
        """Test every unknown block is reported, not just the first."""
        _, errors = parse("foo X {}\nbar Y {}\nmodel A {\n  id Int @id\n}")

        assert len(errors) == 2
        assert [e.line for e in errors] == [1, 2]
        assert "Unrecognized block type 'foo'" in errors[0].message

    def test_missing_field_type_recovers(self):
        """Test parsing resumes on the next line after a bad field."""
        schema, errors = parse("model A {\n  id\n  name String\n}")

        assert len(errors) == 1
        assert "missing a type" in errors[0].message
        assert errors[0].line == 2
        assert [f.name for f in schema.get_model("A").fields] == ["name"]

    def test_non_ascii_digit_is_a_syntax_error(self):
        """Test a superscript digit in a default is collected as an error."""
        _, errors = parse("model A {\n  id Int @id @default(²)\n}\n")

        assert errors
        assert "Unexpected character '²'" in errors[0].message
        assert errors[0].line == 2

    def test_malformed_argument_list(self):
        """Test arguments without a separating comma are reported."""
        _, errors = parse("model A {\n  id Int @id @default(1 2)\n}")

        assert len(errors) == 1
        assert "Malformed argument list for '@default'" in errors[0].message
        assert errors[0].line == 2

    def test_unbalanced_braces(self):
        """Test a block missing its closing brace is reported at its keyword."""
        schema, errors = parse("model A {\n  id Int @id\n\nmodel B {\n  id Int @id\n}")

        assert len(errors) == 1
        assert "missing a closing '}'" in errors[0].message
        assert errors[0].line == 1
        assert [m.name for m in schema.models] == ["A", "B"]

    def test_error_message_has_context(self):
        """Test the formatted error shows the offending line and a caret."""
        _, errors = parse("model A {\n  id Int @id @default(1 2)\n}")

        text = str(errors[0])
        assert text.startswith("line 2, column")
        assert "  id Int @id @default(1 2)" in text
        assert "^" in text


class TestLoadSchema:
    """Test parse-and-validate entry point."""

    def test_load_valid_schema(self, users_schema):
        """Test a valid declaration loads."""
        schema = load_schema(users_schema)
        assert schema.get_model("users") is not None

    def test_load_raises_syntax_errors(self):
        """Test syntax errors are raised together."""
        with pytest.raises(SchemaSyntaxErrors) as exc_info:
            load_schema("foo X {}\nbar Y {}")
        assert len(exc_info.value.errors) == 2

    def test_load_raises_validation_errors(self):
        """Test semantic errors are raised after a clean parse."""
        with pytest.raises(SchemaValidationErrors) as exc_info:
            load_schema("model A {\n  id Int @id\n  owner Missing\n}")
        assert "Missing" in str(exc_info.value)

    def test_parse_file(self, temp_dir, users_schema):
        """Test declarations are read from UTF-8 files."""
        path = temp_dir / "schema.prisma"
        path.write_text(users_schema, encoding="utf-8")

        schema, errors = parse_file(path)

        assert errors == []
        assert schema.get_model("users") is not None
