"""Recursive-descent parser for the schema declaration language."""

from typing import List, Optional, Tuple

from schemashift.errors import SchemaSyntaxError
from schemashift.models.declaration import (
    Argument,
    Attribute,
    ConfigField,
    Datasource,
    EnumDef,
    EnumValue,
    FieldType,
    FunctionCall,
    Generator,
    ListValue,
    Model,
    ModelField,
    ScalarValue,
    Schema,
)
from schemashift.parser.lexer import Lexer
from schemashift.parser.tokens import BLOCK_KEYWORDS, Token, TokenType


class Parser:
    """Builds a Schema from a token stream.

    Syntax errors are collected and parsing resumes at the next line or
    block, so a single pass reports as many problems as possible.
    """

    def __init__(self, tokens: List[Token], lexer: Lexer):
        self.tokens = tokens
        self.lexer = lexer
        self.pos = 0
        self.errors: List[SchemaSyntaxError] = list(lexer.errors)

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def _check(self, token_type: TokenType) -> bool:
        return self.current.type == token_type

    def _match(self, token_type: TokenType) -> Optional[Token]:
        if self._check(token_type):
            return self._advance()
        return None

    def _error(self, message: str, token: Optional[Token] = None) -> None:
        token = token or self.current
        self.errors.append(
            SchemaSyntaxError(message, token.line, token.column, self.lexer.context(token.line))
        )

    def _skip_line(self, line: int) -> None:
        while (
            self.current.type not in (TokenType.EOF, TokenType.RBRACE)
            and self.current.line == line
        ):
            self._advance()

    def _starts_block(self) -> bool:
        return (
            self.current.type == TokenType.IDENT
            and self.current.value in BLOCK_KEYWORDS
            and self._peek(1).type == TokenType.IDENT
            and self._peek(2).type == TokenType.LBRACE
        )

    def parse(self) -> Tuple[Schema, List[SchemaSyntaxError]]:
        """Parse the whole token stream.

        Returns:
            Tuple of the schema and the syntax errors found. The schema must
            not be used when the error list is non-empty.
        """
        datasources, generators, models, enums = [], [], [], []

        while not self._check(TokenType.EOF):
            token = self.current

            if token.type == TokenType.IDENT and token.value in BLOCK_KEYWORDS:
                if token.value == "datasource":
                    block = self._parse_config_block(Datasource)
                    if block:
                        datasources.append(block)
                elif token.value == "generator":
                    block = self._parse_config_block(Generator)
                    if block:
                        generators.append(block)
                elif token.value == "model":
                    model = self._parse_model()
                    if model:
                        models.append(model)
                else:
                    enum = self._parse_enum()
                    if enum:
                        enums.append(enum)
            elif token.type == TokenType.IDENT:
                self._error(f"Unrecognized block type '{token.value}'", token)
                self._skip_unknown_block()
            elif token.type == TokenType.RBRACE:
                self._error("Unbalanced braces: unexpected '}'", token)
                self._advance()
            else:
                self._error(f"Unexpected {token.describe()} at top level", token)
                self._advance()

        self.errors.sort(key=lambda e: (e.line, e.column))
        schema = Schema(
            datasources=datasources, generators=generators, models=models, enums=enums
        )
        return schema, self.errors

    def _skip_unknown_block(self) -> None:
        start = self._advance()
        while (
            self.current.type not in (TokenType.LBRACE, TokenType.EOF)
            and self.current.line == start.line
        ):
            self._advance()

        if self._match(TokenType.LBRACE):
            self._skip_braced()

    def _skip_braced(self) -> None:
        """Skip to the brace matching one that was just consumed."""
        depth = 1
        while depth and not self._check(TokenType.EOF):
            token = self._advance()
            if token.type == TokenType.LBRACE:
                depth += 1
            elif token.type == TokenType.RBRACE:
                depth -= 1

    def _parse_block_header(self) -> Optional[Tuple[Token, str]]:
        keyword = self._advance()
        name = self._match(TokenType.IDENT)
        if not name:
            self._error(f"Expected a name after '{keyword.value}'")
            if self._match(TokenType.LBRACE):
                self._skip_braced()
            else:
                self._skip_line(keyword.line)
            return None

        if not self._match(TokenType.LBRACE):
            self._error(f"Expected '{{' after {keyword.value} '{name.value}'")
            self._skip_line(name.line)
            return None

        return keyword, name.value

    def _block_closed(self, keyword: Token, name: str) -> bool:
        """Consume the closing brace; report a block left open."""
        if self._match(TokenType.RBRACE):
            return True
        if self._check(TokenType.EOF) or self._starts_block():
            self._error(
                f"Unbalanced braces: {keyword.value} '{name}' is missing a closing '}}'",
                keyword,
            )
            return True
        return False

    def _parse_config_block(self, block_class):
        header = self._parse_block_header()
        if header is None:
            return None
        keyword, name = header

        fields = []
        while not self._block_closed(keyword, name):
            token = self.current
            if token.type != TokenType.IDENT:
                self._error(f"Unexpected {token.describe()} in {keyword.value} '{name}'", token)
                self._advance()
                continue

            key = self._advance()
            if not self._match(TokenType.EQUALS):
                self._error(f"Expected '=' after '{key.value}'")
                self._skip_line(key.line)
                continue

            value = self._parse_value()
            if value is None:
                self._error(f"Invalid value for '{key.value}'", key)
                self._skip_line(key.line)
                continue

            fields.append(ConfigField(name=key.value, value=value))

        return block_class(name=name, fields=fields)

    def _parse_model(self) -> Optional[Model]:
        header = self._parse_block_header()
        if header is None:
            return None
        keyword, name = header

        fields, attributes = [], []
        while not self._block_closed(keyword, name):
            token = self.current
            if token.type == TokenType.ATAT:
                attribute = self._parse_attribute()
                if attribute:
                    attributes.append(attribute)
            elif token.type == TokenType.IDENT:
                field = self._parse_field()
                if field:
                    fields.append(field)
            else:
                self._error(f"Unexpected {token.describe()} in model '{name}'", token)
                self._advance()

        return Model(name=name, fields=fields, attributes=attributes)

    def _parse_field(self) -> Optional[ModelField]:
        name = self._advance()
        type_token = self.current
        if type_token.type != TokenType.IDENT or type_token.line != name.line:
            self._error(f"Field '{name.value}' is missing a type", name)
            self._skip_line(name.line)
            return None
        self._advance()

        unsupported = None
        if type_token.value == "Unsupported" and self._check(TokenType.LPAREN):
            self._advance()
            literal = self._match(TokenType.STRING)
            if not literal or not self._match(TokenType.RPAREN):
                self._error('Expected Unsupported("<database type>")', type_token)
                self._skip_line(name.line)
                return None
            unsupported = literal.value

        is_array = False
        if self._match(TokenType.LBRACKET):
            if not self._match(TokenType.RBRACKET):
                self._error(f"Expected ']' after type of field '{name.value}'")
                self._skip_line(name.line)
                return None
            is_array = True

        is_optional = self._match(TokenType.QUESTION) is not None

        attributes = []
        while self._check(TokenType.AT):
            attribute = self._parse_attribute()
            if attribute:
                attributes.append(attribute)

        return ModelField(
            name=name.value,
            type=FieldType(
                name=type_token.value,
                is_array=is_array,
                is_optional=is_optional,
                unsupported=unsupported,
            ),
            attributes=attributes,
        )

    def _parse_enum(self) -> Optional[EnumDef]:
        header = self._parse_block_header()
        if header is None:
            return None
        keyword, name = header

        values, attributes = [], []
        while not self._block_closed(keyword, name):
            token = self.current
            if token.type == TokenType.ATAT:
                attribute = self._parse_attribute()
                if attribute:
                    attributes.append(attribute)
            elif token.type == TokenType.IDENT:
                self._advance()
                value_attributes = []
                while self._check(TokenType.AT):
                    attribute = self._parse_attribute()
                    if attribute:
                        value_attributes.append(attribute)
                values.append(EnumValue(name=token.value, attributes=value_attributes))
            else:
                self._error(f"Unexpected {token.describe()} in enum '{name}'", token)
                self._advance()

        return EnumDef(name=name, values=values, attributes=attributes)

    def _parse_attribute(self) -> Optional[Attribute]:
        marker = self._advance()
        first = self._match(TokenType.IDENT)
        if not first:
            self._error(f"Expected attribute name after '{marker.value}'", marker)
            self._skip_line(marker.line)
            return None

        parts = [first.value]
        while self._check(TokenType.DOT) and self._peek().type == TokenType.IDENT:
            self._advance()
            parts.append(self._advance().value)
        name = ".".join(parts)

        arguments = []
        if self._check(TokenType.LPAREN):
            opening = self._advance()
            arguments = self._parse_arguments(f"{marker.value}{name}", opening)
            if arguments is None:
                return None

        return Attribute(name=name, arguments=arguments)

    def _parse_arguments(self, owner: str, opening: Token) -> Optional[List[Argument]]:
        """Parse arguments up to and including the closing parenthesis."""
        arguments = []
        if self._match(TokenType.RPAREN):
            return arguments

        while True:
            argument = self._parse_argument()
            if argument is None:
                self._error(f"Malformed argument list for '{owner}'")
                self._skip_arguments(opening)
                return None
            arguments.append(argument)

            if self._match(TokenType.COMMA):
                if self._match(TokenType.RPAREN):
                    return arguments
                continue

            if self._match(TokenType.RPAREN):
                return arguments

            self._error(
                f"Malformed argument list for '{owner}': expected ',' or ')', "
                f"found {self.current.describe()}"
            )
            self._skip_arguments(opening)
            return None

    def _skip_arguments(self, opening: Token) -> None:
        depth = 1
        while not self._check(TokenType.EOF) and self.current.line == opening.line:
            token = self.current
            if token.type == TokenType.RBRACE:
                return
            self._advance()
            if token.type == TokenType.LPAREN:
                depth += 1
            elif token.type == TokenType.RPAREN:
                depth -= 1
                if depth == 0:
                    return

    def _parse_argument(self) -> Optional[Argument]:
        name = None
        if self._check(TokenType.IDENT) and self._peek().type in (
            TokenType.COLON,
            TokenType.EQUALS,
        ):
            name = self._advance().value
            self._advance()

        value = self._parse_value()
        if value is None:
            return None
        return Argument(name=name, value=value)

    def _parse_value(self):
        token = self.current

        if token.type == TokenType.STRING:
            self._advance()
            return ScalarValue(value=token.value, literal_type="string")

        if token.type == TokenType.INT:
            self._advance()
            return ScalarValue(value=int(token.value), literal_type="number")

        if token.type == TokenType.FLOAT:
            self._advance()
            return ScalarValue(value=float(token.value), literal_type="number")

        if token.type == TokenType.IDENT:
            self._advance()
            if token.value in ("true", "false"):
                return ScalarValue(value=token.value == "true", literal_type="boolean")
            if self._check(TokenType.LPAREN):
                opening = self._advance()
                args = self._parse_arguments(f"{token.value}()", opening)
                if args is None:
                    return None
                return FunctionCall(name=token.value, args=args)
            return ScalarValue(value=token.value, literal_type="identifier")

        if token.type == TokenType.LBRACKET:
            self._advance()
            items = []
            if self._match(TokenType.RBRACKET):
                return ListValue(items=items)
            while True:
                item = self._parse_value()
                if item is None:
                    return None
                items.append(item)
                if self._match(TokenType.COMMA):
                    if self._match(TokenType.RBRACKET):
                        break
                    continue
                if self._match(TokenType.RBRACKET):
                    break
                return None
            return ListValue(items=items)

        return None


def parse(text: str) -> Tuple[Schema, List[SchemaSyntaxError]]:
    """Parse declaration text.

    Args:
        text: Declaration source

    Returns:
        Tuple of the parsed schema and the list of syntax errors
    """
    lexer = Lexer(text)
    tokens = lexer.tokenize()
    return Parser(tokens, lexer).parse()
