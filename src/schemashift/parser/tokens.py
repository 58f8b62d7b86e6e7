"""Token definitions for the declaration lexer."""

from dataclasses import dataclass
from enum import Enum


class TokenType(str, Enum):
    """Kinds of tokens produced by the lexer."""

    IDENT = "identifier"
    STRING = "string"
    INT = "integer"
    FLOAT = "float"

    AT = "@"
    ATAT = "@@"
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    EQUALS = "="
    COLON = ":"
    QUESTION = "?"
    COMMA = ","
    DOT = "."

    EOF = "end of input"


# Single-character punctuation, longest match handled by the lexer for @@
PUNCTUATION = {
    "@": TokenType.AT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "=": TokenType.EQUALS,
    ":": TokenType.COLON,
    "?": TokenType.QUESTION,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
}

# Top-level block keywords
BLOCK_KEYWORDS = ("datasource", "generator", "model", "enum")


@dataclass(frozen=True)
class Token:
    """A lexical token with its source position (1-based)."""

    type: TokenType
    value: str
    line: int
    column: int

    def describe(self) -> str:
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type == TokenType.STRING:
            return f'string "{self.value}"'
        return f"'{self.value}'"
