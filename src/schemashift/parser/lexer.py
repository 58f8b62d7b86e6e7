"""Lexer for the schema declaration language."""

from typing import List

from schemashift.errors import SchemaSyntaxError
from schemashift.parser.tokens import PUNCTUATION, Token, TokenType

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    '"': '"',
    "\\": "\\",
    "'": "'",
    "0": "\0",
}


def _is_digit(ch: str) -> bool:
    # str.isdigit also accepts superscripts and other non-ASCII digits
    return len(ch) == 1 and "0" <= ch <= "9"


class Lexer:
    """Turns declaration source into tokens.

    Errors are collected rather than raised, so one pass can report every
    unterminated string or stray character in the file.
    """

    def __init__(self, source: str):
        self.source = source
        self.lines = source.splitlines()
        self.pos = 0
        self.line = 1
        self.column = 1
        self.errors: List[SchemaSyntaxError] = []

    def context(self, line: int) -> str:
        """Return the source text of a 1-based line."""
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1]
        return ""

    def error(self, message: str, line: int, column: int) -> None:
        self.errors.append(SchemaSyntaxError(message, line, column, self.context(line)))

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.source[index] if index < len(self.source) else ""

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def tokenize(self) -> List[Token]:
        """Tokenize the whole source.

        Returns:
            Tokens, always terminated by an EOF token
        """
        tokens = []
        while self.pos < len(self.source):
            ch = self._peek()

            if ch.isspace():
                self._advance()
                continue

            if ch == "/" and self._peek(1) == "/":
                while self.pos < len(self.source) and self._peek() != "\n":
                    self._advance()
                continue

            if ch == "/" and self._peek(1) == "*":
                self._skip_block_comment()
                continue

            line, column = self.line, self.column

            if ch == '"':
                value = self._read_string()
                if value is not None:
                    tokens.append(Token(TokenType.STRING, value, line, column))
                continue

            if _is_digit(ch) or (ch == "-" and _is_digit(self._peek(1))):
                tokens.append(self._read_number(line, column))
                continue

            if ch.isalpha() or ch == "_":
                start = self.pos
                while self._peek() and (self._peek().isalnum() or self._peek() == "_"):
                    self._advance()
                tokens.append(Token(TokenType.IDENT, self.source[start : self.pos], line, column))
                continue

            if ch == "@" and self._peek(1) == "@":
                self._advance()
                self._advance()
                tokens.append(Token(TokenType.ATAT, "@@", line, column))
                continue

            if ch in PUNCTUATION:
                self._advance()
                tokens.append(Token(PUNCTUATION[ch], ch, line, column))
                continue

            self._advance()
            self.error(f"Unexpected character '{ch}'", line, column)

        tokens.append(Token(TokenType.EOF, "", self.line, self.column))
        return tokens

    def _skip_block_comment(self) -> None:
        line, column = self.line, self.column
        self._advance()
        self._advance()
        while self.pos < len(self.source):
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()
        self.error("Unterminated block comment", line, column)

    def _read_string(self):
        line, column = self.line, self.column
        self._advance()
        chars = []
        while self.pos < len(self.source):
            ch = self._peek()
            if ch == "\n":
                break
            self._advance()
            if ch == '"':
                return "".join(chars)
            if ch == "\\" and self.pos < len(self.source):
                escaped = self._advance()
                if escaped == "u" and self.pos + 4 <= len(self.source):
                    digits = self.source[self.pos : self.pos + 4]
                    try:
                        chars.append(chr(int(digits, 16)))
                        for _ in range(4):
                            self._advance()
                        continue
                    except ValueError:
                        pass
                chars.append(_ESCAPES.get(escaped, escaped))
                continue
            chars.append(ch)

        self.error("Unterminated string literal", line, column)
        return None

    def _read_number(self, line: int, column: int) -> Token:
        start = self.pos
        if self._peek() == "-":
            self._advance()
        while _is_digit(self._peek()):
            self._advance()

        is_float = False
        if self._peek() == "." and _is_digit(self._peek(1)):
            is_float = True
            self._advance()
            while _is_digit(self._peek()):
                self._advance()

        text = self.source[start : self.pos]
        return Token(TokenType.FLOAT if is_float else TokenType.INT, text, line, column)
