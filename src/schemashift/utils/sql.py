"""SQL text helpers for migration scripts."""

import hashlib
import re
from typing import List


def strip_sql_comments(sql: str) -> str:
    """Remove ``--`` and ``/* */`` comments from SQL text.

    This is a regex pass and does not look inside string literals, so it is
    only used to decide whether a fragment contains anything executable.
    """
    # Remove single-line comments
    stripped = re.sub(r"--.*$", "", sql, flags=re.MULTILINE)
    # Remove multi-line comments
    stripped = re.sub(r"/\*[\s\S]*?\*/", "", stripped)
    return stripped


def split_sql_statements(sql: str) -> List[str]:
    """Split a script into statements on top-level semicolons.

    Semicolons inside quoted strings, quoted identifiers, dollar-quoted
    bodies and comments do not end a statement. Fragments that hold only
    comments or whitespace are dropped.

    Args:
        sql: Script text

    Returns:
        List of statements without their trailing semicolons
    """
    statements = []
    current = []
    i = 0
    length = len(sql)

    while i < length:
        ch = sql[i]

        if ch in ("'", '"', "`"):
            end = i + 1
            while end < length:
                if sql[end] == "\\" and ch != "`":
                    end += 2
                    continue
                if sql[end] == ch:
                    # Doubled quote is an escaped quote
                    if end + 1 < length and sql[end + 1] == ch:
                        end += 2
                        continue
                    break
                end += 1
            current.append(sql[i : end + 1])
            i = end + 1
            continue

        if ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end
            current.append(sql[i:end])
            i = end
            continue

        if ch == "/" and sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = length if end == -1 else end + 2
            current.append(sql[i:end])
            i = end
            continue

        if ch == "$":
            match = re.match(r"\$[A-Za-z_]*\$", sql[i:])
            if match:
                tag = match.group(0)
                end = sql.find(tag, i + len(tag))
                end = length if end == -1 else end + len(tag)
                current.append(sql[i:end])
                i = end
                continue

        if ch == ";":
            _append_statement(statements, "".join(current))
            current = []
            i += 1
            continue

        current.append(ch)
        i += 1

    _append_statement(statements, "".join(current))
    return statements


def _append_statement(statements: List[str], fragment: str) -> None:
    statement = fragment.strip()
    if statement and strip_sql_comments(statement).strip():
        statements.append(statement)


def calculate_checksum(sql: str) -> str:
    """SHA-256 checksum of a migration script.

    Line endings are normalized to ``\\n`` and trailing whitespace is removed
    from every line first, so checkouts on different platforms agree.

    Args:
        sql: Script text

    Returns:
        64-character hex digest
    """
    normalized = sql.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip(" \t") for line in normalized.split("\n")]
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()
