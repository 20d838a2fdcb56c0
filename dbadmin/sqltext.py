"""Lightweight SQL text helpers. No parsing, only lexical clean-up."""

import re

_LINE_COMMENT = re.compile(r"--[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
# Single-quoted literals and double-quoted identifiers, matched in one pass
_QUOTED = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")


def strip_sql_comments(statement: str) -> str:
    return _LINE_COMMENT.sub(" ", _BLOCK_COMMENT.sub(" ", statement))


def strip_quoted(statement: str) -> str:
    """Empty every string literal and quoted identifier, keeping the quotes."""
    return _QUOTED.sub(lambda m: m.group(0)[0] * 2, statement)


def normalize_sql(statement: str) -> str:
    """Upper-cased text with comments, literal contents and quoted identifiers removed."""
    return strip_quoted(strip_sql_comments(statement)).upper()


def leading_keyword(statement: str) -> str:
    words = strip_sql_comments(statement).split(None, 1)
    return words[0].upper().lstrip("(") if words else ""
