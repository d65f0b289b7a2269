"""
SQL script splitting for migration units.

A script is cut into individually executable statements at ``;``. Trigger
definitions are the exception: their BEGIN ... END body contains its own
terminators, so once a statement is recognised as a trigger header the
splitter stays in the compound state until the closing ``END;``.
"""

import re
from enum import Enum
from typing import List

_COMPOUND_HEADER = re.compile(
    r"^\s*CREATE\s+(?:TEMP\s+|TEMPORARY\s+)?TRIGGER\b", re.IGNORECASE
)
_ENDS_WITH_END = re.compile(r"\bEND\s*$", re.IGNORECASE)
_END_WORD = re.compile(r"\bEND\b", re.IGNORECASE)
_CASE_WORD = re.compile(r"\bCASE\b", re.IGNORECASE)

_QUOTES = ("'", '"')


class SplitState(Enum):
    NORMAL = "normal"
    INSIDE_COMPOUND = "inside_compound"


def strip_comments(sql: str) -> str:
    """Remove ``--`` and ``/* */`` comments that are not inside quoted text."""
    out: List[str] = []
    quote = None
    in_comment = False
    in_block = False
    i = 0
    while i < len(sql):
        ch = sql[i]
        if in_block:
            if ch == "*" and sql.startswith("*/", i):
                in_block = False
                out.append(" ")
                i += 1
        elif in_comment:
            if ch == "\n":
                in_comment = False
                out.append(ch)
        elif quote:
            out.append(ch)
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
            out.append(ch)
        elif ch == "-" and sql.startswith("--", i):
            in_comment = True
            i += 1
        elif ch == "/" and sql.startswith("/*", i):
            in_block = True
            i += 1
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def _closes_compound(statement: str) -> bool:
    # CASE ... END inside a trigger body must not end the trigger
    body = statement[:-1]
    if not _ENDS_WITH_END.search(body):
        return False
    return len(_END_WORD.findall(body)) > len(_CASE_WORD.findall(body))


def split_sql_statements(sql: str) -> List[str]:
    """Split a migration script into statements, keeping trigger bodies whole."""
    statements: List[str] = []
    buffer: List[str] = []
    state = SplitState.NORMAL
    quote = None

    def emit() -> None:
        statement = "".join(buffer).strip()
        buffer.clear()
        if statement and statement != ";":
            statements.append(statement)

    for ch in strip_comments(sql):
        buffer.append(ch)
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in _QUOTES:
            quote = ch
            continue
        if ch != ";":
            continue

        current = "".join(buffer)
        if state is SplitState.NORMAL:
            if _COMPOUND_HEADER.match(current) and not _closes_compound(current.rstrip()):
                state = SplitState.INSIDE_COMPOUND
                continue
            emit()
        elif _closes_compound(current.rstrip()):
            state = SplitState.NORMAL
            emit()

    emit()
    return statements
