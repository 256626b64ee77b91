"""Text-level helpers for locating clauses in raw SQL.

This is a bounded heuristic, not a parser: it tracks parenthesis depth so
clauses inside subqueries are ignored, and skips a leading CTE block.
Parentheses inside string literals are counted like any other, which can
hide a later top-level clause.
"""

from __future__ import annotations

import re
from typing import List

_WITH_PREFIX = re.compile(r"^\s*WITH\b")
_SELECT_AHEAD = re.compile(r"\s*SELECT\b")
_LEADING_WHITESPACE = re.compile(r"\s*")
_TRAILING_SEMICOLON = re.compile(r";\s*$")


def _skip_cte(upper_sql: str) -> int:
    """Return the index where the main query starts, or 0 when there is no CTE."""
    with_match = _WITH_PREFIX.match(upper_sql)
    if not with_match:
        return 0

    depth = 0
    i = with_match.end()
    while i < len(upper_sql):
        char = upper_sql[i]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and _SELECT_AHEAD.match(upper_sql, i):
            break
        i += 1
    return i


def find_main_clause_position(sql: str, clause: str) -> int:
    """Find a clause keyword at the top level of the outermost statement.

    Args:
        sql: SQL text.
        clause: Clause keyword, e.g. ``WHERE``, ``GROUP BY``, ``LIMIT``.

    Returns:
        Index of the keyword itself (leading whitespace skipped), or -1.
    """
    upper_sql = sql.upper()
    keyword = r"\s+".join(re.escape(part) for part in clause.upper().split())
    pattern = re.compile(r"\s*" + keyword + r"\b")

    depth = 0
    i = _skip_cte(upper_sql)
    while i < len(sql):
        char = sql[i]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and pattern.match(upper_sql, i):
            return i + len(_LEADING_WHITESPACE.match(upper_sql, i).group(0))
        i += 1

    return -1


def trim_trailing_semicolon(sql: str) -> str:
    """Drop a trailing ``;`` and surrounding whitespace."""
    return _TRAILING_SEMICOLON.sub("", sql, count=1).strip()


def concat_query_parts(parts: List[str]) -> str:
    """Join query parts with single spaces, skipping empty ones."""
    return " ".join(p for p in parts if p)
