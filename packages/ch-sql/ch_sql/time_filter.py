"""Automatic dashboard time-range filtering for raw SQL.

Splices a ``$__timeFilter`` macro into hand-written SELECT queries that do
not already filter on the dashboard time range. The macro itself is
expanded downstream, not here.
"""

from __future__ import annotations

import logging
import re

from .schemas import AutoTimeFilterOptions
from .sql_utils import find_main_clause_position, trim_trailing_semicolon

logger = logging.getLogger(__name__)

# $__timeFilter(), $__timeFilter_ms(), $__dateFilter(), $__dateTimeFilter(), $__dt()
_MACRO_PATTERN = re.compile(r"\$__(?:timeFilter|timeFilter_ms|dateFilter|dateTimeFilter|dt)\s*\(", re.IGNORECASE)
# $__fromTime, $__toTime and their _ms variants
_VARIABLE_PATTERN = re.compile(r"\$__(?:fromTime|toTime|fromTime_ms|toTime_ms)\b", re.IGNORECASE)

# Clauses that follow WHERE, in the order they are tried
FOLLOWING_CLAUSES = ("GROUP BY", "ORDER BY", "LIMIT", "SETTINGS", "FORMAT")


def has_time_filter(sql: str) -> bool:
    """True if the SQL already references a time filter macro or variable."""
    if not sql:
        return False
    return bool(_MACRO_PATTERN.search(sql) or _VARIABLE_PATTERN.search(sql))


def inject_time_filter(sql: str, options: AutoTimeFilterOptions) -> str:
    """Inject the dashboard time filter into ``sql`` when needed.

    Returns the input unchanged when injection is disabled, no time column
    is configured, the SQL is empty, is not a SELECT, or already filters on
    time.
    """
    if not options.enabled or not options.time_column or not sql:
        return sql

    if has_time_filter(sql):
        logger.debug("Time filter already present, leaving SQL unchanged")
        return sql

    if not sql.strip().upper().startswith("SELECT"):
        logger.debug("Not a SELECT statement, skipping time filter injection")
        return sql

    trimmed_sql = trim_trailing_semicolon(sql)

    macro = "$__timeFilter_ms" if options.time_column_type == "DateTime64" else "$__timeFilter"
    # Embedded double quotes in the column name are not escaped
    condition = f'{macro}("{options.time_column}")'

    return inject_where_clause(trimmed_sql, condition)


def inject_where_clause(sql: str, condition: str) -> str:
    """Add ``condition`` to the main query's WHERE clause.

    1. Existing WHERE: condition becomes the first conjunct.
    2. No WHERE: a new WHERE is placed before the first following clause.
    3. Neither: WHERE is appended.
    """
    where_pos = find_main_clause_position(sql, "WHERE")
    if where_pos != -1:
        insert_pos = where_pos + len("WHERE")
        logger.debug("Prepending time filter to WHERE at %d", where_pos)
        return f"{sql[:insert_pos]} {condition} AND{sql[insert_pos:]}"

    for clause in FOLLOWING_CLAUSES:
        pos = find_main_clause_position(sql, clause)
        if pos != -1:
            logger.debug("Inserting WHERE before %s at %d", clause, pos)
            return f"{sql[:pos]}WHERE {condition} {sql[pos:]}"

    return f"{sql} WHERE {condition}"
