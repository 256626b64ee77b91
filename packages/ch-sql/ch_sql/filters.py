"""Filter predicate compiler.

Turns structured filters into the boolean fragments of a WHERE clause.
Value rendering is chosen from the resolved column type, not from the
filter's declared variant, so a column's live type can re-route a filter.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from .schemas import (
    GRAFANA_END_TIME,
    GRAFANA_START_TIME,
    MULTI_OPERATORS,
    NULL_OPERATORS,
    DASHBOARD_RANGE_OPERATORS,
    Filter,
    FilterOperator,
    QueryBuilderOptions,
    get_column_by_hint,
)
from .sql_utils import concat_query_parts

logger = logging.getLogger(__name__)


# =============================================================================
# Column type predicates
# =============================================================================


def strip_type_modifiers(type_name: str) -> str:
    """Lowercase a ClickHouse type and drop Nullable/LowCardinality wrappers."""
    return (
        type_name.lower()
        .replace("(", "")
        .replace(")", "")
        .replace("nullable", "")
        .replace("lowcardinality", "")
    )


def is_boolean_type(type_name: str) -> bool:
    return type_name.lower().startswith("bool")


def is_number_type(type_name: str) -> bool:
    lowered = type_name.lower()
    return any(t in lowered for t in ("int", "float", "decimal"))


def is_date_type(type_name: str) -> bool:
    lowered = type_name.lower()
    return lowered.startswith("date") or lowered.startswith("nullable(date")


def is_string_type(type_name: str) -> bool:
    stripped = strip_type_modifiers(type_name)
    return (
        (stripped == "string" or stripped.startswith("fixedstring"))
        and not (is_boolean_type(stripped) or is_number_type(stripped) or is_date_type(stripped))
    )


# =============================================================================
# Value rendering
# =============================================================================


def escape_value(value: str) -> str:
    """Single-quote a value unless it is a macro or template variable.

    Embedded quotes are not escaped.
    """
    if value.startswith("$"):
        return value
    return f"'{value}'"


def escape_date_value(value: str) -> str:
    """Single-quote a date literal unless it is a macro or an expression.

    ``2024-01-01`` becomes ``'2024-01-01'``; ``now()``, ``$__fromTime`` and
    already quoted values pass through.
    """
    if any(c in value for c in "$()'\""):
        return value
    return f"'{value}'"


def _format_number(value: Any) -> str:
    if not value:
        return "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _render_multi(value: Any) -> str:
    items = value if isinstance(value, (list, tuple)) else str(value or "").split(",")
    return "(" + ", ".join(escape_value(str(v).strip()) for v in items) + ")"


def _apply_map_key(column: str, column_type: str, map_key: Optional[str]) -> str:
    if not map_key:
        return column
    if column_type.startswith("Map"):
        return f"{column}['{map_key}']"
    if column_type.startswith("JSON"):
        path = ".".join(f"`{part}`" for part in map_key.split("."))
        return f"{column}.{path}"
    return column


def compile_filter(filter: Filter, column: str, column_type: str) -> str:
    """Render one filter against an already-resolved column.

    Args:
        filter: The structured filter.
        column: Resolved column expression (hint and map key applied).
        column_type: Resolved ClickHouse type of the column.

    Returns:
        The fragment without surrounding parentheses or joiner, e.g.
        ``status = 'ok'`` or ``NOT ( ts >= $__fromTime AND ts <= $__toTime )``.
        Empty when a dashboard time range check targets a non-date column.
    """
    operator = filter.operator
    if operator in DASHBOARD_RANGE_OPERATORS and not is_date_type(column_type):
        return ""

    parts: List[str] = [column]

    sql_operator = operator.value
    negate = False
    if operator in (FilterOperator.IS_EMPTY, FilterOperator.IS_NOT_EMPTY):
        sql_operator = ""
    elif operator == FilterOperator.NOT_LIKE:
        sql_operator = "LIKE"
        negate = True
    elif operator == FilterOperator.OUTSIDE_DASHBOARD_TIME_RANGE:
        sql_operator = ""
        negate = True
    elif operator == FilterOperator.WITHIN_DASHBOARD_TIME_RANGE:
        sql_operator = ""

    if sql_operator:
        parts.append(sql_operator)

    value = filter.value
    if operator in NULL_OPERATORS:
        pass
    elif operator == FilterOperator.IS_EMPTY:
        parts.append("= ''")
    elif operator == FilterOperator.IS_NOT_EMPTY:
        parts.append("!= ''")
    elif operator in MULTI_OPERATORS:
        parts.append(_render_multi(value))
    elif is_boolean_type(column_type):
        parts.append("true" if value is True or str(value).lower() == "true" else "false")
    elif is_number_type(column_type):
        parts.append(_format_number(value))
    elif is_date_type(column_type):
        if operator in DASHBOARD_RANGE_OPERATORS:
            parts.extend([">=", "$__fromTime", "AND", column, "<=", "$__toTime"])
        elif value == GRAFANA_START_TIME:
            parts.append("$__fromTime")
        elif value == GRAFANA_END_TIME:
            parts.append("$__toTime")
        else:
            parts.append(escape_date_value(str(value or "TODAY")))
    elif is_string_type(column_type):
        if operator in (FilterOperator.LIKE, FilterOperator.NOT_LIKE):
            parts.append(f"'%{value or ''}%'")
        else:
            parts.append(escape_value(str(value or "")))
    else:
        parts.append(escape_value(str(value or "")))

    if negate:
        parts = ["NOT", "("] + parts + [")"]

    return concat_query_parts(parts)


def get_filters(options: QueryBuilderOptions) -> str:
    """Render all filters of ``options`` as a WHERE body (without ``WHERE``).

    Filters whose column cannot be resolved are skipped; joiners are only
    placed between emitted fragments.
    """
    built: List[str] = []

    for filter in options.filters:
        if filter.operator == FilterOperator.IS_ANYTHING:
            continue

        column = filter.key
        column_type = filter.type or ""
        hinted = get_column_by_hint(options, filter.hint) if filter.hint else None
        if hinted is not None:
            column = hinted.alias or hinted.name
            column_type = hinted.type or column_type

        if not column:
            logger.debug("Skipping filter without a resolvable column: %r", filter)
            continue

        column = _apply_map_key(column, column_type, filter.map_key)
        fragment = compile_filter(filter, column, column_type)
        if not fragment:
            logger.debug("Skipping time range filter on non-date column %s", column)
            continue

        parts = ["(", fragment, ")"]
        if built:
            parts.insert(0, filter.condition)
        built.append(concat_query_parts(parts))

    return concat_query_parts(built)
