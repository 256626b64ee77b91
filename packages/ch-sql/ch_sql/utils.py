"""Format codes and column hint helpers shared by the generator and migrator."""

from __future__ import annotations

from typing import Dict, List, Optional, Union

from .schemas import ColumnHint, QueryBuilderOptions, QueryType, SelectedColumn

# Result format codes used by the SQL data source backend.
FORMAT_TIME_SERIES = 0
FORMAT_TABLE = 1
FORMAT_LOGS = 2
FORMAT_TRACES = 3
# Unused code; the backend treats it as a time series/graph
FORMAT_UNKNOWN = 1 << 8

# Returned for format codes with no matching query type
UNKNOWN_QUERY_TYPE = -1


def is_builder_options_runnable(options: QueryBuilderOptions) -> bool:
    """True once the options carry enough to render a useful query."""
    return bool(
        options.columns
        or options.filters
        or options.order_by
        or options.aggregates
        or options.group_by
    )


def map_query_type_to_grafana_format(query_type: Optional[QueryType]) -> int:
    if query_type == QueryType.TABLE:
        return FORMAT_TABLE
    if query_type == QueryType.LOGS:
        return FORMAT_LOGS
    if query_type == QueryType.TIME_SERIES:
        return FORMAT_TIME_SERIES
    if query_type == QueryType.TRACES:
        return FORMAT_TRACES
    return FORMAT_UNKNOWN


def map_query_builder_options_to_grafana_format(options: Optional[QueryBuilderOptions]) -> int:
    """Like ``map_query_type_to_grafana_format``; trace search renders as a table."""
    if options is None:
        return FORMAT_UNKNOWN
    if options.query_type == QueryType.TRACES:
        return FORMAT_TRACES if options.meta.get("isTraceIdMode") else FORMAT_TABLE
    return map_query_type_to_grafana_format(options.query_type)


def map_grafana_format_to_query_type(format_code: Optional[int]) -> Union[QueryType, int]:
    """Map a format code back to a query type, or ``UNKNOWN_QUERY_TYPE``."""
    if isinstance(format_code, bool):
        return UNKNOWN_QUERY_TYPE
    mapping = {
        FORMAT_TIME_SERIES: QueryType.TIME_SERIES,
        FORMAT_TABLE: QueryType.TABLE,
        FORMAT_LOGS: QueryType.LOGS,
        FORMAT_TRACES: QueryType.TRACES,
    }
    return mapping.get(format_code, UNKNOWN_QUERY_TYPE)


def try_apply_column_hints(
    columns: List[SelectedColumn],
    hints_to_columns: Optional[Dict[ColumnHint, str]] = None,
) -> None:
    """Hint columns in place by loose name/alias match.

    Columns that already carry a hint are left alone. Unmatched columns whose
    name contains ``time`` are hinted as the time column.
    """
    columns_to_hints: Dict[str, ColumnHint] = {}
    for hint, name in (hints_to_columns or {}).items():
        columns_to_hints[name.lower().strip()] = hint

    for column in columns:
        if column.hint:
            continue

        name = column.name.lower().strip()
        alias = (column.alias or "").lower().strip()

        hint = columns_to_hints.get(name) or columns_to_hints.get(alias)
        if hint:
            column.hint = hint
            continue

        if "time" in name:
            column.hint = ColumnHint.TIME


def column_label_to_placeholder(label: str) -> str:
    """``"Test Column"`` -> ``"test_column"``"""
    return label.lower().replace(" ", "_")
