"""SQL generator for builder queries.

Renders a QueryBuilderOptions document into ClickHouse SQL for one of four
shapes:
- Traces: trace search, or trace-ID lookup aliased for the trace panel
- Logs: timestamp/body/level first, aliased for the logs panel
- TimeSeries: simple or trend (bucketed by $__timeInterval)
- Table: list or aggregate

The generator never mutates its input and never raises; missing hinted
columns just drop their SELECT fragment.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from . import otel
from .filters import get_filters
from .schemas import (
    AggregateColumn,
    BuilderMode,
    ColumnHint,
    QueryBuilderOptions,
    QueryType,
    SelectedColumn,
    TimeUnit,
    get_column_by_hint,
)
from .sql_utils import concat_query_parts

logger = logging.getLogger(__name__)

DEFAULT_TRACE_LIMIT = 1000

# Log panel aliases, in the order they are selected
LOG_ALIAS_TO_COLUMN_HINTS: Dict[str, ColumnHint] = {
    "timestamp": ColumnHint.TIME,
    "body": ColumnHint.LOG_MESSAGE,
    "level": ColumnHint.LOG_LEVEL,
    "labels": ColumnHint.LOG_LABELS,
    "traceID": ColumnHint.TRACE_ID,
}
LOG_COLUMN_HINTS_TO_ALIAS: Dict[ColumnHint, str] = {
    hint: alias for alias, hint in LOG_ALIAS_TO_COLUMN_HINTS.items()
}

# Trace panel aliases for plain hinted columns (search mode subset first)
_TRACE_SEARCH_ALIASES = [
    (ColumnHint.TRACE_ID, "traceID"),
    (ColumnHint.TRACE_SERVICE_NAME, "serviceName"),
    (ColumnHint.TRACE_OPERATION_NAME, "operationName"),
]
_TRACE_ID_ALIASES = [
    (ColumnHint.TRACE_ID, "traceID"),
    (ColumnHint.TRACE_SPAN_ID, "spanID"),
    (ColumnHint.TRACE_PARENT_SPAN_ID, "parentSpanID"),
    (ColumnHint.TRACE_SERVICE_NAME, "serviceName"),
    (ColumnHint.TRACE_OPERATION_NAME, "operationName"),
]
_TRACE_ID_TRAILING_ALIASES = [
    (ColumnHint.TRACE_KIND, "kind"),
    (ColumnHint.TRACE_STATUS_MESSAGE, "statusMessage"),
    (ColumnHint.TRACE_INSTRUMENTATION_LIBRARY_NAME, "instrumentationLibraryName"),
    (ColumnHint.TRACE_INSTRUMENTATION_LIBRARY_VERSION, "instrumentationLibraryVersion"),
    (ColumnHint.TRACE_STATE, "traceState"),
]


def generate_sql(options: QueryBuilderOptions) -> str:
    """Generate the SQL statement for ``options``."""
    if options.query_type == QueryType.TRACES:
        if _is_trace_id_mode(options):
            return _generate_trace_id_query(options)
        return _generate_trace_search_query(options)
    if options.query_type == QueryType.LOGS:
        return _generate_logs_query(options)
    if options.query_type == QueryType.TIME_SERIES:
        if options.mode == BuilderMode.TREND:
            return _generate_aggregate_time_series_query(options)
        return _generate_simple_time_series_query(options)
    return _generate_table_query(options)


def _is_trace_id_mode(options: QueryBuilderOptions) -> bool:
    return bool(options.meta.get("isTraceIdMode") and options.meta.get("traceId"))


# =============================================================================
# Traces
# =============================================================================


def _generate_trace_search_query(options: QueryBuilderOptions) -> str:
    select_parts: List[str] = []
    for hint, alias in _TRACE_SEARCH_ALIASES:
        column = get_column_by_hint(options, hint)
        if column is not None:
            select_parts.append(f"{escape_identifier(column.name)} as {alias}")

    start_time = get_column_by_hint(options, ColumnHint.TIME)
    if start_time is not None:
        select_parts.append(f"{escape_identifier(start_time.name)} as startTime")

    duration = get_column_by_hint(options, ColumnHint.TRACE_DURATION_TIME)
    if duration is not None:
        select_parts.append(
            get_trace_duration_select_sql(escape_identifier(duration.name), options.meta.get("traceDurationUnit"))
        )

    query_parts = ["SELECT", ", ".join(select_parts), "FROM", get_table_identifier(options.database, options.table)]

    filter_parts = get_filters(options)
    if filter_parts:
        query_parts.extend(["WHERE", filter_parts])

    query_parts.extend(_trace_order_and_limit(options, start_time))
    return concat_query_parts(query_parts)


def _generate_trace_id_query(options: QueryBuilderOptions) -> str:
    """Trace lookup with columns that fit the trace panel's data frame."""
    select_parts: List[str] = []
    for hint, alias in _TRACE_ID_ALIASES:
        column = get_column_by_hint(options, hint)
        if column is not None:
            select_parts.append(f"{escape_identifier(column.name)} as {alias}")

    start_time = get_column_by_hint(options, ColumnHint.TIME)
    if start_time is not None:
        select_parts.append(f"{convert_time_field_to_milliseconds(escape_identifier(start_time.name))} as startTime")

    duration = get_column_by_hint(options, ColumnHint.TRACE_DURATION_TIME)
    if duration is not None:
        select_parts.append(
            get_trace_duration_select_sql(escape_identifier(duration.name), options.meta.get("traceDurationUnit"))
        )

    tags = get_column_by_hint(options, ColumnHint.TRACE_TAGS)
    if tags is not None:
        select_parts.append(f"{_map_to_key_value_array(escape_identifier(tags.name))} as tags")

    service_tags = get_column_by_hint(options, ColumnHint.TRACE_SERVICE_TAGS)
    if service_tags is not None:
        select_parts.append(f"{_map_to_key_value_array(escape_identifier(service_tags.name))} as serviceTags")

    status_code = get_column_by_hint(options, ColumnHint.TRACE_STATUS_CODE)
    if status_code is not None:
        select_parts.append(
            f"if({escape_identifier(status_code.name)} IN ('Error', 'STATUS_CODE_ERROR'), 2, 0) as statusCode"
        )

    flatten_nested = bool(options.meta.get("flattenNested"))
    events_prefix = options.meta.get("traceEventsColumnPrefix") or ""
    if events_prefix:
        select_parts.append(_trace_events_select_sql(escape_identifier(events_prefix), flatten_nested))

    links_prefix = options.meta.get("traceLinksColumnPrefix") or ""
    if links_prefix:
        select_parts.append(_trace_links_select_sql(escape_identifier(links_prefix), flatten_nested))

    for hint, alias in _TRACE_ID_TRAILING_ALIASES:
        column = get_column_by_hint(options, hint)
        if column is not None:
            select_parts.append(f"{escape_identifier(column.name)} as {alias}")

    trace_id = options.meta["traceId"]
    query_parts: List[str] = []

    # OTel exporters keep per-trace start/end in a companion table, which
    # narrows the scan of the main table to the trace's time window.
    otel_version = otel.get_version(options.meta.get("otelVersion"))
    optimize = start_time is not None and bool(options.meta.get("otelEnabled")) and otel_version is not None
    if optimize:
        timestamp_table = get_table_identifier(options.database, options.table + otel.TRACE_TIMESTAMP_TABLE_SUFFIX)
        query_parts.extend([
            "WITH",
            f"'{trace_id}' as trace_id,",
            f"(SELECT min(Start) FROM {timestamp_table} WHERE TraceId = trace_id) as trace_start,",
            f"(SELECT max(End) + 1 FROM {timestamp_table} WHERE TraceId = trace_id) as trace_end",
        ])

    query_parts.extend(["SELECT", ", ".join(select_parts), "FROM", get_table_identifier(options.database, options.table)])
    query_parts.append("WHERE")

    if optimize:
        start_time_identifier = escape_identifier(start_time.name)
        query_parts.extend([
            "traceID = trace_id",
            "AND",
            f"{start_time_identifier} >= trace_start",
            "AND",
            f"{start_time_identifier} <= trace_end",
        ])
    else:
        query_parts.append(f"traceID = '{trace_id}'")

    filter_parts = get_filters(options)
    if filter_parts:
        query_parts.extend(["AND", filter_parts])

    query_parts.extend(_trace_order_and_limit(options, start_time))
    return concat_query_parts(query_parts)


def _trace_order_and_limit(options: QueryBuilderOptions, start_time: Optional[SelectedColumn]) -> List[str]:
    """ORDER BY startTime first when known, then remaining user orderings."""
    order_parts: List[str] = []
    excluded = set()
    if start_time is not None:
        order_parts.append("startTime ASC")
        excluded = {start_time.name, start_time.alias, "startTime"}

    user_order = get_order_by(options, exclude=excluded)
    if user_order:
        order_parts.append(user_order)

    parts: List[str] = []
    if order_parts:
        parts.extend(["ORDER BY", ", ".join(order_parts)])

    limit = get_limit(DEFAULT_TRACE_LIMIT if options.limit is None else options.limit)
    if limit:
        parts.append(limit)
    return parts


def get_trace_duration_select_sql(column_identifier: str, time_unit: Optional[str] = None) -> str:
    """Duration in milliseconds, as the trace panel expects."""
    alias = "duration"
    if time_unit == TimeUnit.SECONDS.value:
        return f"multiply({column_identifier}, 1000) as {alias}"
    if time_unit == TimeUnit.MILLISECONDS.value:
        return f"{column_identifier} as {alias}"
    if time_unit == TimeUnit.MICROSECONDS.value:
        return f"intDivOrZero({column_identifier}, 1000) as {alias}"
    return f"intDivOrZero({column_identifier}, 1000000) as {alias}"


def convert_time_field_to_milliseconds(column_identifier: str) -> str:
    return f"multiply(toUnixTimestamp64Nano({column_identifier}), 0.000001)"


def _map_to_key_value_array(column_identifier: str) -> str:
    return f"arrayMap(key -> map('key', key, 'value',{column_identifier}[key]), mapKeys({column_identifier}))"


def _trace_events_select_sql(prefix: str, flatten_nested: bool) -> str:
    if flatten_nested:
        return " ".join([
            "arrayMap(event -> tuple(multiply(toFloat64(event.Timestamp), 1000),",
            "arrayConcat(arrayMap(key -> map('key', key, 'value', event.Attributes[key]),",
            "mapKeys(event.Attributes)), [map('key', 'message', 'value', event.Name)]))"
            "::Tuple(timestamp Float64, fields Array(Map(String, String))),",
            f"{prefix}) as logs",
        ])
    return " ".join([
        "arrayMap((name, timestamp, attributes) -> tuple(name, toString(toUnixTimestamp64Milli(timestamp)),",
        "arrayMap( key -> map('key', key, 'value', attributes[key]),",
        "mapKeys(attributes)))::Tuple(name String, timestamp String, fields Array(Map(String, String))),",
        f"{prefix}.Name, {prefix}.Timestamp,",
        f"{prefix}.Attributes) AS logs",
    ])


def _trace_links_select_sql(prefix: str, flatten_nested: bool) -> str:
    if flatten_nested:
        return " ".join([
            "arrayMap(link -> tuple(link.TraceId, link.SpanId, arrayMap(key -> map('key', key, 'value', link.Attributes[key]),",
            "mapKeys(link.Attributes)))::Tuple(traceID String, spanID String, tags Array(Map(String, String))),",
            f"{prefix}) AS references",
        ])
    return " ".join([
        "arrayMap((traceID, spanID, attributes) -> tuple(traceID, spanID, arrayMap(key -> map('key', key, 'value', attributes[key]),",
        "mapKeys(attributes)))::Tuple(traceID String, spanID String, tags Array(Map(String, String))),",
        f"{prefix}.TraceId, {prefix}.SpanId,",
        f"{prefix}.Attributes) AS references",
    ])


# =============================================================================
# Logs
# =============================================================================


def _generate_logs_query(options: QueryBuilderOptions) -> str:
    """Logs query shaped for the logs panel; column order matters."""
    # Work on copies so aliases can be assigned without touching the input
    options = replace(options, columns=[replace(c) for c in options.columns])

    select_parts: List[str] = []
    hinted: Dict[ColumnHint, SelectedColumn] = {}
    for alias, hint in LOG_ALIAS_TO_COLUMN_HINTS.items():
        column = get_column_by_hint(options, hint)
        if column is None:
            continue
        column.alias = alias
        hinted[hint] = column
        select_parts.append(get_column_identifier(column))

    for column in options.columns:
        if column.hint is None:
            select_parts.append(get_column_identifier(column))

    query_parts = ["SELECT", ", ".join(select_parts), "FROM", get_table_identifier(options.database, options.table)]

    filter_parts = get_filters(options)
    log_message = hinted.get(ColumnHint.LOG_MESSAGE)
    message_like = options.meta.get("logMessageLike")
    has_message_filter = log_message is not None and bool(message_like)

    if filter_parts or has_message_filter:
        query_parts.append("WHERE")
    if filter_parts:
        query_parts.append(filter_parts)
    if has_message_filter:
        if filter_parts:
            query_parts.append("AND")
        query_parts.append(f"({log_message.alias or log_message.name} LIKE '%{message_like}%')")

    query_parts.extend(_order_and_limit(options))
    return concat_query_parts(query_parts)


# =============================================================================
# Time series
# =============================================================================


def _aggregate_select(aggregate: AggregateColumn) -> Tuple[str, str]:
    """Return (select fragment, selected name) for an aggregate."""
    name = f"{aggregate.aggregate_type}({aggregate.column})"
    if aggregate.alias:
        alias = aggregate.alias.replace(" ", "_")
        return f"{name} as {alias}", alias
    return name, name


def _generate_simple_time_series_query(options: QueryBuilderOptions) -> str:
    options = replace(options, columns=[replace(c) for c in options.columns])

    select_parts: List[str] = []
    select_names = set()
    time_column = get_column_by_hint(options, ColumnHint.TIME)
    if time_column is not None:
        time_column.alias = "time"
        select_parts.append(get_column_identifier(time_column))
        select_names.add(time_column.alias)

    for column in options.columns:
        if column.hint == ColumnHint.TIME:
            continue
        select_parts.append(get_column_identifier(column))
        select_names.add(column.alias or column.name)

    aggregate_parts: List[str] = []
    for aggregate in options.aggregates:
        fragment, selected_name = _aggregate_select(aggregate)
        aggregate_parts.append(fragment)
        select_names.add(selected_name)

    for group in options.group_by:
        if group not in select_names:
            select_parts.append(group)

    # Aggregates go after group-by columns
    select_parts.extend(aggregate_parts)

    query_parts = ["SELECT", ", ".join(select_parts), "FROM", get_table_identifier(options.database, options.table)]

    filter_parts = get_filters(options)
    if filter_parts:
        query_parts.extend(["WHERE", filter_parts])

    if options.aggregates or options.group_by:
        query_parts.append("GROUP BY")
    if options.group_by:
        group_by_time = f", {time_column.alias}" if time_column is not None else ""
        query_parts.append(", ".join(options.group_by) + group_by_time)
    elif options.aggregates and time_column is not None:
        query_parts.append(time_column.alias)

    query_parts.extend(_order_and_limit(options))
    return concat_query_parts(query_parts)


def _generate_aggregate_time_series_query(options: QueryBuilderOptions) -> str:
    """Trend query bucketed by $__timeInterval."""
    options = replace(options, columns=[replace(c) for c in options.columns])

    select_parts: List[str] = []
    time_column = get_column_by_hint(options, ColumnHint.TIME)
    if time_column is not None:
        time_column.name = f"$__timeInterval({time_column.name})"
        time_column.alias = "time"
        select_parts.append(get_column_identifier(time_column))

    select_parts.extend(options.group_by)
    for aggregate in options.aggregates:
        select_parts.append(_aggregate_select(aggregate)[0])

    query_parts = ["SELECT", ", ".join(select_parts), "FROM", get_table_identifier(options.database, options.table)]

    filter_parts = get_filters(options)
    if filter_parts:
        query_parts.extend(["WHERE", filter_parts])

    query_parts.append("GROUP BY")
    if options.group_by:
        group_by_time = f", {time_column.alias}" if time_column is not None else ""
        query_parts.append(", ".join(options.group_by) + group_by_time)
    elif time_column is not None:
        query_parts.append(time_column.alias)

    query_parts.extend(_order_and_limit(options))
    return concat_query_parts(query_parts)


# =============================================================================
# Table
# =============================================================================


def _generate_table_query(options: QueryBuilderOptions) -> str:
    is_aggregate_mode = options.mode == BuilderMode.AGGREGATE

    select_parts = [get_column_identifier(c) for c in options.columns]
    if is_aggregate_mode:
        # Group-by columns are not auto-selected; users pick them explicitly
        select_parts.extend(_aggregate_select(a)[0] for a in options.aggregates)

    query_parts = ["SELECT", ", ".join(select_parts), "FROM", get_table_identifier(options.database, options.table)]

    filter_parts = get_filters(options)
    if filter_parts:
        query_parts.extend(["WHERE", filter_parts])

    if is_aggregate_mode and options.group_by:
        query_parts.extend(["GROUP BY", ", ".join(options.group_by)])

    query_parts.extend(_order_and_limit(options))
    return concat_query_parts(query_parts)


# =============================================================================
# Shared clause builders
# =============================================================================


def _order_and_limit(options: QueryBuilderOptions) -> List[str]:
    parts: List[str] = []
    order_by = get_order_by(options)
    if order_by:
        parts.extend(["ORDER BY", order_by])
    limit = get_limit(options.limit)
    if limit:
        parts.append(limit)
    return parts


def get_order_by(options: QueryBuilderOptions, exclude: Optional[set] = None) -> str:
    """ORDER BY list without the keyword; hinted entries use the hinted column."""
    order_parts: List[str] = []
    for order in options.order_by:
        column_name = order.name
        hinted = get_column_by_hint(options, order.hint) if order.hint else None
        if hinted is not None:
            column_name = hinted.alias or hinted.name

        if not column_name or (exclude and column_name in exclude):
            continue

        order_parts.append(f"{column_name} {order.dir.value}")

    return ", ".join(order_parts)


def get_limit(limit: Optional[int]) -> str:
    """LIMIT clause including the keyword; empty for unset or non-positive limits."""
    try:
        limit = max(0, int(limit or 0))
    except (TypeError, ValueError):
        logger.debug("Ignoring non-numeric limit %r", limit)
        return ""
    if limit > 0:
        return f"LIMIT {limit}"
    return ""


def get_column_identifier(column: SelectedColumn) -> str:
    """Column reference with optional alias.

    Names that already look like expressions (parentheses, double quotes,
    `` as ``) pass through untouched; names with spaces are quoted.
    """
    name = column.name
    if any(token in name for token in ("(", ")", '"', " as ")):
        pass
    elif " " in name:
        name = escape_identifier(name)

    if column.alias and column.alias != column.name and escape_identifier(column.alias) != name:
        return f'{name} as "{column.alias}"'

    return name


def get_table_identifier(database: str, table: str) -> str:
    separator = "." if database and table else ""
    return f"{escape_identifier(database)}{separator}{escape_identifier(table)}"


def escape_identifier(identifier: Optional[str]) -> str:
    return f'"{identifier}"' if identifier else ""
