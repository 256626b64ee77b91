"""ch-sql schemas.

Structured query model consumed by the SQL generator and produced by the
version migrator:
- Enums: QueryType, BuilderMode, EditorType, ColumnHint, FilterOperator, ...
- Columns: SelectedColumn, AggregateColumn, OrderBy
- Filters: NullFilter, BooleanFilter, NumberFilter, DateFilterWithValue,
  DateFilterWithoutValue, StringFilter, MultiFilter
- QueryBuilderOptions: the canonical builder document
- AutoTimeFilterOptions: time-filter injection config (not persisted)

Persisted documents use camelCase keys; ``from_dict``/``to_dict`` translate
between the JSON shape and these dataclasses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class QueryType(str, Enum):
    """Generator shape."""
    TABLE = "table"
    LOGS = "logs"
    TIME_SERIES = "timeseries"
    TRACES = "traces"


class BuilderMode(str, Enum):
    LIST = "list"
    AGGREGATE = "aggregate"
    TREND = "trend"


class EditorType(str, Enum):
    SQL = "sql"
    BUILDER = "builder"


class OrderByDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class AggregateType(str, Enum):
    SUM = "sum"
    AVERAGE = "avg"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    ANY = "any"


class TimeUnit(str, Enum):
    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"
    MICROSECONDS = "microseconds"
    NANOSECONDS = "nanoseconds"


class ColumnHint(str, Enum):
    """Semantic role of a selected column, independent of its name."""
    TIME = "time"

    LOG_LEVEL = "log_level"
    LOG_MESSAGE = "log_message"
    LOG_LABELS = "log_labels"

    TRACE_ID = "trace_id"
    TRACE_SPAN_ID = "trace_span_id"
    TRACE_PARENT_SPAN_ID = "trace_parent_span_id"
    TRACE_SERVICE_NAME = "trace_service_name"
    TRACE_OPERATION_NAME = "trace_operation_name"
    TRACE_DURATION_TIME = "trace_duration_time"
    TRACE_TAGS = "trace_tags"
    TRACE_SERVICE_TAGS = "trace_service_tags"
    TRACE_STATUS_CODE = "trace_status_code"
    TRACE_KIND = "trace_kind"
    TRACE_STATUS_MESSAGE = "trace_status_message"
    TRACE_INSTRUMENTATION_LIBRARY_NAME = "trace_instrumentation_library_name"
    TRACE_INSTRUMENTATION_LIBRARY_VERSION = "trace_instrumentation_library_version"
    TRACE_STATE = "trace_state"


class FilterOperator(str, Enum):
    IS_ANYTHING = "IS ANYTHING"
    IS_EMPTY = "IS EMPTY"
    IS_NOT_EMPTY = "IS NOT EMPTY"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    EQUALS = "="
    NOT_EQUALS = "!="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    WITHIN_DASHBOARD_TIME_RANGE = "WITH IN DASHBOARD TIME RANGE"
    OUTSIDE_DASHBOARD_TIME_RANGE = "OUTSIDE DASHBOARD TIME RANGE"


NULL_OPERATORS = frozenset([FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL])
MULTI_OPERATORS = frozenset([FilterOperator.IN, FilterOperator.NOT_IN])
DASHBOARD_RANGE_OPERATORS = frozenset([
    FilterOperator.WITHIN_DASHBOARD_TIME_RANGE,
    FilterOperator.OUTSIDE_DASHBOARD_TIME_RANGE,
])
COMPARISON_OPERATORS = frozenset([
    FilterOperator.EQUALS,
    FilterOperator.NOT_EQUALS,
    FilterOperator.LESS_THAN,
    FilterOperator.LESS_THAN_OR_EQUAL,
    FilterOperator.GREATER_THAN,
    FilterOperator.GREATER_THAN_OR_EQUAL,
])

# Placeholder values a date filter may carry instead of a literal
GRAFANA_START_TIME = "GRAFANA_START_TIME"
GRAFANA_END_TIME = "GRAFANA_END_TIME"


def _enum_or_none(enum_cls: Type[Enum], value: Any) -> Optional[Any]:
    """Coerce a persisted value into ``enum_cls``; unknown values become None."""
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        logger.debug("Ignoring unknown %s value %r", enum_cls.__name__, value)
        return None


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# =============================================================================
# Columns
# =============================================================================


@dataclass
class SelectedColumn:
    """A column picked in the builder.

    ``custom`` is set when the column is not present in the live schema
    (typed-in expressions such as ``count()``).
    """
    name: str
    type: Optional[str] = None
    alias: Optional[str] = None
    custom: Optional[bool] = None
    hint: Optional[ColumnHint] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectedColumn":
        return cls(
            name=data.get("name") or "",
            type=data.get("type"),
            alias=data.get("alias"),
            custom=data.get("custom"),
            hint=_enum_or_none(ColumnHint, data.get("hint")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "name": self.name,
            "type": self.type,
            "alias": self.alias,
            "custom": self.custom,
            "hint": self.hint.value if self.hint else None,
        })


@dataclass
class AggregateColumn:
    aggregate_type: str
    column: str
    alias: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateColumn":
        aggregate_type = data.get("aggregateType") or ""
        if isinstance(aggregate_type, AggregateType):
            aggregate_type = aggregate_type.value
        return cls(
            aggregate_type=aggregate_type,
            column=data.get("column") or "",
            alias=data.get("alias"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "aggregateType": self.aggregate_type,
            "column": self.column,
            "alias": self.alias,
        })


@dataclass
class OrderBy:
    name: str
    dir: OrderByDirection = OrderByDirection.ASC
    hint: Optional[ColumnHint] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderBy":
        direction = _enum_or_none(OrderByDirection, str(data.get("dir") or "ASC").upper())
        return cls(
            name=data.get("name") or "",
            dir=direction or OrderByDirection.ASC,
            hint=_enum_or_none(ColumnHint, data.get("hint")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "name": self.name,
            "dir": self.dir.value,
            "hint": self.hint.value if self.hint else None,
        })


# =============================================================================
# Filters
# =============================================================================


@dataclass
class Filter:
    """Fields shared by every filter variant.

    ``condition`` joins this filter to the previous one and is ignored for the
    first emitted filter. ``key`` may be a column name or a map-subscript
    expression; ``hint`` overrides it with the hinted column.
    """
    key: str = ""
    type: str = ""
    operator: FilterOperator = FilterOperator.EQUALS
    condition: str = "AND"
    filter_type: str = "custom"
    hint: Optional[ColumnHint] = None
    map_key: Optional[str] = None
    label: Optional[str] = None
    restrict_to_fields: Optional[List[Dict[str, Any]]] = None
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "filterType": self.filter_type,
            "key": self.key,
            "type": self.type,
            "condition": self.condition,
            "operator": self.operator.value,
            "hint": self.hint.value if self.hint else None,
            "mapKey": self.map_key,
            "label": self.label,
            "restrictToFields": self.restrict_to_fields,
        }
        if not isinstance(self, NullFilter) and not isinstance(self, DateFilterWithoutValue):
            data["value"] = self.value
        return _drop_none(data)


@dataclass
class NullFilter(Filter):
    value: None = None


@dataclass
class BooleanFilter(Filter):
    value: bool = False


@dataclass
class NumberFilter(Filter):
    value: Optional[float] = None


@dataclass
class DateFilterWithValue(Filter):
    """Date comparison against a literal, a named constant or a sentinel."""
    value: str = ""


@dataclass
class DateFilterWithoutValue(Filter):
    """Membership check against the dashboard time range."""
    value: None = None


@dataclass
class StringFilter(Filter):
    value: str = ""


@dataclass
class MultiFilter(Filter):
    value: List[str] = field(default_factory=list)


def _is_date_type_name(type_name: str) -> bool:
    lowered = type_name.lower()
    return lowered.startswith("date") or lowered.startswith("nullable(date")


def _is_number_type_name(type_name: str) -> bool:
    lowered = type_name.lower()
    return any(t in lowered for t in ("int", "float", "decimal"))


def filter_variant(operator: FilterOperator, type_name: str) -> Type[Filter]:
    """Pick the filter variant for an (operator, column type) pair."""
    if operator in NULL_OPERATORS:
        return NullFilter
    if operator in MULTI_OPERATORS:
        return MultiFilter
    if operator in DASHBOARD_RANGE_OPERATORS:
        return DateFilterWithoutValue
    if type_name.lower().startswith("bool") and operator in (FilterOperator.EQUALS, FilterOperator.NOT_EQUALS):
        return BooleanFilter
    if _is_date_type_name(type_name) and operator in COMPARISON_OPERATORS:
        return DateFilterWithValue
    if _is_number_type_name(type_name) and operator in COMPARISON_OPERATORS:
        return NumberFilter
    return StringFilter


def filter_from_dict(data: Dict[str, Any]) -> Filter:
    """Build the matching Filter variant from a persisted filter object."""
    operator = _enum_or_none(FilterOperator, data.get("operator")) or FilterOperator.EQUALS
    type_name = data.get("type") or ""
    cls = filter_variant(operator, type_name)

    kwargs: Dict[str, Any] = dict(
        key=data.get("key") or "",
        type=type_name,
        operator=operator,
        condition=data.get("condition") or "AND",
        filter_type=data.get("filterType") or "custom",
        hint=_enum_or_none(ColumnHint, data.get("hint")),
        map_key=data.get("mapKey"),
        label=data.get("label"),
        restrict_to_fields=data.get("restrictToFields"),
    )

    value = data.get("value")
    if cls is MultiFilter:
        if value is None:
            value = []
        elif isinstance(value, str):
            value = value.split(",")
        kwargs["value"] = list(value)
    elif cls is BooleanFilter:
        kwargs["value"] = bool(value)
    elif cls in (StringFilter, DateFilterWithValue):
        kwargs["value"] = "" if value is None else value
    elif cls is NumberFilter:
        kwargs["value"] = value

    return cls(**kwargs)


# =============================================================================
# Builder options
# =============================================================================


@dataclass
class QueryBuilderOptions:
    """The canonical structured query.

    Shape-specific fields are read relative to ``query_type``. ``meta`` is a
    free-form side channel keyed by consumer (``otelEnabled``, ``traceId``,
    ``traceDurationUnit``, ``isTraceIdMode``, ``logMessageLike``, ...).
    """
    database: str = ""
    table: str = ""
    query_type: QueryType = QueryType.TABLE
    mode: Optional[BuilderMode] = None
    columns: List[SelectedColumn] = field(default_factory=list)
    aggregates: List[AggregateColumn] = field(default_factory=list)
    filters: List[Filter] = field(default_factory=list)
    group_by: List[str] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    limit: Optional[int] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QueryBuilderOptions":
        data = data or {}
        return cls(
            database=data.get("database") or "",
            table=data.get("table") or "",
            query_type=_enum_or_none(QueryType, data.get("queryType")) or QueryType.TABLE,
            mode=_enum_or_none(BuilderMode, data.get("mode")),
            columns=[SelectedColumn.from_dict(c) for c in data.get("columns") or []],
            aggregates=[AggregateColumn.from_dict(a) for a in data.get("aggregates") or []],
            filters=[filter_from_dict(f) for f in data.get("filters") or []],
            group_by=list(data.get("groupBy") or []),
            order_by=[OrderBy.from_dict(o) for o in data.get("orderBy") or []],
            limit=data.get("limit"),
            meta=dict(data.get("meta") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "database": self.database,
            "table": self.table,
            "queryType": self.query_type.value,
        }
        if self.mode is not None:
            data["mode"] = self.mode.value
        data["columns"] = [c.to_dict() for c in self.columns]
        if self.aggregates:
            data["aggregates"] = [a.to_dict() for a in self.aggregates]
        if self.filters:
            data["filters"] = [f.to_dict() for f in self.filters]
        if self.group_by:
            data["groupBy"] = list(self.group_by)
        if self.order_by:
            data["orderBy"] = [o.to_dict() for o in self.order_by]
        if self.limit is not None:
            data["limit"] = self.limit
        if self.meta:
            data["meta"] = dict(self.meta)
        return data


@dataclass
class AutoTimeFilterOptions:
    """Configuration for injecting the dashboard time range into raw SQL."""
    enabled: bool = False
    time_column: str = ""
    time_column_type: str = "DateTime"  # DateTime | DateTime64

    @classmethod
    def from_settings(cls, settings=None) -> "AutoTimeFilterOptions":
        """Build options from the environment-backed settings."""
        if settings is None:
            from .config import get_settings
            settings = get_settings()
        return cls(
            enabled=settings.auto_time_filter_enabled,
            time_column=settings.auto_time_filter_column,
            time_column_type=settings.auto_time_filter_column_type,
        )


# =============================================================================
# Hint lookups
# =============================================================================


def get_column_by_hint(options: QueryBuilderOptions, hint: ColumnHint) -> Optional[SelectedColumn]:
    """First selected column carrying ``hint``, or None."""
    for column in options.columns:
        if column.hint == hint:
            return column
    return None


def get_column_index_by_hint(options: QueryBuilderOptions, hint: ColumnHint) -> int:
    for i, column in enumerate(options.columns):
        if column.hint == hint:
            return i
    return -1


def get_columns_by_hints(options: QueryBuilderOptions, hints: List[ColumnHint]) -> List[SelectedColumn]:
    columns = []
    for hint in hints:
        column = get_column_by_hint(options, hint)
        if column is not None:
            columns.append(column)
    return columns


def is_aggregate_query(options: QueryBuilderOptions) -> bool:
    return len(options.aggregates) > 0
