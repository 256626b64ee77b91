"""ch-sql: ClickHouse query synthesis and migration.

Pipeline:
1. Model:     QueryBuilderOptions (structured query document)
2. Generate:  Options -> SQL for the Table, Logs, TimeSeries and Traces shapes
3. Inject:    Dashboard time filter spliced into raw SQL
4. Migrate:   Legacy persisted documents -> current schema (once, at load)

Usage:
    from ch_sql import QueryBuilderOptions, generate_sql
    options = QueryBuilderOptions.from_dict(saved["builderOptions"])
    sql = generate_sql(options)

    from ch_sql import AutoTimeFilterOptions, inject_time_filter
    sql = inject_time_filter(raw_sql, AutoTimeFilterOptions(True, "timestamp"))

    from ch_sql import migrate_query
    query = migrate_query(saved)
"""

__version__ = "4.0.0"

from .schemas import (
    AggregateColumn,
    AggregateType,
    AutoTimeFilterOptions,
    BooleanFilter,
    BuilderMode,
    ColumnHint,
    DateFilterWithoutValue,
    DateFilterWithValue,
    EditorType,
    Filter,
    FilterOperator,
    MultiFilter,
    NullFilter,
    NumberFilter,
    OrderBy,
    OrderByDirection,
    QueryBuilderOptions,
    QueryType,
    SelectedColumn,
    StringFilter,
    TimeUnit,
    filter_from_dict,
    get_column_by_hint,
)
from .sql_utils import find_main_clause_position
from .time_filter import has_time_filter, inject_time_filter
from .filters import get_filters
from .sql_generator import generate_sql
from .migration import DEFAULT_QUERY, migrate_query, migrate_v3_query_builder_options
from .utils import (
    map_grafana_format_to_query_type,
    map_query_builder_options_to_grafana_format,
    map_query_type_to_grafana_format,
)

__all__ = [
    # Schemas
    "AggregateColumn",
    "AggregateType",
    "AutoTimeFilterOptions",
    "BooleanFilter",
    "BuilderMode",
    "ColumnHint",
    "DateFilterWithoutValue",
    "DateFilterWithValue",
    "EditorType",
    "Filter",
    "FilterOperator",
    "MultiFilter",
    "NullFilter",
    "NumberFilter",
    "OrderBy",
    "OrderByDirection",
    "QueryBuilderOptions",
    "QueryType",
    "SelectedColumn",
    "StringFilter",
    "TimeUnit",
    "filter_from_dict",
    "get_column_by_hint",
    # SQL
    "find_main_clause_position",
    "has_time_filter",
    "inject_time_filter",
    "get_filters",
    "generate_sql",
    # Migration
    "DEFAULT_QUERY",
    "migrate_query",
    "migrate_v3_query_builder_options",
    # Formats
    "map_grafana_format_to_query_type",
    "map_query_builder_options_to_grafana_format",
    "map_query_type_to_grafana_format",
]
