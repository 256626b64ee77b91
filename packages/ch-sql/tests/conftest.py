"""Pytest configuration and fixtures for ch-sql tests."""

import pytest

from ch_sql.config import get_settings
from ch_sql.schemas import (
    AutoTimeFilterOptions,
    ColumnHint,
    QueryBuilderOptions,
    QueryType,
    SelectedColumn,
)


# =============================================================================
# SETTINGS
# =============================================================================

@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch):
    """Isolate tests from CHSQL_* variables and the cached settings."""
    for name in (
        "CHSQL_AUTO_TIME_FILTER_ENABLED",
        "CHSQL_AUTO_TIME_FILTER_COLUMN",
        "CHSQL_AUTO_TIME_FILTER_COLUMN_TYPE",
        "CHSQL_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# TIME FILTER FIXTURES
# =============================================================================

@pytest.fixture
def time_filter_options() -> AutoTimeFilterOptions:
    """Enabled injection on a DateTime column named timestamp."""
    return AutoTimeFilterOptions(enabled=True, time_column="timestamp", time_column_type="DateTime")


# =============================================================================
# BUILDER OPTION FIXTURES
# =============================================================================

@pytest.fixture
def trace_options() -> QueryBuilderOptions:
    """OTel-style trace table with the hinted columns the trace panel needs."""
    return QueryBuilderOptions(
        database="otel",
        table="otel_traces",
        query_type=QueryType.TRACES,
        columns=[
            SelectedColumn(name="TraceId", hint=ColumnHint.TRACE_ID),
            SelectedColumn(name="ServiceName", hint=ColumnHint.TRACE_SERVICE_NAME),
            SelectedColumn(name="SpanName", hint=ColumnHint.TRACE_OPERATION_NAME),
            SelectedColumn(name="Timestamp", type="DateTime64(9)", hint=ColumnHint.TIME),
            SelectedColumn(name="Duration", type="Int64", hint=ColumnHint.TRACE_DURATION_TIME),
        ],
        meta={"traceDurationUnit": "nanoseconds"},
    )


@pytest.fixture
def logs_options() -> QueryBuilderOptions:
    """Logs table whose columns are stored out of panel order."""
    return QueryBuilderOptions(
        database="default",
        table="logs",
        query_type=QueryType.LOGS,
        columns=[
            SelectedColumn(name="log_level", type="String", hint=ColumnHint.LOG_LEVEL),
            SelectedColumn(name="host", type="String"),
            SelectedColumn(name="log_body", type="String", hint=ColumnHint.LOG_MESSAGE),
            SelectedColumn(name="log_ts", type="DateTime", hint=ColumnHint.TIME),
        ],
    )


@pytest.fixture
def legacy_builder_query() -> dict:
    """A v3 builder document as persisted in a dashboard."""
    return {
        "refId": "A",
        "datasource": {"type": "ch-ds", "uid": "test-uid"},
        "key": "test-key",
        "queryType": "builder",
        "rawSql": "SELECT 1",
        "builderOptions": {
            "mode": "list",
            "fields": ["created_at", "level", "event"],
            "limit": 50,
            "database": "default",
            "table": "logs",
            "filters": [
                {
                    "operator": "WITH IN DASHBOARD TIME RANGE",
                    "filterType": "custom",
                    "key": "created_at",
                    "type": "datetime",
                    "condition": "AND",
                },
                {
                    "filterType": "custom",
                    "key": "event",
                    "type": "String",
                    "condition": "AND",
                    "operator": "IS NOT NULL",
                },
            ],
            "metrics": [{"field": "level", "aggregation": "count", "alias": "c"}],
            "groupBy": ["c"],
            "orderBy": [{"name": "created_at", "dir": "DESC"}],
        },
        "format": 1,
        "selectedFormat": 1,
        "meta": {"timezone": "tz"},
    }


@pytest.fixture
def current_builder_query() -> dict:
    """A document already on the current schema."""
    return {
        "pluginVersion": "4.0.0",
        "editorType": "builder",
        "builderOptions": {
            "database": "default",
            "table": "test",
            "queryType": "table",
            "mode": "list",
            "columns": [{"name": "a", "type": "String"}, {"name": "b", "type": "String"}],
            "limit": 250,
        },
        "rawSql": "sql",
        "refId": "A",
    }
