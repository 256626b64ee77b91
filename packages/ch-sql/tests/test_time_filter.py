"""Tests for dashboard time filter injection."""

from dataclasses import replace

import pytest

from ch_sql.schemas import AutoTimeFilterOptions
from ch_sql.time_filter import has_time_filter, inject_time_filter, inject_where_clause


class TestHasTimeFilter:

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM table WHERE $__timeFilter(ts)",
        "SELECT * FROM table WHERE $__timeFilter( ts )",
        "SELECT * FROM table WHERE $__timeFilter_ms(ts)",
        "SELECT * FROM table WHERE $__dateFilter(date_col)",
        "SELECT * FROM table WHERE $__dateTimeFilter(ts)",
        "SELECT * FROM table WHERE $__dt(ts)",
        "SELECT * FROM table WHERE ts >= $__fromTime",
        "SELECT * FROM table WHERE ts <= $__toTime",
        "SELECT * FROM table WHERE ts >= $__fromTime_ms",
        "SELECT * FROM table WHERE ts <= $__toTime_ms",
    ])
    def test_detects_macros_and_variables(self, sql):
        assert has_time_filter(sql) is True

    @pytest.mark.parametrize("sql", [
        "",
        "SELECT * FROM table",
        "SELECT * FROM table WHERE status = 1",
        "SELECT * FROM table WHERE ts = $fromTime",
        "SELECT * FROM table WHERE ts = $__time",
    ])
    def test_no_time_filter(self, sql):
        assert has_time_filter(sql) is False


class TestInjectTimeFilter:

    def test_disabled_returns_input(self, time_filter_options):
        sql = "SELECT * FROM table"
        assert inject_time_filter(sql, replace(time_filter_options, enabled=False)) is sql

    def test_empty_column_returns_input(self, time_filter_options):
        sql = "SELECT * FROM table"
        assert inject_time_filter(sql, replace(time_filter_options, time_column="")) is sql

    def test_empty_sql_returns_input(self, time_filter_options):
        assert inject_time_filter("", time_filter_options) == ""

    def test_existing_filter_left_alone(self, time_filter_options):
        sql = "SELECT * FROM table WHERE ts <= $__toTime"
        assert inject_time_filter(sql, time_filter_options) is sql

    def test_non_select_skipped(self, time_filter_options):
        sql = "INSERT INTO table VALUES (1, 2)"
        assert inject_time_filter(sql, time_filter_options) is sql

    def test_appends_where(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table", time_filter_options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter("timestamp")'

    def test_prepends_to_existing_where(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table WHERE status = 1", time_filter_options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter("timestamp") AND status = 1'

    def test_inserts_before_group_by(self, time_filter_options):
        result = inject_time_filter("SELECT count(*) FROM table GROUP BY status", time_filter_options)
        assert result == 'SELECT count(*) FROM table WHERE $__timeFilter("timestamp") GROUP BY status'

    def test_group_by_wins_over_order_by(self, time_filter_options):
        sql = "SELECT status, count(*) FROM table GROUP BY status ORDER BY status"
        result = inject_time_filter(sql, time_filter_options)
        assert result == (
            'SELECT status, count(*) FROM table WHERE $__timeFilter("timestamp") '
            "GROUP BY status ORDER BY status"
        )

    def test_inserts_before_order_by(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table ORDER BY ts DESC", time_filter_options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter("timestamp") ORDER BY ts DESC'

    def test_inserts_before_limit(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table LIMIT 100", time_filter_options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter("timestamp") LIMIT 100'

    def test_inserts_before_settings(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table SETTINGS max_execution_time=60", time_filter_options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter("timestamp") SETTINGS max_execution_time=60'

    def test_inserts_before_format(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table FORMAT JSON", time_filter_options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter("timestamp") FORMAT JSON'

    def test_removes_trailing_semicolon(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table;", time_filter_options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter("timestamp")'

    def test_multiple_clauses(self, time_filter_options):
        sql = "SELECT * FROM table WHERE x = 1 GROUP BY y ORDER BY z LIMIT 10"
        result = inject_time_filter(sql, time_filter_options)
        assert result == (
            'SELECT * FROM table WHERE $__timeFilter("timestamp") AND x = 1 GROUP BY y ORDER BY z LIMIT 10'
        )

    def test_subquery_where_not_reused(self, time_filter_options):
        sql = "SELECT * FROM (SELECT * FROM t WHERE y = 1) GROUP BY x"
        result = inject_time_filter(sql, time_filter_options)
        assert result == (
            'SELECT * FROM (SELECT * FROM t WHERE y = 1) WHERE $__timeFilter("timestamp") GROUP BY x'
        )

    def test_datetime_uses_time_filter(self, time_filter_options):
        result = inject_time_filter("SELECT * FROM table", time_filter_options)
        assert "$__timeFilter(" in result
        assert "$__timeFilter_ms" not in result

    def test_datetime64_uses_ms_macro(self, time_filter_options):
        options = replace(time_filter_options, time_column_type="DateTime64")
        result = inject_time_filter("SELECT * FROM table", options)
        assert result == 'SELECT * FROM table WHERE $__timeFilter_ms("timestamp")'


class TestInjectWhereClause:
    condition = '$__timeFilter("ts")'

    def test_adds_where(self):
        assert inject_where_clause("SELECT * FROM table", self.condition) == (
            f"SELECT * FROM table WHERE {self.condition}"
        )

    def test_prepends_to_where(self):
        assert inject_where_clause("SELECT * FROM table WHERE x = 1", self.condition) == (
            f"SELECT * FROM table WHERE {self.condition} AND x = 1"
        )

    def test_inserts_before_group_by(self):
        assert inject_where_clause("SELECT * FROM table GROUP BY x", self.condition) == (
            f"SELECT * FROM table WHERE {self.condition} GROUP BY x"
        )


class TestOptionsFromSettings:

    def test_defaults_disable_injection(self):
        options = AutoTimeFilterOptions.from_settings()
        assert options.enabled is False
        assert options.time_column == ""
        assert options.time_column_type == "DateTime"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CHSQL_AUTO_TIME_FILTER_ENABLED", "true")
        monkeypatch.setenv("CHSQL_AUTO_TIME_FILTER_COLUMN", "event_time")
        monkeypatch.setenv("CHSQL_AUTO_TIME_FILTER_COLUMN_TYPE", "DateTime64")

        options = AutoTimeFilterOptions.from_settings()
        assert options == AutoTimeFilterOptions(True, "event_time", "DateTime64")
        assert inject_time_filter("SELECT 1 FROM t", options) == 'SELECT 1 FROM t WHERE $__timeFilter_ms("event_time")'
