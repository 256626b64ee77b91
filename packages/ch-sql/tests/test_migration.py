"""Tests for query document version migration."""

import copy

import pytest

from ch_sql.migration import (
    DEFAULT_QUERY,
    MIGRATIONS,
    PLUGIN_VERSION,
    is_legacy_query,
    is_version_gt_or_eq,
    migrate_query,
    migrate_v3_query_builder_options,
)
from ch_sql.schemas import QueryBuilderOptions
from ch_sql.utils import UNKNOWN_QUERY_TYPE


class TestNoOp:

    def test_empty_document(self):
        doc = {}
        assert migrate_query(doc) is doc

    def test_default_grafana_query(self):
        doc = {"datasource": "test-ds", "refId": "A"}
        assert migrate_query(doc) is doc

    def test_explicit_default_query(self):
        assert migrate_query(DEFAULT_QUERY) is DEFAULT_QUERY

    def test_current_document_is_identical(self, current_builder_query):
        assert migrate_query(current_builder_query) is current_builder_query

    def test_newer_plugin_version(self, current_builder_query):
        current_builder_query["pluginVersion"] = "4.10.2"
        assert migrate_query(current_builder_query) is current_builder_query

    @pytest.mark.parametrize("doc", [None, "SELECT 1", 42, ["rawSql"]])
    def test_non_dict_input(self, doc):
        assert migrate_query(doc) is doc

    def test_migrating_twice_is_identity(self, legacy_builder_query):
        migrated = migrate_query(legacy_builder_query)
        assert migrate_query(migrated) is migrated


class TestLegacyDetection:

    @pytest.mark.parametrize("doc,expected", [
        ({"rawSql": ""}, True),
        ({"rawSql": "", "pluginVersion": "3.3.0"}, True),
        ({"rawSql": "", "pluginVersion": "4.0.0"}, False),
        ({"rawSql": "", "pluginVersion": "4.0.0-beta"}, False),
        ({"rawSql": "", "pluginVersion": "4.0.0", "queryType": "sql"}, True),
        ({"rawSql": "", "pluginVersion": "4.0.0", "queryType": "builder"}, True),
        ({"rawSql": "", "pluginVersion": "4.0.0", "queryType": "table"}, False),
    ])
    def test_is_legacy_query(self, doc, expected):
        assert is_legacy_query(doc) is expected

    @pytest.mark.parametrize("a,b,expected", [
        ("4.0.0", "4.0.0", True),
        ("4.1.0", "4.0.0", True),
        ("10.0.0", "4.0.0", True),
        ("3.9.9", "4.0.0", False),
        ("v4.0.1", "4.0.0", True),
        ("4", "4.0.0", True),
    ])
    def test_version_compare(self, a, b, expected):
        assert is_version_gt_or_eq(a, b) is expected

    def test_chain_is_registered(self):
        assert [step.name for step in MIGRATIONS] == ["v3->v4"]


class TestBuilderMigration:

    def test_full_builder_query(self, legacy_builder_query):
        migrated = migrate_query(legacy_builder_query)

        assert migrated == {
            "pluginVersion": PLUGIN_VERSION,
            "editorType": "builder",
            "refId": "A",
            "datasource": {"type": "ch-ds", "uid": "test-uid"},
            "key": "test-key",
            "builderOptions": {
                "database": "default",
                "table": "logs",
                "queryType": "table",
                "mode": "list",
                "columns": [{"name": "created_at"}, {"name": "level"}, {"name": "event"}],
                "aggregates": [{"aggregateType": "count", "column": "level", "alias": "c"}],
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
                "groupBy": ["c"],
                "orderBy": [{"name": "created_at", "dir": "DESC"}],
                "limit": 50,
            },
            "rawSql": "SELECT 1",
            "format": 1,
            "meta": {"timezone": "tz"},
        }

    def test_input_not_mutated(self, legacy_builder_query):
        before = copy.deepcopy(legacy_builder_query)
        migrate_query(legacy_builder_query)
        assert legacy_builder_query == before

    def test_partial_query(self):
        migrated = migrate_query({"queryType": "builder", "builderOptions": {"mode": "list"}, "rawSql": ""})
        assert migrated == {
            "pluginVersion": PLUGIN_VERSION,
            "editorType": "builder",
            "builderOptions": {"database": "", "table": "", "queryType": "table", "mode": "list", "columns": []},
            "rawSql": "",
            "refId": "",
        }

    def test_hinted_columns(self):
        migrated = migrate_query({
            "queryType": "builder",
            "builderOptions": {"timeField": "timestamp", "timeFieldType": "DateTime", "logLevelField": "level"},
            "rawSql": "",
        })
        options = migrated["builderOptions"]
        assert options["queryType"] == "timeseries"
        assert options["columns"] == [
            {"name": "timestamp", "type": "DateTime", "hint": "time"},
            {"name": "level", "hint": "log_level"},
        ]

    def test_migrated_options_load(self):
        migrated = migrate_query({
            "queryType": "builder",
            "builderOptions": {"timeField": "ts", "timeFieldType": "DateTime", "fields": ["ts", "msg"]},
            "rawSql": "",
        })
        options = QueryBuilderOptions.from_dict(migrated["builderOptions"])
        assert [c.name for c in options.columns] == ["ts", "msg"]
        assert options.columns[0].hint.value == "time"

    def test_non_dict_builder_options(self):
        migrated = migrate_query({"queryType": "builder", "builderOptions": "oops", "rawSql": ""})
        assert migrated["builderOptions"] == {"database": "", "table": "", "queryType": "table", "columns": []}


class TestSqlMigration:

    def test_sql_query_with_toggled_builder(self):
        migrated = migrate_query({
            "refId": "A",
            "datasource": {"type": "ch-ds", "uid": "test-uid"},
            "key": "test-key",
            "queryType": "sql",
            "rawSql": "SELECT 1",
            "meta": {"timezone": "tz", "builderOptions": {"fields": ["created_at", "level", "event"]}},
            "format": 1,
            "selectedFormat": 1,
            "expand": True,
        })
        assert migrated == {
            "pluginVersion": PLUGIN_VERSION,
            "editorType": "sql",
            "refId": "A",
            "datasource": {"type": "ch-ds", "uid": "test-uid"},
            "key": "test-key",
            "rawSql": "SELECT 1",
            "queryType": "table",
            "format": 1,
            "expand": True,
            "meta": {
                "timezone": "tz",
                "builderOptions": {
                    "database": "",
                    "table": "",
                    "queryType": "table",
                    "columns": [{"name": "created_at"}, {"name": "level"}, {"name": "event"}],
                },
            },
        }

    def test_toggled_builder_options_match_direct_migration(self):
        legacy_options = {"timeField": "t", "timeFieldType": "DateTime64(3)", "fields": ["a"], "limit": 10}
        migrated = migrate_query({"queryType": "sql", "rawSql": "SELECT 1", "meta": {"builderOptions": legacy_options}})
        assert migrated["meta"]["builderOptions"] == migrate_v3_query_builder_options(legacy_options)

    @pytest.mark.parametrize("format_code,query_type", [
        (0, "timeseries"),
        (1, "table"),
        (2, "logs"),
        (3, "traces"),
        (99, UNKNOWN_QUERY_TYPE),
        (None, UNKNOWN_QUERY_TYPE),
    ])
    def test_format_to_query_type(self, format_code, query_type):
        migrated = migrate_query({"queryType": "sql", "rawSql": "SELECT 1", "format": format_code})
        assert migrated["queryType"] == query_type

    def test_plain_legacy_query_without_query_type(self):
        migrated = migrate_query({"rawSql": "SELECT 1", "refId": "B", "format": 2})
        assert migrated["editorType"] == "sql"
        assert migrated["queryType"] == "logs"
        assert migrated["pluginVersion"] == PLUGIN_VERSION
        assert "meta" not in migrated


class TestBuilderOptionsMigration:

    def test_query_type_inference(self):
        assert migrate_v3_query_builder_options({"timeField": "t"})["queryType"] == "timeseries"
        assert migrate_v3_query_builder_options({"logLevelField": "l"})["queryType"] == "logs"
        assert migrate_v3_query_builder_options({})["queryType"] == "table"

    def test_time_field_already_listed(self):
        options = migrate_v3_query_builder_options({
            "fields": ["ts", "msg"],
            "timeField": "ts",
            "timeFieldType": "DateTime",
        })
        assert options["columns"] == [{"name": "ts", "type": "DateTime", "hint": "time"}, {"name": "msg"}]

    def test_filters_gain_hints(self):
        options = migrate_v3_query_builder_options({
            "timeField": "ts",
            "logLevelField": "lvl",
            "filters": [
                {"key": "ts", "operator": "WITH IN DASHBOARD TIME RANGE", "type": "DateTime"},
                {"key": "lvl", "operator": "=", "type": "String", "value": "error"},
                {"key": "other", "operator": "=", "type": "String", "value": "x"},
            ],
        })
        assert [f.get("hint") for f in options["filters"]] == ["time", "log_level", None]

    @pytest.mark.parametrize("limit,present", [(0, True), (100, True), (-1, False), (None, False)])
    def test_limit(self, limit, present):
        options = migrate_v3_query_builder_options({"limit": limit})
        assert ("limit" in options) is present

    def test_fields_not_a_list(self):
        options = migrate_v3_query_builder_options({"fields": 5, "table": "t"})
        assert options["columns"] == []
        assert options["table"] == "t"

    def test_non_string_fields_skipped(self):
        options = migrate_v3_query_builder_options({"fields": ["a", None, 3, "b"]})
        assert options["columns"] == [{"name": "a"}, {"name": "b"}]

    def test_malformed_metrics_and_filters_skipped(self):
        options = migrate_v3_query_builder_options({
            "metrics": [None, {"aggregation": "count", "field": "id"}],
            "filters": ["x", {"key": "a", "operator": "=", "type": "String", "value": "1"}],
        })
        assert options["aggregates"] == [{"aggregateType": "count", "column": "id"}]
        assert options["filters"] == [{"key": "a", "operator": "=", "type": "String", "value": "1"}]

    def test_malformed_legacy_document_migrates(self):
        migrated = migrate_query({
            "queryType": "builder",
            "rawSql": "",
            "builderOptions": {"metrics": [None], "filters": ["x"]},
        })
        assert migrated["editorType"] == "builder"
        assert migrated["builderOptions"]["aggregates"] == []
        assert migrated["builderOptions"]["filters"] == []
