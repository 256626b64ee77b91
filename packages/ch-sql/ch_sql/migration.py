"""Query document version migration.

Persisted query documents may predate the current schema. ``migrate_query``
detects legacy documents and rewrites them through a chain of versioned
steps; current documents are returned as the very same object.

Legacy (v3) markers:
- no ``pluginVersion``, or one older than 4.0.0
- a ``queryType`` of ``'sql'`` or ``'builder'`` (now ``editorType``)
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .schemas import ColumnHint, EditorType, QueryType
from .utils import map_grafana_format_to_query_type

logger = logging.getLogger(__name__)

# Schema version that introduced pluginVersion/editorType
V4_SCHEMA_VERSION = "4.0.0"
# Stamped onto migrated documents
PLUGIN_VERSION = "4.0.0"

# Placeholder the host framework hands out for brand new queries. It carries
# no rawSql and is never migrated.
DEFAULT_QUERY: Mapping[str, Any] = {}

_VERSION_PART = re.compile(r"^(\d+)")


# =============================================================================
# Version helpers
# =============================================================================


def _parse_version(version: str) -> Tuple[int, int, int]:
    parts: List[int] = []
    for piece in str(version).lstrip("vV").split(".")[:3]:
        match = _VERSION_PART.match(piece)
        parts.append(int(match.group(1)) if match else 0)
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)  # type: ignore[return-value]


def is_version_gt_or_eq(version: str, other: str) -> bool:
    """Compare dotted versions numerically; pre-release suffixes are ignored."""
    return _parse_version(version) >= _parse_version(other)


def is_legacy_query(doc: Mapping[str, Any]) -> bool:
    """True when ``doc`` predates the v4 schema."""
    plugin_version = doc.get("pluginVersion")
    old_plugin_version = not plugin_version or not is_version_gt_or_eq(plugin_version, V4_SCHEMA_VERSION)
    old_query_type = doc.get("queryType") in (EditorType.SQL.value, EditorType.BUILDER.value)
    return old_plugin_version or old_query_type


# =============================================================================
# Migration chain
# =============================================================================


@dataclass(frozen=True)
class MigrationStep:
    """One schema transition. ``apply`` must not mutate its input."""
    name: str
    applies: Callable[[Mapping[str, Any]], bool]
    apply: Callable[[Mapping[str, Any]], Dict[str, Any]]


def migrate_query(doc: Any, default_query: Mapping[str, Any] = DEFAULT_QUERY) -> Any:
    """Bring a persisted query document up to the current schema.

    Args:
        doc: Persisted document (plain JSON-like dict).
        default_query: The host framework's placeholder document; returned
            unchanged like any other document without ``rawSql``.

    Returns:
        ``doc`` itself when nothing applies, otherwise a new document.
    """
    if not isinstance(doc, Mapping):
        logger.warning("Cannot migrate query document of type %s", type(doc).__name__)
        return doc

    if doc is default_query or doc.get("rawSql") is None:
        return doc

    migrated: Any = doc
    for step in MIGRATIONS:
        if step.applies(migrated):
            logger.debug("Applying migration %s to query %r", step.name, migrated.get("refId"))
            migrated = step.apply(migrated)

    return migrated


# =============================================================================
# v3 -> v4
# =============================================================================


def _migrate_v3_query(saved: Mapping[str, Any]) -> Dict[str, Any]:
    if saved.get("queryType") == EditorType.BUILDER.value:
        return _migrate_v3_builder_query(saved)
    return _migrate_v3_sql_query(saved)


def _legacy_meta(saved: Mapping[str, Any]) -> Mapping[str, Any]:
    meta = saved.get("meta")
    return meta if isinstance(meta, Mapping) else {}


def _migrate_v3_builder_query(saved: Mapping[str, Any]) -> Dict[str, Any]:
    query = copy.deepcopy(dict(saved))
    query.pop("queryType", None)
    query.pop("selectedFormat", None)

    query.update({
        "pluginVersion": PLUGIN_VERSION,
        "editorType": EditorType.BUILDER.value,
        "builderOptions": migrate_v3_query_builder_options(saved.get("builderOptions") or {}),
        "rawSql": saved.get("rawSql") or "",
        "refId": saved.get("refId") or "",
        "meta": {},
    })
    if saved.get("format") is not None:
        query["format"] = saved["format"]

    timezone = _legacy_meta(saved).get("timezone")
    if timezone:
        query["meta"]["timezone"] = timezone
    else:
        del query["meta"]

    return query


def _migrate_v3_sql_query(saved: Mapping[str, Any]) -> Dict[str, Any]:
    query = copy.deepcopy(dict(saved))
    query.pop("builderOptions", None)
    query.pop("selectedFormat", None)

    query_type = map_grafana_format_to_query_type(saved.get("format"))
    query.update({
        "pluginVersion": PLUGIN_VERSION,
        "editorType": EditorType.SQL.value,
        "rawSql": saved.get("rawSql") or "",
        "refId": saved.get("refId") or "",
        "queryType": query_type.value if isinstance(query_type, QueryType) else query_type,
        "meta": {},
    })

    if saved.get("expand"):
        query["expand"] = saved["expand"]

    legacy_meta = _legacy_meta(saved)
    if legacy_meta.get("timezone"):
        query["meta"]["timezone"] = legacy_meta["timezone"]
    if legacy_meta.get("builderOptions"):
        # Left over from toggling between the builder and the SQL editor
        query["meta"]["builderOptions"] = migrate_v3_query_builder_options(legacy_meta["builderOptions"])
    if not query["meta"]:
        del query["meta"]

    return query


def _v3_query_type(saved: Mapping[str, Any]) -> QueryType:
    if saved.get("timeField"):
        return QueryType.TIME_SERIES
    if saved.get("logLevelField"):
        return QueryType.LOGS
    return QueryType.TABLE


def _hint_column(columns: List[Dict[str, Any]], name: str, hint: ColumnHint, column_type: Optional[str] = None) -> None:
    for column in columns:
        if column.get("name") == name:
            column["hint"] = hint.value
            if column_type:
                column["type"] = column_type
            return

    column = {"name": name}
    if column_type:
        column["type"] = column_type
    column["hint"] = hint.value
    columns.append(column)


def migrate_v3_query_builder_options(saved_options: Any) -> Dict[str, Any]:
    """Rewrite legacy (v3) builder options into current builder options.

    Unknown or missing fields fall back to empty defaults.
    """
    if not isinstance(saved_options, Mapping):
        logger.warning("Legacy builder options are not an object, using defaults")
        saved_options = {}

    mapped: Dict[str, Any] = {
        "database": saved_options.get("database") or "",
        "table": saved_options.get("table") or "",
        "queryType": _v3_query_type(saved_options).value,
    }

    if saved_options.get("mode"):
        mapped["mode"] = saved_options["mode"]

    time_field = saved_options.get("timeField")
    time_field_type = saved_options.get("timeFieldType")
    log_level_field = saved_options.get("logLevelField")

    fields = saved_options.get("fields") or []
    if not isinstance(fields, list):
        logger.warning("Legacy fields are not a list, ignoring them")
        fields = []
    columns: List[Dict[str, Any]] = []
    for name in fields:
        if not isinstance(name, str):
            logger.warning("Skipping legacy field that is not a column name: %r", name)
            continue
        columns.append({"name": name})
    if time_field:
        _hint_column(columns, time_field, ColumnHint.TIME, time_field_type)
    if log_level_field:
        _hint_column(columns, log_level_field, ColumnHint.LOG_LEVEL)
    mapped["columns"] = columns

    metrics = saved_options.get("metrics")
    if isinstance(metrics, list):
        aggregates = []
        for metric in metrics:
            if not isinstance(metric, Mapping):
                logger.warning("Skipping legacy metric that is not an object: %r", metric)
                continue
            aggregate = {"aggregateType": metric.get("aggregation"), "column": metric.get("field")}
            if metric.get("alias") is not None:
                aggregate["alias"] = metric["alias"]
            aggregates.append(aggregate)
        mapped["aggregates"] = aggregates

    filters = saved_options.get("filters")
    if isinstance(filters, list):
        migrated_filters = []
        for legacy_filter in filters:
            if not isinstance(legacy_filter, Mapping):
                logger.warning("Skipping legacy filter that is not an object: %r", legacy_filter)
                continue
            migrated_filter = copy.deepcopy(dict(legacy_filter))
            if time_field and legacy_filter.get("key") == time_field:
                migrated_filter["hint"] = ColumnHint.TIME.value
            elif log_level_field and legacy_filter.get("key") == log_level_field:
                migrated_filter["hint"] = ColumnHint.LOG_LEVEL.value
            migrated_filters.append(migrated_filter)
        mapped["filters"] = migrated_filters

    if isinstance(saved_options.get("groupBy"), list):
        mapped["groupBy"] = list(saved_options["groupBy"])

    if isinstance(saved_options.get("orderBy"), list):
        mapped["orderBy"] = copy.deepcopy(saved_options["orderBy"])

    limit = saved_options.get("limit")
    if isinstance(limit, (int, float)) and not isinstance(limit, bool) and limit >= 0:
        mapped["limit"] = limit

    return mapped


MIGRATIONS: List[MigrationStep] = [
    MigrationStep(name="v3->v4", applies=is_legacy_query, apply=_migrate_v3_query),
]
