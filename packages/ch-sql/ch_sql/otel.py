"""OpenTelemetry exporter schema versions known to the generator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .schemas import ColumnHint

# Companion table the OTel exporter writes trace start/end timestamps into
TRACE_TIMESTAMP_TABLE_SUFFIX = "_trace_id_ts"


@dataclass(frozen=True)
class OtelVersion:
    name: str
    version: str
    log_column_map: Dict[ColumnHint, str] = field(default_factory=dict)
    trace_column_map: Dict[ColumnHint, str] = field(default_factory=dict)
    trace_duration_unit: str = "nanoseconds"


VERSIONS: List[OtelVersion] = [
    OtelVersion(
        name="latest",
        version="latest",
        log_column_map={
            ColumnHint.TIME: "Timestamp",
            ColumnHint.LOG_MESSAGE: "Body",
            ColumnHint.LOG_LEVEL: "SeverityText",
            ColumnHint.LOG_LABELS: "LogAttributes",
            ColumnHint.TRACE_ID: "TraceId",
        },
        trace_column_map={
            ColumnHint.TRACE_ID: "TraceId",
            ColumnHint.TRACE_SPAN_ID: "SpanId",
            ColumnHint.TRACE_PARENT_SPAN_ID: "ParentSpanId",
            ColumnHint.TRACE_SERVICE_NAME: "ServiceName",
            ColumnHint.TRACE_OPERATION_NAME: "SpanName",
            ColumnHint.TIME: "Timestamp",
            ColumnHint.TRACE_DURATION_TIME: "Duration",
            ColumnHint.TRACE_TAGS: "SpanAttributes",
            ColumnHint.TRACE_SERVICE_TAGS: "ResourceAttributes",
            ColumnHint.TRACE_STATUS_CODE: "StatusCode",
            ColumnHint.TRACE_KIND: "SpanKind",
            ColumnHint.TRACE_STATUS_MESSAGE: "StatusMessage",
            ColumnHint.TRACE_STATE: "TraceState",
        },
    ),
]


def get_version(name: Optional[str]) -> Optional[OtelVersion]:
    """Look up a known version by name; an empty name means the latest one."""
    if not name:
        return VERSIONS[0]
    for version in VERSIONS:
        if version.version == name:
            return version
    return None
