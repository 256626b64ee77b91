"""Live schema lookups consumed by the builder.

The core never talks to a server itself; callers hand in a ``SchemaProvider``
whose results have already been fetched.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Protocol

from .schemas import QueryBuilderOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableColumn:
    """A column as reported by the server."""
    name: str
    type: str


class SchemaProvider(Protocol):
    """Protocol for schema sources (a live connection, a cache, a fixture)."""

    @abstractmethod
    def fetch_columns(self, database: str, table: str) -> List[TableColumn]:
        ...

    @abstractmethod
    def fetch_tables(self, database: str) -> List[str]:
        ...

    @abstractmethod
    def fetch_databases(self) -> List[str]:
        ...


class StaticSchemaProvider:
    """In-memory schema: ``{database: {table: {column: type}}}``."""

    def __init__(self, schema: Optional[Mapping[str, Mapping[str, Mapping[str, str]]]] = None):
        self._schema: Dict[str, Dict[str, Dict[str, str]]] = {
            database: {table: dict(columns) for table, columns in tables.items()}
            for database, tables in (schema or {}).items()
        }

    def fetch_columns(self, database: str, table: str) -> List[TableColumn]:
        columns = self._schema.get(database, {}).get(table, {})
        return [TableColumn(name=name, type=type_name) for name, type_name in columns.items()]

    def fetch_tables(self, database: str) -> List[str]:
        return list(self._schema.get(database, {}))

    def fetch_databases(self) -> List[str]:
        return list(self._schema)


def mark_custom_columns(options: QueryBuilderOptions, provider: SchemaProvider) -> QueryBuilderOptions:
    """Flag selected columns missing from the live table as custom.

    Columns found in the table get their type filled in when unset. Returns a
    copy; ``options`` is left untouched.
    """
    live_types = {c.name: c.type for c in provider.fetch_columns(options.database, options.table)}
    if not live_types:
        logger.debug("No columns found for %s.%s", options.database, options.table)

    columns = []
    for column in options.columns:
        if column.name in live_types:
            columns.append(replace(column, type=column.type or live_types[column.name], custom=False))
        else:
            columns.append(replace(column, custom=True))

    return replace(options, columns=columns)
