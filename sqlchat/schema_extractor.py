from __future__ import annotations

from typing import Dict, List

import asyncpg

from .config import IntrospectionConfig
from .db import Database
from .errors import SchemaFetchError
from .logging_utils import get_logger
from .schema_cache import SchemaProvider
from .schema_types import Column, SchemaSummary, Table

logger = get_logger(__name__)


_COLUMNS_SQL = """
SELECT
    t.table_schema AS schema_name,
    t.table_name AS table_name,
    c.column_name AS column_name,
    c.data_type AS data_type
FROM information_schema.tables t
JOIN information_schema.columns c
  ON c.table_schema = t.table_schema AND c.table_name = t.table_name
WHERE t.table_type = 'BASE TABLE' AND t.table_schema = ANY($1::text[])
ORDER BY t.table_schema, t.table_name, c.ordinal_position
"""


class PostgresSchemaProvider(SchemaProvider):
    def __init__(self, db: Database, cfg: IntrospectionConfig):
        self._db = db
        self._cfg = cfg

    async def get_schema(self) -> SchemaSummary:
        try:
            async with self._db.connection() as conn:
                rows = await conn.fetch(_COLUMNS_SQL, list(self._cfg.schemas))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            logger.warning("schema_fetch_failed", error=str(exc))
            raise SchemaFetchError(str(exc)) from exc
        return self._collect(rows)

    def _collect(self, rows) -> SchemaSummary:
        columns: Dict[str, List[Column]] = {}
        for row in rows:
            name = row["table_name"]
            if row["schema_name"] != "public":
                name = f"{row['schema_name']}.{name}"
            columns.setdefault(name, []).append(Column(name=row["column_name"], type=row["data_type"]))
        tables = tuple(Table(name=name, columns=tuple(cols)) for name, cols in columns.items())
        return SchemaSummary(tables=tables)


__all__ = ["PostgresSchemaProvider"]
