from __future__ import annotations

import asyncio

import asyncpg

from .assembler import QueryRunner
from .config import PostgresConfig
from .db import Database
from .errors import QueryError, QueryTimeout
from .logging_utils import get_logger
from .models import QueryResult
from .sql_guard import ValidatedSql

logger = get_logger(__name__)


class QueryExecutor(QueryRunner):
    """Runs one guarded statement per read-only transaction."""

    def __init__(self, db: Database, cfg: PostgresConfig):
        self._db = db
        self._cfg = cfg

    async def run(self, sql: ValidatedSql) -> QueryResult:
        if not isinstance(sql, ValidatedSql):
            raise TypeError("QueryExecutor.run() only accepts ValidatedSql")
        timeout_ms = self._cfg.statement_timeout_ms
        logger.info("execute_sql", sql=str(sql))
        try:
            async with self._db.connection() as conn:
                async with conn.transaction(readonly=True):
                    await conn.execute(f"SET LOCAL statement_timeout = {int(timeout_ms)}")
                    stmt = await conn.prepare(str(sql))
                    fields = [attr.name for attr in stmt.get_attributes()]
                    records = await asyncio.wait_for(stmt.fetch(), timeout=timeout_ms / 1000 + 1)
        except (asyncio.TimeoutError, asyncpg.exceptions.QueryCanceledError) as exc:
            logger.warning("execute_sql_timeout", timeout_ms=timeout_ms)
            raise QueryTimeout(f"query exceeded {timeout_ms} ms") from exc
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            logger.warning("execute_sql_failed", error=str(exc))
            raise QueryError(str(exc)) from exc
        return QueryResult(rows=[dict(record) for record in records], fields=fields)


__all__ = ["QueryExecutor"]
