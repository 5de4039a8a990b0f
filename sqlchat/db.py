from __future__ import annotations

import asyncio
import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from .config import PostgresConfig


def _ssl_context(cfg: PostgresConfig) -> Optional[ssl.SSLContext]:
    if not cfg.allow_self_signed:
        return None
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class Database:
    """Bounded asyncpg pool. Sessions default to read-only transactions."""

    def __init__(self, cfg: PostgresConfig):
        self._cfg = cfg
        self._pool: asyncpg.pool.Pool | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        async with self._lock:
            if self._pool is None:
                self._pool = await self._create_pool()

    async def _create_pool(self) -> asyncpg.pool.Pool:
        return await asyncpg.create_pool(
            dsn=self._cfg.dsn,
            min_size=self._cfg.min_pool_size,
            max_size=self._cfg.max_pool_size,
            command_timeout=self._cfg.statement_timeout_ms / 1000 * 2,
            ssl=_ssl_context(self._cfg),
            server_settings={
                "application_name": "sqlchat",
                "default_transaction_read_only": "on",
            },
        )

    async def close(self) -> None:
        async with self._lock:
            if self._pool is not None:
                await self._pool.close()
                self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self._pool is None:
            await self.connect()
        assert self._pool is not None
        async with self._pool.acquire() as conn:
            yield conn


__all__ = ["Database"]
