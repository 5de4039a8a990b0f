from __future__ import annotations

import asyncio

import pytest

from sqlchat.config import PostgresConfig
from sqlchat.db import Database


class FakePool:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class CountingDatabase(Database):
    def __init__(self) -> None:
        super().__init__(PostgresConfig(dsn="postgresql://placeholder"))
        self.pools = []

    async def _create_pool(self) -> FakePool:  # type: ignore[override]
        await asyncio.sleep(0)
        pool = FakePool()
        self.pools.append(pool)
        return pool


@pytest.mark.asyncio
async def test_concurrent_connects_create_one_pool() -> None:
    db = CountingDatabase()
    await asyncio.gather(*(db.connect() for _ in range(5)))
    assert len(db.pools) == 1


@pytest.mark.asyncio
async def test_close_releases_pool_and_allows_reconnect() -> None:
    db = CountingDatabase()
    await db.connect()
    await db.close()
    assert db.pools[0].closed
    await db.connect()
    assert len(db.pools) == 2
