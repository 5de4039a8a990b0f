from __future__ import annotations

import abc
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .cache import CacheClient
from .logging_utils import get_logger
from .schema_types import SchemaSummary

logger = get_logger(__name__)

DEFAULT_KEY = "default"

Clock = Callable[[], float]


class SchemaProvider(abc.ABC):
    @abc.abstractmethod
    async def get_schema(self) -> SchemaSummary:
        raise NotImplementedError


@dataclass(frozen=True)
class CacheEntry:
    value: SchemaSummary
    expires_at: float


class SchemaCache:
    """Process-wide TTL cache in front of a SchemaProvider.

    Entries are replaced whole, never mutated, so callers can keep the
    SchemaSummary they were handed. Concurrent misses for one key share a
    single in-flight load. An optional Redis CacheClient is consulted before
    the provider so several workers can share one introspection result.
    """

    def __init__(
        self,
        provider: SchemaProvider,
        ttl_seconds: float = 600,
        clock: Clock = time.monotonic,
        shared: Optional[CacheClient] = None,
    ):
        self._provider = provider
        self._ttl = ttl_seconds
        self._clock = clock
        self._shared = shared
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, "asyncio.Future[SchemaSummary]"] = {}

    async def get(self, key: str = DEFAULT_KEY, refresh: bool = False) -> SchemaSummary:
        if not refresh:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at > self._clock():
                return entry.value
        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(key, refresh))
            self._inflight[key] = pending
            pending.add_done_callback(lambda fut, k=key: self._forget(k, fut))
        return await asyncio.shield(pending)

    def clear(self) -> None:
        self._entries = {}

    def _forget(self, key: str, fut: "asyncio.Future[SchemaSummary]") -> None:
        if self._inflight.get(key) is fut:
            del self._inflight[key]
        if not fut.cancelled() and fut.exception() is not None:
            logger.warning("schema_load_failed", key=key, error=str(fut.exception()))

    async def _load(self, key: str, refresh: bool) -> SchemaSummary:
        schema: Optional[SchemaSummary] = None
        if self._shared is not None and not refresh:
            payload = await self._shared.get_json(f"schema:{key}")
            if payload is not None:
                try:
                    schema = SchemaSummary.from_dict(payload)
                except (KeyError, TypeError, AttributeError) as exc:
                    logger.warning("schema_cache_shared_corrupt", key=key, error=str(exc))
                else:
                    logger.info("schema_cache_shared_hit", key=key, tables=len(schema.tables))
        if schema is None:
            schema = await self._provider.get_schema()
            logger.info("schema_fetched", key=key, tables=len(schema.tables))
            if self._shared is not None:
                await self._shared.set_json(f"schema:{key}", schema.to_dict(), int(self._ttl))
        self._entries[key] = CacheEntry(value=schema, expires_at=self._clock() + self._ttl)
        return schema


__all__ = ["SchemaCache", "SchemaProvider", "CacheEntry", "DEFAULT_KEY"]
