from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis import asyncio as redis_async
from redis.exceptions import RedisError

from .config import RedisConfig
from .logging_utils import get_logger

logger = get_logger(__name__)


class CacheClient:
    """Async Redis wrapper with JSON values. Goes quiet instead of failing when Redis is down."""

    def __init__(self, cfg: RedisConfig, client: Optional[redis_async.Redis] = None):
        self._cfg = cfg
        self._redis: Optional[redis_async.Redis] = client
        self._lock = asyncio.Lock()
        self._unavailable = False

    def key(self, name: str) -> str:
        return f"{self._cfg.key_prefix}:{name}"

    async def connect(self) -> None:
        async with self._lock:
            if self._redis is None:
                self._redis = redis_async.from_url(
                    self._cfg.url,
                    encoding="utf-8",
                    decode_responses=True,
                )

    async def close(self) -> None:
        async with self._lock:
            if self._redis is not None:
                await self._redis.aclose()
                self._redis = None

    async def get_json(self, name: str) -> Optional[Any]:
        if self._unavailable:
            return None
        redis = await self._ensure()
        try:
            payload = await redis.get(self.key(name))
        except RedisError as exc:
            self._mark_unavailable(exc)
            return None
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("cache_payload_corrupt", key=self.key(name))
            return None

    async def set_json(self, name: str, value: Any, ttl_seconds: int) -> None:
        if self._unavailable:
            return
        redis = await self._ensure()
        try:
            await redis.set(self.key(name), json.dumps(value), ex=ttl_seconds)
        except RedisError as exc:
            self._mark_unavailable(exc)

    async def _ensure(self) -> redis_async.Redis:
        if self._redis is None:
            await self.connect()
        assert self._redis is not None
        return self._redis

    def _mark_unavailable(self, exc: Exception) -> None:
        self._unavailable = True
        logger.warning("cache_unavailable", error=str(exc))


__all__ = ["CacheClient"]
