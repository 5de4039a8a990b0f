from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from .config import SecurityConfig
from .errors import RateLimitExceeded


class RateLimiter:
    """Sliding one-minute window per client key."""

    def __init__(self, cfg: SecurityConfig, clock: Callable[[], float] = time.monotonic):
        self._cfg = cfg
        self._clock = clock
        self._window = 60.0
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def allow(self, key: str) -> bool:
        if not self._cfg.enable_rate_limiting:
            return True
        async with self._lock:
            now = self._clock()
            window_start = now - self._window
            queue = self._requests[key]
            while queue and queue[0] <= window_start:
                queue.popleft()
            if len(queue) >= self._cfg.max_requests_per_minute:
                return False
            queue.append(now)
            return True

    async def check(self, key: str) -> None:
        if not await self.allow(key):
            raise RateLimitExceeded(f"rate limit exceeded for {key}")


__all__ = ["RateLimiter"]
