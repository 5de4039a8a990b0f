from __future__ import annotations

import pytest

from sqlchat.config import SecurityConfig
from sqlchat.errors import RateLimitExceeded
from sqlchat.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_rate_limiter_blocks_after_threshold() -> None:
    cfg = SecurityConfig(max_requests_per_minute=2)
    limiter = RateLimiter(cfg)
    assert await limiter.allow("user")
    assert await limiter.allow("user")
    assert not await limiter.allow("user")
    assert await limiter.allow("someone-else")


@pytest.mark.asyncio
async def test_window_slides() -> None:
    clock = FakeClock()
    limiter = RateLimiter(SecurityConfig(max_requests_per_minute=1), clock=clock)
    await limiter.check("user")
    with pytest.raises(RateLimitExceeded):
        await limiter.check("user")
    clock.now += 60
    await limiter.check("user")


@pytest.mark.asyncio
async def test_disabled_limiter_allows_everything() -> None:
    limiter = RateLimiter(SecurityConfig(enable_rate_limiting=False, max_requests_per_minute=1))
    assert all([await limiter.allow("user") for _ in range(5)])
