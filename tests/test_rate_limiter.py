"""
Sliding window rate limiter tests
"""

import pytest
from fakeredis import aioredis as fake_aioredis
from fastapi import HTTPException

from socialize.core import rate_limiter


@pytest.fixture
def fake_redis(monkeypatch):
    client = fake_aioredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(rate_limiter, "redis_client", client)
    return client


async def test_requests_within_limit_pass(fake_redis):
    for _ in range(3):
        await rate_limiter.sliding_window_rate_limit("tenant-a", "uploads", max_requests=3, window_seconds=60)

    assert await fake_redis.zcard("rate_limit:tenant-a:uploads") == 3


async def test_limit_exceeded_raises_429(fake_redis):
    for _ in range(2):
        await rate_limiter.sliding_window_rate_limit("tenant-a", "uploads", max_requests=2, window_seconds=60)

    with pytest.raises(HTTPException) as exc_info:
        await rate_limiter.sliding_window_rate_limit("tenant-a", "uploads", max_requests=2, window_seconds=60)

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {"Retry-After": "60"}


async def test_limits_are_per_tenant(fake_redis):
    await rate_limiter.sliding_window_rate_limit("tenant-a", "uploads", max_requests=1, window_seconds=60)
    await rate_limiter.sliding_window_rate_limit("tenant-b", "uploads", max_requests=1, window_seconds=60)


async def test_key_expires_after_window(fake_redis):
    await rate_limiter.sliding_window_rate_limit("tenant-a", "uploads", max_requests=5, window_seconds=30)
    ttl = await fake_redis.ttl("rate_limit:tenant-a:uploads")
    assert 0 < ttl <= 40


async def test_rejected_requests_do_not_count(fake_redis):
    await rate_limiter.sliding_window_rate_limit("tenant-a", "uploads", max_requests=1, window_seconds=60)
    for _ in range(3):
        with pytest.raises(HTTPException):
            await rate_limiter.sliding_window_rate_limit("tenant-a", "uploads", max_requests=1, window_seconds=60)

    assert await fake_redis.zcard("rate_limit:tenant-a:uploads") == 1
