"""Per-tenant request throttling backed by a Redis sorted set per (tenant, action)."""

import time
import uuid

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, status

from socialize.core.auth import RequestContext, get_current_context
from socialize.core.config import settings
from socialize.utils.logger import get_logger

logger = get_logger("core.rate_limiter")

redis_client = aioredis.Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=0,
    decode_responses=True,
)


def _window_key(tenant_id: str, action: str) -> str:
    return f"rate_limit:{tenant_id}:{action}"


async def sliding_window_rate_limit(tenant_id: str, action: str, max_requests: int, window_seconds: int):
    """
    Record one request for ``tenant_id`` and raise 429 once more than
    ``max_requests`` fall inside the trailing ``window_seconds``.

    Each request is a sorted-set member scored by its timestamp. Rejected
    requests are taken back out so a tenant that keeps hammering the endpoint
    is not locked out past the window.
    """
    key = _window_key(tenant_id, action)
    now = time.time()
    member = f"{now}:{uuid.uuid4().hex}"

    async with redis_client.pipeline(transaction=True) as pipe:
        pipe.zremrangebyscore(key, 0, now - window_seconds)
        pipe.zadd(key, {member: now})
        pipe.zcard(key)
        pipe.expire(key, window_seconds + 10)
        _, _, in_window, _ = await pipe.execute()

    if in_window <= max_requests:
        return

    await redis_client.zrem(key, member)
    logger.warning(f"Tenant {tenant_id} throttled on {action}: {in_window} requests in {window_seconds}s, limit {max_requests}")
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Rate limit exceeded for {action}. Try again later.",
        headers={"Retry-After": str(window_seconds)},
    )


def rate_limit_dependency(action: str, max_requests: int, window_seconds: int):
    """Route dependency throttling the caller's tenant; a no-op when RATE_LIMIT_ENABLED is off."""

    async def enforce(context: RequestContext = Depends(get_current_context)):
        if settings.RATE_LIMIT_ENABLED:
            await sliding_window_rate_limit(context.tenant_id, action, max_requests, window_seconds)

    return enforce
