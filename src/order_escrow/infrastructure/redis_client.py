"""Redis client for cross-instance job locks and health checks.

Usage:
    from order_escrow.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    if await acquire_job_lock(redis, "auto-approval", ttl_seconds=300):
        ...
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

from order_escrow.config import get_settings
from order_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None

_LOCK_PREFIX = "order-escrow:lock:"

# Delete the key only if we still own it, so an expired lock re-taken by
# another instance is never released by us.
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Job Locks ---


async def acquire_job_lock(redis: aioredis.Redis, name: str, ttl_seconds: int) -> str | None:
    """Try to take a named lock (SET NX EX).

    Returns the owner token on success, None if another holder has it.
    """
    token = uuid.uuid4().hex
    acquired = await redis.set(f"{_LOCK_PREFIX}{name}", token, nx=True, ex=ttl_seconds)
    if not acquired:
        logger.info("job_lock.busy", lock=name)
        return None
    logger.debug("job_lock.acquired", lock=name, ttl_seconds=ttl_seconds)
    return token


async def release_job_lock(redis: aioredis.Redis, name: str, token: str) -> bool:
    released = await redis.eval(_RELEASE_SCRIPT, 1, f"{_LOCK_PREFIX}{name}", token)
    if not released:
        logger.warning("job_lock.lost_before_release", lock=name)
    return bool(released)
