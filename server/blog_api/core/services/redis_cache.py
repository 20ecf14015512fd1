"""Lightweight Redis cache module for blog post lookups."""

import asyncio
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_redis_client: Optional[aioredis.Redis] = None


async def init_redis_cache(redis_url: str, timeout: Optional[float] = None) -> aioredis.Redis:
    global _redis_client
    _redis_client = aioredis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
    logger.info("[Cache] Redis cache connected")
    return _redis_client


async def close_redis_cache() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


# Failures and timeouts below degrade to a cache miss; the post store stays the source of truth.

async def cache_get(redis: aioredis.Redis, key: str, timeout: Optional[float] = None) -> Optional[Any]:
    try:
        raw = await asyncio.wait_for(redis.get(key), timeout=timeout)
        return json.loads(raw) if raw is not None else None
    except Exception as e:
        logger.warning("[Cache] get %s failed: %r", key, e)
        return None


async def cache_set(
    redis: aioredis.Redis,
    key: str,
    value: Any,
    ttl: int = 300,
    timeout: Optional[float] = None,
) -> None:
    try:
        await asyncio.wait_for(redis.set(key, json.dumps(value, default=str), ex=ttl), timeout=timeout)
    except Exception as e:
        logger.warning("[Cache] set %s failed: %r", key, e)


async def cache_delete(redis: aioredis.Redis, *keys: str, timeout: Optional[float] = None) -> None:
    if not keys:
        return
    try:
        await asyncio.wait_for(redis.delete(*keys), timeout=timeout)
    except Exception as e:
        logger.warning("[Cache] delete %s failed: %r", ", ".join(keys), e)


# --- Key builders ---
def blog_post_key(slug: str) -> str:
    return f"blog_post:{slug}"
