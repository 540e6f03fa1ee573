"""Redis connection management and the revoked-token list."""

from __future__ import annotations

import redis.asyncio as redis

from app.core.config import get_settings

settings = get_settings()

REVOKED_TOKEN_PREFIX = "askbox:jwt:revoked:"

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get or lazily create the shared Redis client."""
    global _client
    if _client is None:
        _client = redis.from_url(settings.redis_url, decode_responses=True)
    return _client


async def close_redis() -> None:
    """Close the shared Redis client, if one was opened."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def revoke_token_id(jti: str, ttl_seconds: int) -> None:
    """Remember a token id as revoked until the token would have expired anyway."""
    client = await get_redis()
    await client.setex(f"{REVOKED_TOKEN_PREFIX}{jti}", max(ttl_seconds, 1), "1")


async def is_token_id_revoked(jti: str) -> bool:
    client = await get_redis()
    return await client.exists(f"{REVOKED_TOKEN_PREFIX}{jti}") > 0
