"""Redis connection pool and pub/sub helpers."""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> None:
    """Create the shared pool. Workers pass a smaller ``max_connections``."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Return the shared client or raise RuntimeError when the pool is not up."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


async def publish_json(client: redis.Redis, channel: str, payload: dict[str, Any]) -> int:
    """Publish a JSON document; returns the number of subscribers that received it."""
    return await client.publish(channel, json.dumps(payload, default=str))
