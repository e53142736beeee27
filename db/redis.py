"""
Redis async connection handling for the rating cache.

Uses redis.asyncio with an explicit ConnectionPool built from the remote-cache
URL. The access token is sent as the Redis password. decode_responses is True
because every value the cache stores is a JSON string or an integer counter.

The client is created once at application startup and handed to the
components that need it; nothing here keeps a module-level handle.
"""

import logging

import redis.asyncio as aioredis
from redis.asyncio.connection import ConnectionPool

logger = logging.getLogger(__name__)


def create_redis_client(
    url: str,
    token: str = "",
    max_connections: int = 10,
) -> aioredis.Redis:
    """Build an async Redis client. Does not connect until the first command."""
    pool = ConnectionPool.from_url(
        url,
        password=token or None,
        max_connections=max_connections,
        decode_responses=True,
    )
    return aioredis.Redis(connection_pool=pool)


async def close_redis(client: aioredis.Redis | None) -> None:
    """Call at application shutdown."""
    if client is None:
        return
    await client.aclose()
    await client.connection_pool.aclose()


async def check_redis(client: aioredis.Redis | None) -> str:
    """Ping Redis and return 'ok' or an error message string."""
    if client is None:
        return "disabled"
    try:
        await client.ping()
        return "ok"
    except Exception as e:
        return str(e)


def redis_key(prefix: str, *parts: object) -> str:
    """Build a prefixed Redis key from one or more parts, e.g. imdb:map:movie:27205."""
    joined = ":".join(str(part) for part in parts)
    return f"{prefix}:{joined}" if prefix else joined
