"""Redis client management for the short link service.

The client is only used when ``STORE_BACKEND=redis``: it then backs both the
RedisLinkStore and the RedisSequenceAllocator. With the SQL backend it is
still created but never connects, since no command is issued on it.

How to Use
===========
**Step 1 — Create on startup**::
    cache = create_redis(settings)

**Step 2 — Cleanup on shutdown**::
    await close_redis(cache)

Key Behaviours
===============
- Connections are opened lazily on the first command.
- UTF-8 encoding with decode_responses, which RedisLinkStore relies on.

Functions:
    create_redis():  Builds the client from Settings.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis

from shortlinks.config import Settings

__all__ = ["create_redis", "close_redis"]


def create_redis(settings: Settings) -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )


async def close_redis(client: redis.Redis | None) -> None:
    if client is not None:
        await client.aclose()
