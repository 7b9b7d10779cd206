"""Redis pub/sub — change notifications for the sql store backend.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the
message is lost. That's fine here: a notification only says "collection X
changed"; every watch re-reads the full snapshot from PostgreSQL, so a
missed notification is healed by the next one.

Channel naming: medrelay:changes:{collection path}
Each live query subscribes only to the collection it reads.
"""

import json
from typing import Optional

import redis.asyncio as aioredis

from medrelay.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def change_channel(collection: str) -> str:
    return f"medrelay:changes:{collection}"


async def publish_change(r: aioredis.Redis, collection: str, doc_id: str) -> None:
    """Announce that a document in a collection was written."""
    await r.publish(change_channel(collection), json.dumps({"id": doc_id}))
