"""
Redis connection setup using redis-py async client.

Holds quotes (with TTL) and pipeline in-flight markers for the SQL store.
Use a ``rediss://`` REDIS_URL for TLS.
"""

import redis.asyncio as aioredis

from remitrail.config import settings

redis = aioredis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
)
