from __future__ import annotations

import redis.asyncio as redis
from chatcore.core.settings import settings

def get_redis(url: str | None = None) -> redis.Redis:
    # decode_responses so metric samples and pubsub payloads come back as str
    return redis.Redis.from_url(url or settings.redis_url, decode_responses=True)
