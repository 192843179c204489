from typing import Optional

import redis

from . import config

_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Process-wide client for the rate-limit counters; connects lazily."""
    global _client
    if _client is None:
        _client = redis.Redis.from_url(
            config.settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )
    return _client


__all__ = ["get_redis"]
