# backend/bookingwidget/redis_client.py
"""
Shared Redis client.

`redis_client` is None when REDIS_URL is empty: slot caching and event
emission are then skipped and everything is computed on the fly.
"""

from redis import Redis

from .config import settings


def make_redis(url: str) -> Redis | None:
    if not url:
        return None
    return Redis.from_url(url, decode_responses=True)


redis_client = make_redis(settings.redis_url)


# Dependency for FastAPI
def get_redis() -> Redis | None:
    return redis_client
