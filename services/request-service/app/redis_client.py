import redis.asyncio as redis

from .config import REDIS_URL

_client = None


def get_redis():
    """Shared client for the payment consumer; it needs REDIS_URL."""
    global _client
    if _client is None:
        if not REDIS_URL:
            raise RuntimeError("REDIS_URL environment variable is not set")
        _client = redis.from_url(REDIS_URL, decode_responses=True)
    return _client
