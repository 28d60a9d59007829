import redis

from app.core.config import get_redis_url


def get_redis_client():
    """Get Redis client for locking and token storage."""
    return redis.from_url(get_redis_url(), decode_responses=True)
