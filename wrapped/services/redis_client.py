# wrapped/services/redis_client.py
import redis
from wrapped.config.settings import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD

_cached_client = None


def get_redis_client(host=None, port=None, password=None):
    """
    Lazy-load a shared Redis client.
    redis.Redis does not connect until the first command, so building it at startup is safe.
    """
    global _cached_client

    if _cached_client is not None:
        return _cached_client

    _cached_client = redis.Redis(
        host=host or REDIS_HOST,
        port=port or REDIS_PORT,
        password=password or REDIS_PASSWORD,
        decode_responses=True,
    )
    return _cached_client
