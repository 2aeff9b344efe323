import redis.asyncio as redis_async

from inquaire.config import settings

_redis_client = None
_redis_url = None


def get_redis_client(redis_url: str, socket_timeout_seconds: float):
    global _redis_client, _redis_url

    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )

    return _redis_client


def get_redis():
    return get_redis_client(settings.redis_url, settings.redis_socket_timeout_seconds)
