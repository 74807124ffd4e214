from redis.asyncio import Redis as AsyncRedis

from app.settings import settings

_redis_async: AsyncRedis | None = None


def redis_url() -> str:
    return settings.redis_url


async def get_redis() -> AsyncRedis | None:
    """Shared client, or None when the cache is switched off."""
    global _redis_async
    if not settings.redis_enabled:
        return None
    if _redis_async is None:
        _redis_async = AsyncRedis.from_url(
            redis_url(),
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_sec,
            socket_connect_timeout=settings.redis_socket_timeout_sec,
        )
    return _redis_async


async def close_redis() -> None:
    global _redis_async
    if _redis_async is not None:
        await _redis_async.aclose()
    _redis_async = None
