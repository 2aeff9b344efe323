from inquaire.logging_config import get_logger

logger = get_logger("rate_limit")


async def check_rate_limit(redis_client, *, key: str, limit: int, window_seconds: int) -> bool:
    """Fixed-window counter. Returns False once the window is over its limit; fails open."""
    if not redis_client or limit <= 0:
        return True
    try:
        count = await redis_client.incr(key)
        if count == 1:
            await redis_client.expire(key, window_seconds)
    except Exception as exc:
        logger.warning("Rate limit redis check failed", extra={"context": {"key": key, "error": str(exc)}})
        return True
    return count <= limit
