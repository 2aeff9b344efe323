"""Redis JSON cache with a stampede lock around recomputation."""

import asyncio
import json
import uuid
from typing import Any, Awaitable, Callable, Optional

from inquaire.logging_config import get_logger

logger = get_logger("cache")

# Delete the lock only if we still own it.
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def generate_key(*parts: Any) -> str:
    return ":".join(str(part) for part in parts)


class CacheService:
    def __init__(
        self,
        redis_client,
        *,
        lock_ttl_seconds: int = 10,
        lock_wait_seconds: float = 5.0,
        poll_interval_seconds: float = 0.1,
        sleep_func=asyncio.sleep,
    ):
        self.redis_client = redis_client
        self.lock_ttl_seconds = lock_ttl_seconds
        self.lock_wait_seconds = lock_wait_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep_func

    async def get(self, key: str) -> Optional[Any]:
        if not self.redis_client:
            return None
        try:
            raw = await self.redis_client.get(key)
        except Exception as e:
            logger.warning("Cache get failed", extra={"context": {"key": key, "error": str(e)}})
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Cache value is not JSON, ignoring", extra={"context": {"key": key}})
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if not self.redis_client:
            return
        try:
            await self.redis_client.set(key, json.dumps(value, default=str), ex=ttl_seconds)
        except Exception as e:
            logger.warning("Cache set failed", extra={"context": {"key": key, "error": str(e)}})

    async def delete(self, key: str) -> None:
        if not self.redis_client:
            return
        try:
            await self.redis_client.delete(key)
        except Exception as e:
            logger.warning("Cache delete failed", extra={"context": {"key": key, "error": str(e)}})

    async def delete_pattern(self, pattern: str) -> int:
        if not self.redis_client:
            return 0
        deleted = 0
        try:
            keys = [key async for key in self.redis_client.scan_iter(match=pattern, count=100)]
            if keys:
                deleted = await self.redis_client.delete(*keys)
        except Exception as e:
            logger.warning("Cache pattern delete failed", extra={"context": {"pattern": pattern, "error": str(e)}})
        return deleted

    async def get_or_set(self, key: str, factory: Callable[[], Awaitable[Any]], ttl_seconds: int) -> Any:
        """Return the cached value or compute it with only one concurrent caller running ``factory``.

        Callers that lose the lock poll for the winner's value and compute it
        themselves once ``lock_wait_seconds`` runs out.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        lock_key = f"lock:{key}"
        token = uuid.uuid4().hex
        if await self._acquire_lock(lock_key, token):
            try:
                cached = await self.get(key)
                if cached is not None:
                    return cached
                value = await factory()
                await self.set(key, value, ttl_seconds)
                return value
            finally:
                await self._release_lock(lock_key, token)

        waited = 0.0
        while waited < self.lock_wait_seconds:
            await self._sleep(self.poll_interval_seconds)
            waited += self.poll_interval_seconds
            cached = await self.get(key)
            if cached is not None:
                return cached
            if not await self._lock_exists(lock_key):
                cached = await self.get(key)
                if cached is not None:
                    return cached
                break

        logger.info("Cache lock wait expired, computing directly", extra={"context": {"key": key}})
        return await factory()

    async def _acquire_lock(self, lock_key: str, token: str) -> bool:
        if not self.redis_client:
            return True
        try:
            return bool(await self.redis_client.set(lock_key, token, ex=self.lock_ttl_seconds, nx=True))
        except Exception as e:
            logger.warning("Cache lock unavailable", extra={"context": {"key": lock_key, "error": str(e)}})
            return True

    async def _release_lock(self, lock_key: str, token: str) -> None:
        if not self.redis_client:
            return
        try:
            await self.redis_client.eval(RELEASE_LOCK_SCRIPT, 1, lock_key, token)
        except Exception as e:
            logger.warning("Cache lock release failed", extra={"context": {"key": lock_key, "error": str(e)}})

    async def _lock_exists(self, lock_key: str) -> bool:
        try:
            return bool(await self.redis_client.exists(lock_key))
        except Exception as e:
            logger.warning("Cache lock check failed", extra={"context": {"key": lock_key, "error": str(e)}})
            return False
