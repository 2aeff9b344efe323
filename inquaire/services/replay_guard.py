import time
from typing import Callable, Optional

from inquaire.logging_config import get_logger

logger = get_logger("replay_guard")

DEFAULT_REPLAY_TTL_SECONDS = 300


def build_event_id(message_id: Optional[str], sender_id: str, received_at_ms: int) -> str:
    """Platform message id when present, otherwise sender plus receive time."""
    if message_id and message_id.strip():
        return message_id.strip()
    return f"{sender_id}_{received_at_ms}"


class ReplayGuard:
    """Short-lived record of seen webhook events, backed by Redis SET NX EX.

    Advisory only: a Redis failure admits the event rather than dropping it.
    """

    def __init__(
        self,
        redis_client,
        *,
        ttl_seconds: int = DEFAULT_REPLAY_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def key_for(event_id: str, platform: str) -> str:
        return f"webhook_event:{platform}:{event_id}"

    async def is_duplicate(self, event_id: str, platform: str) -> bool:
        if not self.redis_client:
            return False
        key = self.key_for(event_id, platform)
        try:
            was_set = await self.redis_client.set(key, "1", ex=self.ttl_seconds, nx=True)
        except Exception as e:
            logger.warning(
                "Replay guard unavailable, admitting event",
                extra={"context": {"platform": platform, "event_id": event_id, "error": str(e)}},
            )
            return False
        if not was_set:
            logger.info("Duplicate webhook event", extra={"context": {"platform": platform, "event_id": event_id}})
            return True
        return False

    async def forget(self, event_id: str, platform: str) -> None:
        if not self.redis_client:
            return
        try:
            await self.redis_client.delete(self.key_for(event_id, platform))
        except Exception as e:
            logger.warning(
                "Replay guard key removal failed",
                extra={"context": {"platform": platform, "event_id": event_id, "error": str(e)}},
            )

    def is_timestamp_valid(self, event_epoch_ms: int, max_age_seconds: int = DEFAULT_REPLAY_TTL_SECONDS) -> bool:
        now_ms = int(self._clock() * 1000)
        return abs(now_ms - int(event_epoch_ms)) <= max_age_seconds * 1000
