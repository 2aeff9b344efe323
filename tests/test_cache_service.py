import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from inquaire.models import InquiryStatus, Platform
from inquaire.services.cache_service import CacheService, generate_key
from inquaire.services.customer_service import resolve_customer
from inquaire.services.inquiry_service import apply_analysis, create_inquiry
from inquaire.services.stats_service import (
    compute_inquiry_stats,
    get_inquiry_stats,
    invalidate_stats_cache,
    stats_cache_key,
)


async def no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


class TestCacheService:
    @pytest.mark.asyncio
    async def test_set_and_get_json(self, fake_redis):
        cache = CacheService(fake_redis)
        await cache.set("k", {"total": 3}, 60)
        assert json.loads(fake_redis.data["k"]) == {"total": 3}
        assert await cache.get("k") == {"total": 3}

    @pytest.mark.asyncio
    async def test_values_expire(self, fake_redis, clock):
        cache = CacheService(fake_redis)
        await cache.set("k", 1, 60)
        clock.advance(61)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_pattern(self, fake_redis):
        cache = CacheService(fake_redis)
        await cache.set("stats:inquiries:b1:all_all", 1, 60)
        await cache.set("stats:inquiries:b1:x_y", 1, 60)
        await cache.set("stats:inquiries:b2:all_all", 1, 60)

        assert await cache.delete_pattern("stats:inquiries:b1:*") == 2
        assert await cache.get("stats:inquiries:b2:all_all") == 1

    @pytest.mark.asyncio
    async def test_redis_errors_are_cache_misses(self):
        redis_client = Mock()
        redis_client.get = AsyncMock(side_effect=ConnectionError("down"))
        redis_client.set = AsyncMock(side_effect=ConnectionError("down"))
        cache = CacheService(redis_client)

        assert await cache.get("k") is None
        await cache.set("k", 1, 60)

    @pytest.mark.asyncio
    async def test_get_or_set_computes_once_and_caches(self, fake_redis):
        cache = CacheService(fake_redis)
        factory = AsyncMock(return_value={"total": 1})

        assert await cache.get_or_set("k", factory, 60) == {"total": 1}
        assert await cache.get_or_set("k", factory, 60) == {"total": 1}
        factory.assert_awaited_once()
        assert "lock:k" not in fake_redis.data

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_computation(self, fake_redis):
        cache = CacheService(fake_redis, sleep_func=no_sleep)
        release = asyncio.Event()
        calls = []

        async def slow_factory():
            calls.append(1)
            await release.wait()
            return {"total": 9}

        tasks = [asyncio.create_task(cache.get_or_set("k", slow_factory, 60)) for _ in range(5)]
        for _ in range(5):
            await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert results == [{"total": 9}] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_waiter_computes_after_lock_wait_expires(self, fake_redis):
        await fake_redis.set("lock:k", "someone-else", ex=10)
        cache = CacheService(fake_redis, lock_wait_seconds=0.3, poll_interval_seconds=0.1, sleep_func=no_sleep)
        factory = AsyncMock(return_value=5)

        assert await cache.get_or_set("k", factory, 60) == 5
        factory.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_is_released_only_by_owner(self, fake_redis):
        cache = CacheService(fake_redis)
        await fake_redis.set("lock:k", "other-token", ex=10)
        await cache._release_lock("lock:k", "my-token")
        assert fake_redis.data["lock:k"] == "other-token"


class TestInquiryStats:
    @pytest.fixture
    def inquiries(self, db_session, seed):
        customer, _ = resolve_customer(
            db_session, business_id=seed.business.id, platform=Platform.LINE, platform_user_id="U1"
        )
        channel_id = seed.channels[Platform.LINE].id
        created = [
            create_inquiry(db_session, channel_id=channel_id, customer_id=customer.id, message_text=text)
            for text in ("Booking?", "Price?", "Parking?")
        ]
        apply_analysis(
            db_session,
            inquiry_id=created[0].id,
            analysis={"type": "booking inquiry", "sentiment": "positive", "urgency": "high"},
            model="gpt-4o-mini",
            processing_time_ms=10,
        )
        return created

    def test_compute_counts(self, db_session, seed, inquiries):
        stats = compute_inquiry_stats(db_session, seed.business.id)
        assert stats["total"] == 3
        assert stats["by_status"][InquiryStatus.NEW.value] == 2
        assert stats["by_status"][InquiryStatus.IN_PROGRESS.value] == 1
        assert stats["by_status"][InquiryStatus.COMPLETED.value] == 0
        assert stats["by_sentiment"] == {"positive": 1}
        assert stats["by_type"] == {"booking inquiry": 1}

    def test_cache_key_format(self, seed):
        business_id = seed.business.id
        assert stats_cache_key(business_id) == f"stats:inquiries:{business_id}:all_all"
        start = datetime(2026, 10, 1, tzinfo=timezone.utc)
        assert stats_cache_key(business_id, start) == f"stats:inquiries:{business_id}:{start.isoformat()}_all"

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, db_session, seed, inquiries, fake_redis):
        cache = CacheService(fake_redis)
        business_id = seed.business.id

        first = await get_inquiry_stats(db_session, cache, business_id)
        assert first["total"] == 3
        assert stats_cache_key(business_id) in fake_redis.data

        await fake_redis.set(generate_key("dashboard", "business", business_id), "{}", ex=60)
        await invalidate_stats_cache(cache, business_id)

        assert stats_cache_key(business_id) not in fake_redis.data
        assert generate_key("dashboard", "business", business_id) not in fake_redis.data
