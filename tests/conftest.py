import fnmatch
import os
import time
from types import SimpleNamespace

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import inquaire.models  # noqa: F401  registers tables on Base.metadata
from inquaire.config import Settings
from inquaire.database import Base
from inquaire.models import Business, Channel, IndustryType, Platform

TEST_SECRETS = {
    Platform.KAKAO: "kakao-secret",
    Platform.LINE: "line-secret",
    Platform.NAVER_TALK: "naver-secret",
    Platform.INSTAGRAM: "instagram-secret",
}


class FakeRedis:
    """In-memory stand-in for redis.asyncio with TTLs driven by ``clock``."""

    def __init__(self, clock=time.time):
        self.data = {}
        self.expires_at = {}
        self.clock = clock

    def _alive(self, key: str) -> bool:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= self.clock():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    async def set(self, key: str, value, ex: int | None = None, nx: bool = False):
        if nx and self._alive(key):
            return None
        self.data[key] = value
        if ex:
            self.expires_at[key] = self.clock() + ex
        else:
            self.expires_at.pop(key, None)
        return True

    async def get(self, key: str):
        return self.data.get(key) if self._alive(key) else None

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._alive(key):
                deleted += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return deleted

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._alive(key))

    async def incr(self, key: str) -> int:
        value = int(self.data[key]) + 1 if self._alive(key) else 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        if not self._alive(key):
            return False
        self.expires_at[key] = self.clock() + seconds
        return True

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        for key in list(self.data):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    async def eval(self, script: str, numkeys: int, *args):
        # Only the compare-and-delete lock release script is used.
        key, token = args[0], args[numkeys]
        if self._alive(key) and self.data[key] == token:
            return await self.delete(key)
        return 0


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock=clock)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        database_url="sqlite://",
        webhook_ip_allowlist_enabled=False,
        admin_token="admin-token",
        instagram_verify_token="verify-me",
        openai_api_key="test-key",
        analysis_worker_enabled=False,
        reconcile_enabled=False,
    )


@pytest.fixture
def seed(db_session):
    """One business with an active channel per inbound platform."""
    business = Business(name="Seoul Dental", industry_type=IndustryType.DENTAL.value)
    db_session.add(business)
    db_session.flush()

    channels = {}
    for platform, secret in TEST_SECRETS.items():
        channel = Channel(
            business_id=business.id,
            platform=platform.value,
            name=f"{platform.value.lower()} channel",
            webhook_secret=secret,
            is_active=True,
        )
        db_session.add(channel)
        channels[platform] = channel
    db_session.commit()
    return SimpleNamespace(business=business, channels=channels)
