"""Shared pytest fixtures: in-memory Redis double, SQLite store, wired components."""

import datetime
import math
from collections.abc import AsyncGenerator
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlink.cache import CacheGateway
from shortlink.click_tracker import ClickTracker
from shortlink.config import Settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.dependencies import ServiceManager
from shortlink.link_store import ShortLinkStore
from shortlink.main import app
from shortlink.rate_limiter import RateLimiter
from shortlink.repository import LinkRepository


class FakeRedis:
    """Async stand-in for the subset of redis.asyncio.Redis the service uses.

    Values are stored as strings (like ``decode_responses=True``). Time is
    manual: ``advance`` moves the clock used for key expiry. Setting
    ``unavailable`` (or listing commands in ``failing``) makes calls raise
    ``ConnectionError`` as a dead server would.
    """

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, float] = {}
        self.now = 0.0
        self.unavailable = False
        self.failing: set[str] = set()
        self.commands: list[str] = []

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _check(self, command: str) -> None:
        self.commands.append(command)
        if self.unavailable or command in self.failing:
            raise RedisConnectionError("Error 111 connecting to redis:6379. Connection refused.")

    def _alive(self, key: str) -> bool:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= self.now:
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.data

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check("get")
        return self.data[key] if self._alive(key) else None

    async def set(self, key: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> Optional[bool]:
        self._check("set")
        if nx and self._alive(key):
            return None
        self.data[key] = str(value)
        if ex is not None:
            self.expiry[key] = self.now + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def incr(self, key: str) -> int:
        self._check("incr")
        value = int(self.data[key]) + 1 if self._alive(key) else 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        self._check("expire")
        if not self._alive(key):
            return False
        self.expiry[key] = self.now + seconds
        return True

    async def ttl(self, key: str) -> int:
        self._check("ttl")
        if not self._alive(key):
            return -2
        deadline = self.expiry.get(key)
        if deadline is None:
            return -1
        return math.ceil(deadline - self.now)

    async def flushdb(self) -> bool:
        self.data.clear()
        self.expiry.clear()
        return True

    async def aclose(self) -> None:
        return None


class RecordingRepository(LinkRepository):
    """LinkRepository that counts how many database sessions were opened."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        super().__init__(sessions)
        self.sessions_opened = 0

    def _session(self):
        self.sessions_opened += 1
        return super()._session()


class ManualClock:
    def __init__(self, start: datetime.datetime):
        self.current = start

    def __call__(self) -> datetime.datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += datetime.timedelta(**kwargs)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortlink.db'}",
        BASE_URL="http://sho.rt",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> CacheGateway:
    return CacheGateway(fake_redis, timeout=1.0)


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(test_settings)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def repository(sessions: async_sessionmaker[AsyncSession]) -> RecordingRepository:
    return RecordingRepository(sessions)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime.datetime(2026, 3, 14, 9, 30, tzinfo=datetime.timezone.utc))


@pytest.fixture
def link_store(cache: CacheGateway, repository: RecordingRepository) -> ShortLinkStore:
    return ShortLinkStore(cache, repository)


@pytest.fixture
def click_tracker(cache: CacheGateway, repository: RecordingRepository, clock: ManualClock) -> ClickTracker:
    return ClickTracker(cache, repository, clock=clock)


@pytest.fixture
def rate_limiter(cache: CacheGateway) -> RateLimiter:
    return RateLimiter(cache, max_requests=10, window_seconds=60)


@pytest_asyncio.fixture
async def client(
    test_settings: Settings,
    fake_redis: FakeRedis,
    sessions: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    manager = ServiceManager()
    await manager.cleanup()
    await manager.initialize(settings=test_settings, redis_client=fake_redis, sessions=sessions)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await manager.cleanup()
