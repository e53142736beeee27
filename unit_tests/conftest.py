"""Shared pytest fixtures for unit tests."""

from typing import Any, Callable, Optional
from pathlib import Path
import asyncio
import sys

import pytest

# Ensure project root is importable when tests run from repository root.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from db.enrichment import RatingEnricher
from db.memory_cache import MemoryCache
from db.rating_cache import RatingCache
from db.tmdb import ImdbIdLookup
from implementation.classes.enums import MediaKind
from implementation.settings import Settings


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryRedis:
    """
    Async stand-in for the handful of redis.asyncio commands the cache uses.

    Records every command in `calls` as (command, argument) so tests can
    assert on round trips. Setting `error` makes every command raise it.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.error: Optional[Exception] = None

    def _record(self, command: str, argument: Any) -> None:
        self.calls.append((command, argument))
        if self.error is not None:
            raise self.error

    def commands(self, name: str) -> list[Any]:
        return [argument for command, argument in self.calls if command == name]

    def _put(self, key: str, value: Any, ex: Optional[int] = None) -> None:
        self.store[key] = str(value)
        self.ttls[key] = ex

    async def ping(self) -> bool:
        self._record("ping", None)
        return True

    async def get(self, key: str) -> Optional[str]:
        self._record("get", key)
        return self.store.get(key)

    async def mget(self, keys: list[str]) -> list[Optional[str]]:
        self._record("mget", list(keys))
        return [self.store.get(key) for key in keys]

    async def set(self, key: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> Optional[bool]:
        self._record("set", key)
        if nx and key in self.store:
            return None
        self._put(key, value, ex)
        return True

    async def mset(self, mapping: dict[str, Any]) -> bool:
        self._record("mset", dict(mapping))
        for key, value in mapping.items():
            self._put(key, value)
        return True

    async def incr(self, key: str) -> int:
        self._record("incr", key)
        value = int(self.store.get(key, "0")) + 1
        self.store[key] = str(value)
        return value

    def pipeline(self, transaction: bool = True) -> "InMemoryPipeline":
        return InMemoryPipeline(self)


class InMemoryPipeline:
    def __init__(self, redis: InMemoryRedis) -> None:
        self._redis = redis
        self._queued: list[tuple[str, Any, Optional[int]]] = []

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> "InMemoryPipeline":
        self._queued.append((key, value, ex))
        return self

    async def execute(self) -> list[bool]:
        self._redis._record("pipeline", [key for key, _, _ in self._queued])
        for key, value, ex in self._queued:
            self._redis._put(key, value, ex)
        return [True] * len(self._queued)


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory for fully configured production settings with optional overrides."""

    def _factory(**overrides: Any) -> Settings:
        base: dict[str, Any] = {
            "tmdb_api_key": "tmdb-key",
            "omdb_api_key": "omdb-key",
            "redis_url": "rediss://cache.test:6379",
            "redis_token": "cache-token",
            "cron_secret": "cron-secret",
            "app_env": "production",
        }
        base.update(overrides)
        return Settings(**base)

    return _factory


@pytest.fixture
def settings(settings_factory) -> Settings:
    return settings_factory()


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rating_cache(fake_redis, settings, clock) -> RatingCache:
    """An enabled two-tier cache over the in-memory Redis double."""
    memory = MemoryCache(ttl_seconds=settings.memory_ttl_seconds, clock=clock)
    return RatingCache(fake_redis, settings, memory=memory)


class FakeCatalog:
    """
    Async stand-in for TmdbClient covering popular pages and IMDb ID lookups.

    Popular pages hold `page_size` titles each, up to `pages[kind]` pages, after
    which pages come back empty. Every title maps to tt<7-digit tmdb id> unless
    listed in `absent`. Tracks the peak number of concurrent lookups.
    """

    configured = True

    def __init__(self, pages: Optional[dict[str, int]] = None, page_size: int = 2) -> None:
        self.pages = pages if pages is not None else {"movie": 1000, "tv": 1000}
        self.page_size = page_size
        self.absent: set[int] = set()
        self.page_calls: list[tuple[str, int]] = []
        self.lookup_calls: list[tuple[str, int]] = []
        self.fail_on_page: Optional[tuple[str, int]] = None
        self.in_flight = 0
        self.peak = 0

    @staticmethod
    def title_id(kind: str, page: int, position: int) -> int:
        offset = 0 if kind == "movie" else 500_000
        return offset + page * 100 + position

    async def fetch_popular_page(self, media_kind: MediaKind, page: int) -> list[dict[str, Any]]:
        self.page_calls.append((media_kind.value, page))
        if self.fail_on_page == (media_kind.value, page):
            raise RuntimeError("catalog unavailable")
        if page > self.pages.get(media_kind.value, 0):
            return []
        return [
            {"id": self.title_id(media_kind.value, page, position), "media_type": media_kind.value}
            for position in range(self.page_size)
        ]

    async def fetch_imdb_id(self, media_kind: MediaKind, tmdb_id: int) -> ImdbIdLookup:
        self.lookup_calls.append((media_kind.value, tmdb_id))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if tmdb_id in self.absent:
            return ImdbIdLookup(imdb_id=None, resolved=True)
        return ImdbIdLookup(imdb_id=f"tt{tmdb_id:07d}", resolved=True)


class FakeFetcher:
    """Async stand-in for OmdbRatingFetcher returning a fixed rating for every title."""

    configured = True

    def __init__(self, rating: Optional[float] = 7.5) -> None:
        self.rating = rating
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak = 0

    async def fetch_rating(self, imdb_id: str) -> Optional[float]:
        self.calls.append(imdb_id)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        return self.rating


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def enricher(rating_cache, catalog, fetcher) -> RatingEnricher:
    return RatingEnricher(rating_cache, catalog, fetcher, chunk_size=5)
