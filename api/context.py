"""
Application-scoped context.

Built once in the FastAPI lifespan and handed to every endpoint through a
dependency. Holds the shared HTTP client, the optional Redis client and the
components wired on top of them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import redis.asyncio as aioredis

from db.enrichment import RatingEnricher
from db.omdb import OmdbRatingFetcher
from db.rating_cache import RatingCache
from db.rating_population import RatingPopulationJob
from db.redis import close_redis, create_redis_client
from db.tmdb import TmdbClient
from implementation.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    settings: Settings
    http: httpx.AsyncClient
    redis: Optional[aioredis.Redis]
    cache: RatingCache
    tmdb: TmdbClient
    enricher: RatingEnricher

    @classmethod
    def create(cls, settings: Settings) -> "AppContext":
        http = httpx.AsyncClient(headers={"accept": "application/json"}, timeout=10.0)
        redis_client = (
            create_redis_client(settings.redis_url, settings.redis_token)
            if settings.cache_configured
            else None
        )
        cache = RatingCache(redis_client, settings)
        if not cache.is_enabled():
            logger.warning("IMDb rating cache disabled; enrichment runs in degraded mode")

        tmdb = TmdbClient(
            http,
            settings.tmdb_api_key,
            show_detail_timeout=settings.show_detail_timeout_seconds,
        )
        omdb = OmdbRatingFetcher(http, settings.omdb_api_key, cache)
        enricher = RatingEnricher(cache, tmdb, omdb, chunk_size=settings.chunk_size)
        return cls(
            settings=settings,
            http=http,
            redis=redis_client,
            cache=cache,
            tmdb=tmdb,
            enricher=enricher,
        )

    def population_job(self) -> RatingPopulationJob:
        return RatingPopulationJob(self.cache, self.tmdb, self.enricher, self.settings)

    async def aclose(self) -> None:
        await self.http.aclose()
        await close_redis(self.redis)
