"""
Two-tier cache for IMDb ratings and TMDB -> IMDb ID mappings.

Reads go to the process-local MemoryCache first and fall through to Redis;
Redis hits are copied into the local tier. Writes update the local tier
synchronously and then write Redis best-effort: a failed remote write is
logged and the local value stays authoritative until it expires.

Apart from load_cycle_state, the cache never raises. Any Redis error is
logged (warning for provider rate-limit / quota errors, error otherwise) and
treated as a miss or no-op.
When the remote tier is not configured, or the deployment is not production
and production is required, the whole cache is disabled: reads return
nothing and writes do nothing.

Remote key schema (with the default "imdb" prefix):
    imdb:rating:<imdbId>            RatingRecord JSON
    imdb:map:<movie|tv>:<tmdbId>    IdMappingRecord JSON
    imdb:cron:state                 CycleState JSON
    imdb:cron:lock:<YYYY-MM-DD>     per-day run lock
    imdb:omdb:usage:<YYYY-MM-DD>    integer counter
"""

import logging
from typing import Iterable, Mapping, Optional, Type, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel, ValidationError

from db.memory_cache import MemoryCache
from db.redis import redis_key
from implementation.classes.enums import MediaKind
from implementation.classes.schemas import CycleState, IdMappingRecord, RatingRecord
from implementation.misc.helpers import is_rate_limit_error, now_ms, parse_rating
from implementation.settings import Settings

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _decode(raw: Optional[str], model: Type[_ModelT]) -> Optional[_ModelT]:
    """Parse a stored JSON value. Malformed or out-of-range values read as a miss."""
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError:
        logger.debug("Discarding malformed %s value: %r", model.__name__, raw)
        return None


def _encode(record: BaseModel) -> str:
    return record.model_dump_json(by_alias=True)


class CacheUnavailable(Exception):
    """The remote tier could not answer a read whose result must be trusted."""


class RatingCache:
    """Ratings and ID mappings over a local TTL map and Redis."""

    def __init__(
        self,
        client: Optional[aioredis.Redis],
        settings: Settings,
        memory: Optional[MemoryCache] = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._prefix = settings.key_prefix
        self._memory = memory if memory is not None else MemoryCache(
            ttl_seconds=settings.memory_ttl_seconds,
            max_entries=settings.memory_max_entries,
        )
        self._enabled = (
            client is not None
            and settings.cache_configured
            and (settings.is_production or not settings.require_production)
        )

    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def memory(self) -> MemoryCache:
        return self._memory

    # ===============================
    #          KEYS / ERRORS
    # ===============================

    def rating_key(self, imdb_id: str) -> str:
        return redis_key(self._prefix, "rating", imdb_id)

    def mapping_key(self, media_kind: MediaKind, tmdb_id: int) -> str:
        return redis_key(self._prefix, "map", media_kind.value, tmdb_id)

    def state_key(self) -> str:
        return redis_key(self._prefix, "cron", "state")

    def lock_key(self, date_key: str) -> str:
        return redis_key(self._prefix, "cron", "lock", date_key)

    def usage_key(self, date_key: str) -> str:
        return redis_key(self._prefix, "omdb", "usage", date_key)

    @staticmethod
    def _log_remote_error(action: str, error: Exception) -> None:
        if is_rate_limit_error(error):
            logger.warning("Remote cache rate limit reached, skipping %s", action)
        else:
            logger.error("Remote cache error during %s: %s", action, error)

    # ===============================
    #            RATINGS
    # ===============================

    async def get_rating(self, imdb_id: str) -> Optional[RatingRecord]:
        """Return the cached rating record for imdb_id, or None."""
        if not self._enabled or not imdb_id:
            return None

        key = self.rating_key(imdb_id)
        cached = self._memory.get(key)
        if cached is not None:
            return cached

        try:
            raw = await self._client.get(key)
        except Exception as e:
            self._log_remote_error("rating lookup", e)
            return None

        record = _decode(raw, RatingRecord)
        if record is not None:
            self._memory.set(key, record)
        return record

    async def get_ratings(self, imdb_ids: Iterable[str]) -> dict[str, float]:
        """
        Vectorized get_rating.

        Serves what it can from the local tier and issues at most one MGET for
        the rest. On a remote error, returns whatever the local tier had.
        """
        results: dict[str, float] = {}
        if not self._enabled:
            return results

        missing: list[str] = []
        for imdb_id in dict.fromkeys(i for i in imdb_ids if i):
            cached = self._memory.get(self.rating_key(imdb_id))
            if cached is not None:
                results[imdb_id] = cached.rating
            else:
                missing.append(imdb_id)

        if not missing:
            return results

        keys = [self.rating_key(imdb_id) for imdb_id in missing]
        try:
            values = await self._client.mget(keys)
        except Exception as e:
            self._log_remote_error("ratings lookup", e)
            return results

        for imdb_id, key, raw in zip(missing, keys, values):
            record = _decode(raw, RatingRecord)
            if record is not None:
                results[imdb_id] = record.rating
                self._memory.set(key, record)
        return results

    async def set_rating(self, imdb_id: str, rating: float) -> None:
        await self.set_ratings({imdb_id: rating})

    async def set_ratings(self, ratings: Mapping[str, float]) -> None:
        """Write ratings to both tiers with one MSET. Invalid ratings are dropped."""
        if not self._enabled or not ratings:
            return

        now = now_ms()
        payload: dict[str, str] = {}
        for imdb_id, rating in ratings.items():
            value = parse_rating(rating)
            if not imdb_id or value is None:
                logger.warning("Refusing to cache invalid rating %r for %r", rating, imdb_id)
                continue
            record = RatingRecord(rating=value, updated_at=now)
            key = self.rating_key(imdb_id)
            self._memory.set(key, record)
            payload[key] = _encode(record)

        if not payload:
            return
        try:
            await self._client.mset(payload)
        except Exception as e:
            # Local tier already holds the values.
            self._log_remote_error("ratings write", e)

    # ===============================
    #          ID MAPPINGS
    # ===============================

    async def get_id_mapping(self, media_kind: MediaKind, tmdb_id: int) -> Optional[IdMappingRecord]:
        """
        Return the mapping record, or None when the title was never resolved.

        A record whose imdb_id is None means the catalog has no IMDb ID for it.
        """
        if not self._enabled:
            return None

        key = self.mapping_key(media_kind, tmdb_id)
        cached = self._memory.get(key)
        if cached is not None:
            return cached

        try:
            raw = await self._client.get(key)
        except Exception as e:
            self._log_remote_error("IMDb ID lookup", e)
            return None

        record = _decode(raw, IdMappingRecord)
        if record is not None:
            self._memory.set(key, record)
        return record

    async def get_id_mappings(
        self,
        media_kind: MediaKind,
        tmdb_ids: Iterable[int],
    ) -> dict[int, IdMappingRecord]:
        """Vectorized get_id_mapping with at most one MGET."""
        results: dict[int, IdMappingRecord] = {}
        if not self._enabled:
            return results

        missing: list[int] = []
        for tmdb_id in dict.fromkeys(tmdb_ids):
            cached = self._memory.get(self.mapping_key(media_kind, tmdb_id))
            if cached is not None:
                results[tmdb_id] = cached
            else:
                missing.append(tmdb_id)

        if not missing:
            return results

        keys = [self.mapping_key(media_kind, tmdb_id) for tmdb_id in missing]
        try:
            values = await self._client.mget(keys)
        except Exception as e:
            self._log_remote_error("IMDb IDs lookup", e)
            return results

        for tmdb_id, key, raw in zip(missing, keys, values):
            record = _decode(raw, IdMappingRecord)
            if record is not None:
                results[tmdb_id] = record
                self._memory.set(key, record)
        return results

    async def set_id_mapping(self, media_kind: MediaKind, tmdb_id: int, imdb_id: Optional[str]) -> None:
        await self.set_id_mappings(media_kind, {tmdb_id: imdb_id})

    async def set_id_mappings(self, media_kind: MediaKind, mappings: Mapping[int, Optional[str]]) -> None:
        """
        Write mappings to both tiers in one pipelined round trip.

        A None IMDb ID is stored as a known-absent record that expires from
        Redis after no_mapping_ttl_seconds, so the title is re-checked later.
        """
        if not self._enabled or not mappings:
            return

        now = now_ms()
        pipe = self._client.pipeline(transaction=False)
        for tmdb_id, imdb_id in mappings.items():
            record = IdMappingRecord(imdb_id=imdb_id or None, updated_at=now)
            key = self.mapping_key(media_kind, tmdb_id)
            self._memory.set(key, record)
            ttl = self._settings.no_mapping_ttl_seconds if record.is_known_absent else None
            pipe.set(key, _encode(record), ex=ttl)

        try:
            await pipe.execute()
        except Exception as e:
            self._log_remote_error("IMDb IDs write", e)

    # ===============================
    #     USAGE COUNTER / JOB STATE
    # ===============================

    async def increment_daily_usage(self, date_key: str) -> Optional[int]:
        """Atomically bump the ratings-API counter for date_key. Remote tier only."""
        if not self._enabled:
            return None
        try:
            return int(await self._client.incr(self.usage_key(date_key)))
        except Exception as e:
            self._log_remote_error("usage increment", e)
            return None

    async def get_daily_usage(self, date_key: str) -> Optional[int]:
        if not self._enabled:
            return None
        try:
            raw = await self._client.get(self.usage_key(date_key))
        except Exception as e:
            self._log_remote_error("usage lookup", e)
            return None
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    async def load_cycle_state(self) -> Optional[CycleState]:
        """
        Read the population job's progress.

        Unlike the other reads this one is strict: None means no state has been
        stored (or the stored value is malformed), while a failed read raises
        CacheUnavailable. A transient Redis error must not look like a first run.
        """
        if not self._enabled:
            raise CacheUnavailable("IMDb cache is disabled")
        try:
            raw = await self._client.get(self.state_key())
        except Exception as e:
            self._log_remote_error("cron state lookup", e)
            raise CacheUnavailable(f"cron state lookup failed: {e}") from e
        return _decode(raw, CycleState)

    async def set_cycle_state(self, state: CycleState) -> None:
        if not self._enabled:
            return
        try:
            await self._client.set(self.state_key(), _encode(state))
        except Exception as e:
            self._log_remote_error("cron state write", e)

    async def acquire_run_lock(self, date_key: str) -> bool:
        """
        Claim the population run for date_key with SET NX EX.

        Returns True only for the first caller of the day while the lock lives.
        """
        if not self._enabled:
            return False
        try:
            acquired = await self._client.set(
                self.lock_key(date_key),
                "1",
                nx=True,
                ex=self._settings.run_lock_ttl_seconds,
            )
        except Exception as e:
            self._log_remote_error("cron lock", e)
            return False
        return bool(acquired)
