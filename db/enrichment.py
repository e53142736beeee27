"""
enrichment.py - Batch IMDb rating enrichment.

Attaches imdb_id / imdb_rating to catalog items through the two-tier cache,
falling back to TMDB external-ID lookups and OMDb rating fetches on a miss.

Items are processed in fixed-size chunks. Chunks run strictly one after the
other; inside a chunk every network call for distinct items runs concurrently,
so at most chunk_size requests are outstanding at a time. Each chunk issues
one batched mapping write per media kind and one batched rating write.

Output order follows input order, but callers that need a specific order
should sort after enrichment.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from db.omdb import OmdbRatingFetcher
from db.rating_cache import RatingCache
from db.tmdb import ImdbIdLookup, TmdbClient
from implementation.classes.enums import MediaKind
from implementation.misc.helpers import catalog_id, chunked

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 5


@dataclass(slots=True)
class EnrichmentStats:
    processed: int = 0
    cached_ratings: int = 0       # served from either cache tier
    fetched_ratings: int = 0      # newly fetched from OMDb
    missing_ratings: int = 0      # mapped, but no rating available
    missing_mapping: int = 0      # no IMDb ID (unknown or known-absent)

    def add(self, other: "EnrichmentStats") -> None:
        self.processed += other.processed
        self.cached_ratings += other.cached_ratings
        self.fetched_ratings += other.fetched_ratings
        self.missing_ratings += other.missing_ratings
        self.missing_mapping += other.missing_mapping


@dataclass(slots=True)
class EnrichmentResult:
    items: list[Any]
    stats: EnrichmentStats = field(default_factory=EnrichmentStats)


@dataclass(slots=True)
class _Pending:
    """One item of a chunk while it is being resolved."""
    index: int
    item: dict[str, Any]
    tmdb_id: int
    media_kind: MediaKind
    imdb_id: Optional[str] = None


class RatingEnricher:
    def __init__(
        self,
        cache: RatingCache,
        tmdb: TmdbClient,
        fetcher: OmdbRatingFetcher,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._cache = cache
        self._tmdb = tmdb
        self._fetcher = fetcher
        self._chunk_size = chunk_size

    @property
    def available(self) -> bool:
        """Enrichment needs a live cache and a catalog key; otherwise it is a no-op."""
        return self._cache.is_enabled() and self._tmdb.configured

    # ===============================
    #          ENTRY POINTS
    # ===============================

    async def enrich_shows(
        self,
        items: Any,
        media_kind: Optional[MediaKind] = None,
        fetch_missing: bool = True,
    ) -> Any:
        """
        Read-path entry point. Never raises.

        Returns a list with imdb_id / imdb_rating filled in where resolvable.
        On any unexpected failure the input is returned unchanged.
        """
        if not isinstance(items, list) or not items:
            return items
        try:
            result = await self.enrich(items, media_kind=media_kind, fetch_missing=fetch_missing)
        except Exception:
            logger.exception("Rating enrichment failed; returning %d shows unchanged", len(items))
            return items
        return result.items

    async def enrich(
        self,
        items: Sequence[Any],
        media_kind: Optional[MediaKind] = None,
        fetch_missing: bool = True,
        should_stop: Optional[Callable[[EnrichmentStats], bool]] = None,
    ) -> EnrichmentResult:
        """
        Enrich items chunk by chunk.

        Args:
            items: Catalog dicts. Items without an integer id pass through.
            media_kind: Applies to every item; when None each item's
                media_type is used, defaulting to movie.
            fetch_missing: When False, or when the fetcher has no key,
                ratings come from the cache only.
            should_stop: Checked before each chunk with the running stats;
                returning True passes the remaining items through untouched.
        """
        stats = EnrichmentStats()
        source: list[Any] = list(items)
        if not self.available:
            return EnrichmentResult(items=source, stats=stats)
        fetch_missing = fetch_missing and self._fetcher.configured

        output: list[Any] = []
        for chunk in chunked(source, self._chunk_size):
            if should_stop is not None and should_stop(stats):
                output.extend(source[len(output):])
                break
            chunk_stats = EnrichmentStats()
            output.extend(await self._enrich_chunk(list(chunk), media_kind, fetch_missing, chunk_stats))
            stats.add(chunk_stats)

        return EnrichmentResult(items=output, stats=stats)

    # ===============================
    #          CHUNK PIPELINE
    # ===============================

    async def _enrich_chunk(
        self,
        chunk: list[Any],
        media_kind: Optional[MediaKind],
        fetch_missing: bool,
        stats: EnrichmentStats,
    ) -> list[Any]:
        result = list(chunk)
        pending: list[_Pending] = []

        for index, item in enumerate(chunk):
            stats.processed += 1
            tmdb_id = catalog_id(item)
            if tmdb_id is None:
                stats.missing_mapping += 1
                continue
            if item.get("imdb_rating") is not None:
                stats.cached_ratings += 1
                continue
            kind = media_kind or MediaKind.from_string(item.get("media_type")) or MediaKind.MOVIE
            pending.append(_Pending(index=index, item=item, tmdb_id=tmdb_id, media_kind=kind))

        if not pending:
            return result

        mapped = await self._resolve_mappings(pending)
        stats.missing_mapping += len(pending) - len(mapped)
        if not mapped:
            return result

        ratings = await self._resolve_ratings(
            {p.imdb_id for p in mapped}, fetch_missing, stats
        )

        for p in mapped:
            enriched = dict(p.item)
            enriched["imdb_id"] = p.imdb_id
            rating = ratings.get(p.imdb_id)
            if rating is None:
                stats.missing_ratings += 1
            else:
                enriched["imdb_rating"] = rating
            result[p.index] = enriched
        return result

    async def _resolve_mappings(self, pending: list[_Pending]) -> list[_Pending]:
        """Fill imdb_id on pending items from the cache, then TMDB. Returns the mapped ones."""
        by_kind: dict[MediaKind, list[_Pending]] = {}
        for p in pending:
            by_kind.setdefault(p.media_kind, []).append(p)

        kinds = list(by_kind)
        cached_per_kind = await asyncio.gather(
            *(self._cache.get_id_mappings(kind, [p.tmdb_id for p in by_kind[kind]]) for kind in kinds)
        )

        unresolved: list[_Pending] = []
        for kind, cached in zip(kinds, cached_per_kind):
            for p in by_kind[kind]:
                record = cached.get(p.tmdb_id)
                if record is None:
                    unresolved.append(p)
                elif not record.is_known_absent:
                    p.imdb_id = record.imdb_id

        if unresolved:
            lookups = await asyncio.gather(
                *(self._tmdb.fetch_imdb_id(p.media_kind, p.tmdb_id) for p in unresolved),
                return_exceptions=True,
            )
            discovered: dict[MediaKind, dict[int, Optional[str]]] = {}
            for p, lookup in zip(unresolved, lookups):
                if isinstance(lookup, BaseException):
                    logger.error("IMDb ID lookup failed for %s %d: %s", p.media_kind, p.tmdb_id, lookup)
                    continue
                if not isinstance(lookup, ImdbIdLookup) or not lookup.resolved:
                    continue
                # Known-absent answers are cached too, so they are not re-fetched every run.
                discovered.setdefault(p.media_kind, {})[p.tmdb_id] = lookup.imdb_id
                p.imdb_id = lookup.imdb_id

            if discovered:
                await asyncio.gather(
                    *(self._cache.set_id_mappings(kind, mappings) for kind, mappings in discovered.items())
                )

        return [p for p in pending if p.imdb_id]

    async def _resolve_ratings(
        self,
        imdb_ids: set[str],
        fetch_missing: bool,
        stats: EnrichmentStats,
    ) -> dict[str, float]:
        ratings = await self._cache.get_ratings(imdb_ids)
        stats.cached_ratings += len(ratings)

        missing = [imdb_id for imdb_id in imdb_ids if imdb_id not in ratings]
        if not missing or not fetch_missing:
            return ratings

        fetched = await asyncio.gather(
            *(self._fetcher.fetch_rating(imdb_id) for imdb_id in missing),
            return_exceptions=True,
        )
        new_ratings: dict[str, float] = {}
        for imdb_id, rating in zip(missing, fetched):
            if isinstance(rating, BaseException):
                logger.error("Rating fetch failed for %s: %s", imdb_id, rating)
                continue
            if rating is not None:
                new_ratings[imdb_id] = rating

        if new_ratings:
            stats.fetched_ratings += len(new_ratings)
            await self._cache.set_ratings(new_ratings)
            ratings.update(new_ratings)
        return ratings
