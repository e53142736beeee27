"""
Incremental IMDb rating population.

Warms the rating cache for the popular catalog, one run per UTC day, across a
repeating 30-day cycle. Each run resumes from the page cursors persisted by
the previous run, walks popular movie and tv pages in pairs, and feeds every
page pair through the RatingEnricher until one of these happens:

    - the run has fetched target_new_ratings new ratings (cache hits don't count)
    - both media kinds are past max_catalog_pages or returned an empty page

The cursors reset to page 1 whenever the cycle wraps to day 0. Expired entries
in the local cache tier are swept once at the start of each run. Progress is
persisted unconditionally when the run ends, so the next run resumes rather
than restarts. When the saved state cannot be read the run aborts before
claiming the lock, leaving the stored progress untouched.

Guarding against duplicate runs is two-step: the persisted lastRunDate is
checked first, then a per-day SET NX lock is claimed. Two overlapping triggers
can both pass the first check, but only one gets the lock.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from db.enrichment import EnrichmentStats, RatingEnricher
from db.rating_cache import CacheUnavailable, RatingCache
from db.tmdb import TmdbClient
from implementation.classes.enums import MediaKind, PopulationStatus
from implementation.classes.schemas import CycleState
from implementation.misc.helpers import utc_date_key
from implementation.settings import Settings

logger = logging.getLogger(__name__)

ALREADY_RAN_REASON = "Already ran today"
LOCKED_REASON = "Another run holds today's lock"
_FIRST_PAGE = 1


@dataclass(slots=True)
class PopulationResult:
    status: PopulationStatus
    day_index: int
    reason: Optional[str] = None
    movie_page: int = _FIRST_PAGE
    tv_page: int = _FIRST_PAGE
    movie_pages_scanned: int = 0
    tv_pages_scanned: int = 0
    target_new_ratings: int = 0
    stats: EnrichmentStats = field(default_factory=EnrichmentStats)

    @property
    def new_ratings(self) -> int:
        return self.stats.fetched_ratings

    def to_response(self) -> dict[str, Any]:
        """JSON body returned by the cron endpoint."""
        if self.status is PopulationStatus.SKIPPED:
            return {
                "status": self.status.value,
                "reason": self.reason,
                "dayIndex": self.day_index,
            }
        return {
            "status": self.status.value,
            "dayIndex": self.day_index,
            "moviePage": self.movie_page,
            "tvPage": self.tv_page,
            "moviePagesScanned": self.movie_pages_scanned,
            "tvPagesScanned": self.tv_pages_scanned,
            "processed": self.stats.processed,
            "cachedRatings": self.stats.cached_ratings,
            "fetchedRatings": self.stats.fetched_ratings,
            "missingRatings": self.stats.missing_ratings,
            "missingImdbId": self.stats.missing_mapping,
            "newRatings": self.new_ratings,
            "targetNewRatings": self.target_new_ratings,
        }


def next_cycle_position(state: Optional[CycleState], days_in_cycle: int) -> tuple[int, int, int]:
    """
    Compute (day_index, movie_page, tv_page) for the run after `state`.

    With no prior state the cycle starts at day 0. Wrapping to day 0 resets
    both cursors to the first page.
    A stored day index outside the cycle is taken modulo its length.
    """
    previous_day = state.day_index % days_in_cycle if state is not None else -1
    day_index = (previous_day + 1) % days_in_cycle
    if state is None or day_index == 0:
        return day_index, _FIRST_PAGE, _FIRST_PAGE
    return day_index, state.movie_page, state.tv_page


class RatingPopulationJob:
    def __init__(
        self,
        cache: RatingCache,
        tmdb: TmdbClient,
        enricher: RatingEnricher,
        settings: Settings,
    ) -> None:
        self._cache = cache
        self._tmdb = tmdb
        self._enricher = enricher
        self._days_in_cycle = settings.days_in_cycle
        self._max_pages = settings.max_catalog_pages
        self._target = settings.target_new_ratings

    async def run(self, today: Optional[str] = None) -> PopulationResult:
        """Run one day's population pass, or skip if today's run already happened."""
        today = today or utc_date_key()

        try:
            state = await self._cache.load_cycle_state()
        except CacheUnavailable:
            # Without the saved cursors a run would restart the cycle and overwrite them.
            logger.error("Rating population aborted for %s: cycle state unreadable", today)
            raise

        if state is not None and state.last_run_date == today:
            day_index = state.day_index % self._days_in_cycle
            logger.info("Rating population already ran for %s (day %d)", today, day_index)
            return PopulationResult(
                status=PopulationStatus.SKIPPED,
                day_index=day_index,
                reason=ALREADY_RAN_REASON,
            )

        if not await self._cache.acquire_run_lock(today):
            day_index = state.day_index % self._days_in_cycle if state is not None else 0
            logger.warning("Rating population lock for %s not acquired; skipping", today)
            return PopulationResult(
                status=PopulationStatus.SKIPPED,
                day_index=day_index,
                reason=LOCKED_REASON,
            )

        swept = self._cache.memory.sweep()
        if swept:
            logger.debug("Dropped %d expired local cache entries", swept)

        day_index, movie_page, tv_page = next_cycle_position(state, self._days_in_cycle)
        result = PopulationResult(
            status=PopulationStatus.OK,
            day_index=day_index,
            movie_page=movie_page,
            tv_page=tv_page,
            target_new_ratings=self._target,
        )
        logger.info(
            "Rating population starting: day %d, movie page %d, tv page %d, target %d",
            day_index, movie_page, tv_page, self._target,
        )

        try:
            await self._scan(result)
        finally:
            # Persist whatever progress was made, even if the target was missed.
            await self._cache.set_cycle_state(
                CycleState(
                    day_index=result.day_index,
                    last_run_date=today,
                    movie_page=result.movie_page,
                    tv_page=result.tv_page,
                )
            )

        logger.info(
            "Rating population finished: %d new ratings, %d cached, %d missing rating, "
            "%d missing IMDb ID, %d movie pages, %d tv pages",
            result.new_ratings,
            result.stats.cached_ratings,
            result.stats.missing_ratings,
            result.stats.missing_mapping,
            result.movie_pages_scanned,
            result.tv_pages_scanned,
        )
        return result

    async def _scan(self, result: PopulationResult) -> None:
        movie_exhausted = False
        tv_exhausted = False

        while result.new_ratings < self._target:
            fetch_movies = not movie_exhausted and result.movie_page <= self._max_pages
            fetch_tv = not tv_exhausted and result.tv_page <= self._max_pages
            if not fetch_movies and not fetch_tv:
                break

            movie_items, tv_items = await asyncio.gather(
                self._page(MediaKind.MOVIE, result.movie_page, fetch_movies),
                self._page(MediaKind.SERIES, result.tv_page, fetch_tv),
            )

            if movie_items:
                result.movie_pages_scanned += 1
                result.movie_page += 1
            elif fetch_movies:
                movie_exhausted = True
            if tv_items:
                result.tv_pages_scanned += 1
                result.tv_page += 1
            elif fetch_tv:
                tv_exhausted = True

            titles = movie_items + tv_items
            if not titles:
                break

            remaining = self._target - result.new_ratings
            page_result = await self._enricher.enrich(
                titles,
                should_stop=lambda stats: stats.fetched_ratings >= remaining,
            )
            result.stats.add(page_result.stats)

    async def _page(self, media_kind: MediaKind, page: int, enabled: bool) -> list[dict[str, Any]]:
        if not enabled:
            return []
        return await self._tmdb.fetch_popular_page(media_kind, page)
