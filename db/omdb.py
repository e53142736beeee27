"""
OMDb client for IMDb ratings.

Every attempted call is counted in the per-day usage counter (UTC date) before
the request goes out, whether or not it succeeds, so the counter tracks quota
consumption rather than successes. fetch_rating never raises.
"""

import logging
from typing import Optional

import httpx

from db.rating_cache import RatingCache
from implementation.misc.helpers import parse_rating, utc_date_key

logger = logging.getLogger(__name__)

OMDB_BASE_URL = "https://www.omdbapi.com/"


class OmdbRatingFetcher:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        cache: RatingCache,
        base_url: str = OMDB_BASE_URL,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._cache = cache
        self._base_url = base_url

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_rating(self, imdb_id: str) -> Optional[float]:
        """
        Fetch the IMDb rating for imdb_id.

        Returns None when the API key is missing, the call fails, or the body
        does not carry a positive rating in [0, 10].
        """
        if not self._api_key or not imdb_id:
            return None

        usage = await self._cache.increment_daily_usage(utc_date_key())
        if usage is not None:
            logger.debug("OMDb usage today: %d", usage)

        try:
            response = await self._http.get(
                self._base_url,
                params={"i": imdb_id, "apikey": self._api_key},
            )
        except httpx.HTTPError as exc:
            logger.error("OMDb transport error for %s: %s", imdb_id, exc)
            return None

        if not response.is_success:
            if response.status_code in (401, 429):
                # OMDb answers 401 once the daily request limit is reached.
                logger.warning("OMDb refused %s with %d", imdb_id, response.status_code)
            else:
                logger.error("OMDb returned %d for %s", response.status_code, imdb_id)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("OMDb returned a non-JSON body for %s", imdb_id)
            return None

        if not isinstance(data, dict) or data.get("Response") != "True":
            return None

        rating = parse_rating(data.get("imdbRating"))
        if rating is None or rating <= 0:
            return None
        return rating
