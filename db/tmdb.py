"""
TMDB API client for popular listings, external IDs, show details and credits.

Uses a shared httpx.AsyncClient with the API key passed as a query parameter.
Enrichment-path calls never raise: transport errors, non-2xx responses and
malformed bodies are logged and returned as empty / unresolved results.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from implementation.classes.enums import MediaKind

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
_SHOW_DETAIL_TIMEOUT = 30.0   # seconds; aborts the request on expiry


@dataclass(frozen=True, slots=True)
class ImdbIdLookup:
    """
    Result of an external-IDs lookup.

    resolved is False when the catalog call failed, so the answer is unknown.
    A resolved lookup with imdb_id None means the title has no IMDb ID.
    """
    imdb_id: Optional[str]
    resolved: bool

    @property
    def is_known_absent(self) -> bool:
        return self.resolved and not self.imdb_id


def normalize_listing_item(raw: dict[str, Any], media_kind: MediaKind) -> dict[str, Any]:
    """Tag a catalog result with its media type and fill both title and name."""
    item = dict(raw)
    item["media_type"] = media_kind.value
    item["title"] = raw.get("title") or raw.get("name")
    item["name"] = raw.get("name") or raw.get("title")
    return item


class TmdbClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        base_url: str = TMDB_BASE_URL,
        show_detail_timeout: float = _SHOW_DETAIL_TIMEOUT,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._show_detail_timeout = show_detail_timeout

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get_json(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Optional[dict[str, Any]]:
        """GET a TMDB endpoint and return the JSON object, or None on any failure."""
        query = {"api_key": self._api_key, **(params or {})}
        request_kwargs: dict[str, Any] = {"params": query}
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        try:
            response = await self._http.get(f"{self._base_url}{path}", **request_kwargs)
        except httpx.TimeoutException:
            logger.error("TMDB request timed out: %s", path)
            return None
        except httpx.HTTPError as exc:
            logger.error("TMDB transport error on %s: %s", path, exc)
            return None

        if response.status_code == 429:
            logger.warning("TMDB rate-limited on %s", path)
            return None
        if not response.is_success:
            logger.error("TMDB %s returned %d", path, response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("TMDB %s returned a non-JSON body", path)
            return None
        return data if isinstance(data, dict) else None

    # ===============================
    #        ENRICHMENT PATH
    # ===============================

    async def fetch_popular_page(self, media_kind: MediaKind, page: int) -> list[dict[str, Any]]:
        """One page of popular titles for media_kind, tagged with media_type. Empty on failure."""
        data = await self._get_json(f"/{media_kind.value}/popular", {"page": page})
        if not data:
            return []
        results = data.get("results")
        if not isinstance(results, list):
            return []
        return [
            normalize_listing_item(raw, media_kind)
            for raw in results
            if isinstance(raw, dict) and isinstance(raw.get("id"), int)
        ]

    async def fetch_imdb_id(self, media_kind: MediaKind, tmdb_id: int) -> ImdbIdLookup:
        """Look up the IMDb ID for a catalog title via its external_ids endpoint."""
        data = await self._get_json(f"/{media_kind.value}/{tmdb_id}/external_ids")
        if data is None:
            return ImdbIdLookup(imdb_id=None, resolved=False)
        imdb_id = data.get("imdb_id")
        if not isinstance(imdb_id, str) or not imdb_id.strip():
            return ImdbIdLookup(imdb_id=None, resolved=True)
        return ImdbIdLookup(imdb_id=imdb_id.strip(), resolved=True)

    # ===============================
    #          READ PATHS
    # ===============================

    async def fetch_popular(self, media_kind: MediaKind, limit: int = 20) -> list[dict[str, Any]]:
        """The first `limit` popular titles, fetching as many 20-item pages as needed."""
        pages_needed = max(1, (limit + 19) // 20)
        pages = await asyncio.gather(
            *(self.fetch_popular_page(media_kind, page) for page in range(1, pages_needed + 1))
        )
        return [item for page_items in pages for item in page_items][:limit]

    async def fetch_show_details(self, media_kind: MediaKind, tmdb_id: int) -> Optional[dict[str, Any]]:
        """Show details with a hard timeout. None when the call fails or times out."""
        data = await self._get_json(
            f"/{media_kind.value}/{tmdb_id}",
            timeout=self._show_detail_timeout,
        )
        if not data or "id" not in data:
            return None
        show = dict(data)
        show["media_type"] = media_kind.value
        if media_kind is MediaKind.MOVIE:
            show["name"] = data.get("title")
        else:
            show["title"] = data.get("name")
        return show

    async def fetch_person_credits(self, person_id: int) -> Optional[list[dict[str, Any]]]:
        """
        Combined movie + tv acting credits for a person, normalized for ranking.

        Returns None if either credits call fails.
        """
        movie_data, tv_data = await asyncio.gather(
            self._get_json(f"/person/{person_id}/movie_credits"),
            self._get_json(f"/person/{person_id}/tv_credits"),
        )
        if movie_data is None or tv_data is None:
            return None

        credits: list[dict[str, Any]] = []
        for raw in movie_data.get("cast") or []:
            credits.append({
                "id": raw.get("id"),
                "title": raw.get("title"),
                "name": raw.get("title"),
                "overview": raw.get("overview") or "",
                "poster_path": raw.get("poster_path"),
                "backdrop_path": raw.get("backdrop_path"),
                "release_date": raw.get("release_date"),
                "vote_average": raw.get("vote_average") or 0,
                "vote_count": raw.get("vote_count"),
                "popularity": raw.get("popularity"),
                "revenue": raw.get("revenue") or 0,
                "order": raw.get("order") if raw.get("order") is not None else 999,
                "media_type": MediaKind.MOVIE.value,
            })
        for raw in tv_data.get("cast") or []:
            credits.append({
                "id": raw.get("id"),
                "title": raw.get("name"),
                "name": raw.get("name"),
                "overview": raw.get("overview") or "",
                "poster_path": raw.get("poster_path"),
                "backdrop_path": raw.get("backdrop_path"),
                "first_air_date": raw.get("first_air_date"),
                "vote_average": raw.get("vote_average") or 0,
                "vote_count": raw.get("vote_count"),
                "popularity": raw.get("popularity"),
                "revenue": 0,
                "order": raw.get("order") if raw.get("order") is not None else 999,
                "episode_count": raw.get("episode_count"),
                "media_type": MediaKind.SERIES.value,
            })

        seen: set[tuple[str, Any]] = set()
        unique: list[dict[str, Any]] = []
        for credit in credits:
            key = (credit["media_type"], credit["id"])
            if key in seen:
                continue
            seen.add(key)
            unique.append(credit)
        return unique
