import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from api.context import AppContext
from db.rating_cache import CacheUnavailable
from db.redis import check_redis
from implementation.classes.enums import MediaKind
from implementation.misc.helpers import utc_date_key
from implementation.ranking import sort_by_comprehensive_score, sort_by_date, sort_by_popularity
from implementation.settings import Settings

logger = logging.getLogger(__name__)

_SORTERS = {
    "score": sort_by_comprehensive_score,
    "popularity": sort_by_popularity,
    "date": sort_by_date,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan handler for the application context.

    Builds the shared HTTP client, Redis client and rating components once on
    startup and closes them on shutdown.
    """
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    context = AppContext.create(settings)
    app.state.context = context
    yield
    await context.aclose()


app = FastAPI(lifespan=lifespan)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def is_authorized_cron(
    settings: Settings,
    authorization: Optional[str],
    scheduler_marker: Optional[str],
) -> bool:
    """Shared-secret bearer token, the scheduler's marker header, or any non-production deployment."""
    if settings.cron_secret and authorization == f"Bearer {settings.cron_secret}":
        return True
    if scheduler_marker == "1":
        return True
    return not settings.is_production


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.get("/health")
async def health_check(context: Annotated[AppContext, Depends(get_context)]):
    """
    Health check endpoint.

    Returns:
    - redis: 'ok', 'disabled' or error message
    - imdb_cache: 'enabled' or 'disabled'
    """
    return {
        "redis": await check_redis(context.redis),
        "imdb_cache": "enabled" if context.cache.is_enabled() else "disabled",
    }


# ===============================
#            CRON
# ===============================

@app.get("/api/cron/imdb-cache")
async def run_imdb_cache_cron(
    context: Annotated[AppContext, Depends(get_context)],
    authorization: Annotated[Optional[str], Header()] = None,
    x_vercel_cron: Annotated[Optional[str], Header()] = None,
):
    """Run (or skip) today's IMDb rating population pass."""
    settings = context.settings
    if not is_authorized_cron(settings, authorization, x_vercel_cron):
        return _error(401, "Unauthorized")

    if not settings.tmdb_api_key or not settings.omdb_api_key:
        return _error(500, "TMDB_API_KEY and OMDB_API_KEY are required")

    if not context.cache.is_enabled():
        return _error(500, "Redis is not configured for the IMDb cache")

    try:
        result = await context.population_job().run()
    except CacheUnavailable:
        return _error(500, "IMDb cache state is unavailable")
    return result.to_response()


@app.get("/api/cron/imdb-cache/usage")
async def get_omdb_usage(
    context: Annotated[AppContext, Depends(get_context)],
    date: Annotated[Optional[str], Query()] = None,
    authorization: Annotated[Optional[str], Header()] = None,
    x_vercel_cron: Annotated[Optional[str], Header()] = None,
):
    """OMDb request count for a UTC date (default today)."""
    if not is_authorized_cron(context.settings, authorization, x_vercel_cron):
        return _error(401, "Unauthorized")
    date_key = date or utc_date_key()
    return {"date": date_key, "count": await context.cache.get_daily_usage(date_key)}


# ===============================
#          READ PATHS
# ===============================

@app.post("/api/shows/enrich")
async def enrich_shows(
    context: Annotated[AppContext, Depends(get_context)],
    payload: Annotated[Any, Body()] = None,
):
    """Attach imdb_id / imdb_rating to a list of shows; each item's media_type picks the endpoint."""
    shows = payload.get("shows") if isinstance(payload, dict) else None
    if not isinstance(shows, list):
        return _error(400, "Shows must be an array")

    enriched = await context.enricher.enrich_shows(shows)
    return {"shows": enriched}


@app.get("/api/shows/popular")
async def get_popular_shows(
    context: Annotated[AppContext, Depends(get_context)],
    type: Annotated[str, Query()] = "all",
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
):
    """
    Popular titles. Single-kind listings get cached IMDb ratings on the
    leading items; ratings are never fetched from OMDb on this path.
    """
    if type == "all":
        movies, series = await asyncio.gather(
            context.tmdb.fetch_popular(MediaKind.MOVIE, limit),
            context.tmdb.fetch_popular(MediaKind.SERIES, limit),
        )
        seen: set[tuple[str, int]] = set()
        combined: list[dict[str, Any]] = []
        for item in movies + series:
            key = (item["media_type"], item["id"])
            if key not in seen:
                seen.add(key)
                combined.append(item)
        combined.sort(key=lambda item: item.get("popularity") or 0, reverse=True)
        return {"results": combined[:limit]}

    media_kind = MediaKind.from_string(type)
    if media_kind is None or type not in ("movie", "tv"):
        return _error(400, 'Invalid type. Must be "all", "movie" or "tv"')

    results = await context.tmdb.fetch_popular(media_kind, limit)
    head_size = context.settings.popular_enrich_limit
    head = await context.enricher.enrich_shows(results[:head_size], media_kind, fetch_missing=False)
    return {"results": head + results[head_size:]}


@app.get("/api/shows/{media_type}/{show_id}")
async def get_show_details(
    media_type: str,
    show_id: int,
    context: Annotated[AppContext, Depends(get_context)],
):
    """Show details with IMDb ID and, when cached, IMDb rating."""
    media_kind = MediaKind.from_string(media_type)
    if media_kind is None or media_type not in ("movie", "tv"):
        return _error(400, 'Invalid type. Must be "movie" or "tv"')

    show, lookup = await asyncio.gather(
        context.tmdb.fetch_show_details(media_kind, show_id),
        context.tmdb.fetch_imdb_id(media_kind, show_id),
    )
    if show is None:
        return _error(500, "Failed to fetch show details")

    if lookup.imdb_id:
        show["imdb_id"] = lookup.imdb_id
        record = await context.cache.get_rating(lookup.imdb_id)
        if record is not None:
            show["imdb_rating"] = record.rating
    return show


@app.get("/api/actors/{person_id}/credits")
async def get_actor_credits(
    person_id: int,
    context: Annotated[AppContext, Depends(get_context)],
    sort: Annotated[str, Query()] = "score",
):
    """An actor's combined credits, ranked (score, popularity or date)."""
    sorter = _SORTERS.get(sort)
    if sorter is None:
        return _error(400, 'Invalid sort. Must be "score", "popularity" or "date"')

    credits = await context.tmdb.fetch_person_credits(person_id)
    if credits is None:
        return _error(500, "Failed to fetch actor credits")
    return {"credits": sorter(credits)}
