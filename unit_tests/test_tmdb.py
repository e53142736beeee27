"""Unit tests for db.tmdb (catalog API client)."""

import httpx
import pytest

from db.tmdb import TmdbClient, normalize_listing_item
from implementation.classes.enums import MediaKind


def _client(handler, **kwargs) -> TmdbClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TmdbClient(http, "tmdb-key", **kwargs)


@pytest.mark.asyncio
async def test_fetch_popular_page_tags_media_type_and_titles() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"results": [{"id": 1396, "name": "Breaking Bad"}, {"title": "no id"}]})

    items = await _client(handler).fetch_popular_page(MediaKind.SERIES, 3)

    assert items == [{"id": 1396, "name": "Breaking Bad", "title": "Breaking Bad", "media_type": "tv"}]
    assert seen[0].url.path == "/3/tv/popular"
    assert seen[0].url.params["page"] == "3"
    assert seen[0].url.params["api_key"] == "tmdb-key"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500),
        httpx.Response(429),
        httpx.Response(200, json={"results": "nope"}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_fetch_popular_page_failures_return_empty(response: httpx.Response) -> None:
    assert await _client(lambda request: response).fetch_popular_page(MediaKind.MOVIE, 1) == []


@pytest.mark.asyncio
async def test_fetch_imdb_id_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/3/movie/27205/external_ids"
        return httpx.Response(200, json={"imdb_id": "tt1375666"})

    lookup = await _client(handler).fetch_imdb_id(MediaKind.MOVIE, 27205)
    assert lookup.resolved and lookup.imdb_id == "tt1375666"
    assert not lookup.is_known_absent


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"imdb_id": None}, {"imdb_id": ""}, {}])
async def test_fetch_imdb_id_known_absent(payload) -> None:
    lookup = await _client(lambda request: httpx.Response(200, json=payload)).fetch_imdb_id(MediaKind.SERIES, 1)
    assert lookup.is_known_absent


@pytest.mark.asyncio
async def test_fetch_imdb_id_failure_is_unresolved() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    lookup = await _client(handler).fetch_imdb_id(MediaKind.MOVIE, 1)
    assert lookup.resolved is False
    assert lookup.imdb_id is None
    assert not lookup.is_known_absent


@pytest.mark.asyncio
async def test_fetch_show_details_applies_timeout() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": 27205, "title": "Inception"})

    show = await _client(handler, show_detail_timeout=30.0).fetch_show_details(MediaKind.MOVIE, 27205)

    assert show == {"id": 27205, "title": "Inception", "name": "Inception", "media_type": "movie"}
    assert seen[0].extensions["timeout"]["read"] == 30.0


@pytest.mark.asyncio
async def test_fetch_show_details_timeout_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    assert await _client(handler).fetch_show_details(MediaKind.SERIES, 1) is None


@pytest.mark.asyncio
async def test_fetch_popular_spans_pages_and_trims() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        return httpx.Response(200, json={"results": [{"id": page * 100 + i} for i in range(20)]})

    items = await _client(handler).fetch_popular(MediaKind.MOVIE, limit=25)

    assert len(items) == 25
    assert items[0]["id"] == 100
    assert items[-1]["id"] == 204


@pytest.mark.asyncio
async def test_fetch_person_credits_normalizes_and_dedupes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/movie_credits"):
            return httpx.Response(200, json={"cast": [
                {"id": 27205, "title": "Inception", "order": 0, "revenue": 836_800_000},
                {"id": 27205, "title": "Inception", "order": 0},
                {"id": 11324, "title": "Shutter Island"},
            ]})
        return httpx.Response(200, json={"cast": [{"id": 1396, "name": "Some Show", "episode_count": 2}]})

    credits = await _client(handler).fetch_person_credits(6193)

    assert [(c["media_type"], c["id"]) for c in credits] == [("movie", 27205), ("movie", 11324), ("tv", 1396)]
    assert credits[1]["order"] == 999
    assert credits[2]["revenue"] == 0
    assert credits[2]["episode_count"] == 2
    assert credits[2]["title"] == "Some Show"


@pytest.mark.asyncio
async def test_fetch_person_credits_failure_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/tv_credits"):
            return httpx.Response(404)
        return httpx.Response(200, json={"cast": []})

    assert await _client(handler).fetch_person_credits(1) is None


def test_normalize_listing_item_fills_missing_title_fields() -> None:
    item = normalize_listing_item({"id": 1, "title": "Inception"}, MediaKind.MOVIE)
    assert item["name"] == "Inception"
    assert item["media_type"] == "movie"
