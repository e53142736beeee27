"""
ranking.py - Comprehensive show ranking.

Blends hype (popularity), reviews (vote average + vote volume), box office
(movies only) and role importance (cast billing order) into one comparable
score. Series with very few episodes are penalized so guest appearances do not
outrank long-running roles.

Items are catalog dicts as returned by the catalog API (movie or tv). All
functions here are pure: no I/O, no mutation of the input.
"""

import math
from functools import cmp_to_key
from typing import Any, Iterable, Mapping, Optional

from implementation.classes.enums import MediaKind

POPULARITY_WEIGHT = 0.25
REVIEW_WEIGHT = 0.35
BOX_OFFICE_WEIGHT = 0.25
ROLE_WEIGHT = 0.15

MISSING_CAST_ORDER = 999
_ROLE_ORDER_CAP = 10
_VOTE_COUNT_SATURATION = 1000

# (max episode count inclusive, multiplier); 10+ episodes are not penalized.
_EPISODE_PENALTY_BANDS: tuple[tuple[int, float], ...] = (
    (1, 0.1),
    (3, 0.3),
    (5, 0.5),
    (9, 0.7),
)


def _number(item: Mapping[str, Any], field: str, default: float = 0.0) -> float:
    value = item.get(field)
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _is_series(item: Mapping[str, Any]) -> bool:
    return MediaKind.from_string(item.get("media_type")) is MediaKind.SERIES


def has_poster(item: Mapping[str, Any]) -> bool:
    return bool(item.get("poster_path"))


def review_score(item: Mapping[str, Any]) -> float:
    """vote_average on a 0-100 scale plus up to 50 points for vote volume."""
    vote_average = _number(item, "vote_average")
    vote_count = _number(item, "vote_count")
    return vote_average * 10 + min(vote_count / _VOTE_COUNT_SATURATION, 1) * 50


def box_office_score(item: Mapping[str, Any]) -> float:
    """Log-scaled revenue in [0, 100]. Series never contribute revenue."""
    if _is_series(item):
        return 0.0
    revenue = max(_number(item, "revenue"), 0.0)
    return min(math.log10(revenue + 1) / 10, 1) * 100


def role_score(item: Mapping[str, Any]) -> float:
    """Billing order 0 scores 100, order 10 or later scores 0."""
    order = _number(item, "order", MISSING_CAST_ORDER)
    return max(0.0, (_ROLE_ORDER_CAP - min(order, _ROLE_ORDER_CAP)) / _ROLE_ORDER_CAP) * 100


def episode_count_penalty(item: Mapping[str, Any]) -> float:
    """
    Multiplier applied to series with few episodes.

    Movies, and series whose episode count is unknown, are never penalized.
    """
    if not _is_series(item):
        return 1.0
    episode_count: Optional[Any] = item.get("episode_count")
    if episode_count is None or isinstance(episode_count, bool):
        return 1.0
    try:
        episodes = int(episode_count)
    except (TypeError, ValueError):
        return 1.0
    for max_episodes, multiplier in _EPISODE_PENALTY_BANDS:
        if episodes <= max_episodes:
            return multiplier
    return 1.0


def base_score(item: Mapping[str, Any]) -> float:
    """Weighted blend before any episode penalty."""
    return (
        POPULARITY_WEIGHT * _number(item, "popularity")
        + REVIEW_WEIGHT * review_score(item)
        + BOX_OFFICE_WEIGHT * box_office_score(item)
        + ROLE_WEIGHT * role_score(item)
    )


def comprehensive_score(item: Mapping[str, Any]) -> float:
    return base_score(item) * episode_count_penalty(item)


def sort_by_comprehensive_score(items: Iterable[Mapping[str, Any]]) -> list:
    """
    Return a new list ordered by poster presence first, then score descending.

    Items without a poster always sort after items with one, whatever their score.
    """
    return sorted(items, key=lambda item: (not has_poster(item), -comprehensive_score(item)))


def sort_by_popularity(items: Iterable[Mapping[str, Any]]) -> list:
    """
    Poster presence, then popularity, then vote count, then vote average.

    Popularity values within 0.1 of each other are treated as equal, so the
    comparison is done pairwise rather than with a key.
    """
    def _compare(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
        if has_poster(a) != has_poster(b):
            return -1 if has_poster(a) else 1
        pop_a, pop_b = _number(a, "popularity"), _number(b, "popularity")
        if abs(pop_a - pop_b) > 0.1:
            return -1 if pop_a > pop_b else 1
        votes_a, votes_b = _number(a, "vote_count"), _number(b, "vote_count")
        if votes_a != votes_b:
            return -1 if votes_a > votes_b else 1
        avg_a, avg_b = _number(a, "vote_average"), _number(b, "vote_average")
        if avg_a != avg_b:
            return -1 if avg_a > avg_b else 1
        return 0

    return sorted(items, key=cmp_to_key(_compare))


def sort_by_date(items: Iterable[Mapping[str, Any]]) -> list:
    """Poster presence, then newest release / first-air date first. Undated items go last."""
    materialized = list(items)
    dated = sorted(
        (item for item in materialized if item.get("release_date") or item.get("first_air_date")),
        key=lambda item: item.get("release_date") or item.get("first_air_date"),
        reverse=True,
    )
    undated = [item for item in materialized if not (item.get("release_date") or item.get("first_air_date"))]
    # Stable sort on poster presence keeps the date order inside each group.
    return sorted(dated + undated, key=lambda item: not has_poster(item))
