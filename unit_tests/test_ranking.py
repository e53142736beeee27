"""Unit tests for implementation.ranking."""

import pytest

from implementation.ranking import (
    MISSING_CAST_ORDER,
    base_score,
    box_office_score,
    comprehensive_score,
    episode_count_penalty,
    review_score,
    role_score,
    sort_by_comprehensive_score,
    sort_by_date,
    sort_by_popularity,
)


def _series(**fields) -> dict:
    return {"media_type": "tv", "poster_path": "/p.jpg", "popularity": 40, "vote_average": 7, "vote_count": 300, **fields}


# ================================
#           COMPONENTS
# ================================

def test_review_score_adds_saturating_vote_volume() -> None:
    assert review_score({"vote_average": 8, "vote_count": 2000}) == pytest.approx(130)
    assert review_score({"vote_average": 8, "vote_count": 500}) == pytest.approx(105)
    assert review_score({}) == 0


def test_box_office_is_log_scaled_and_zero_for_series() -> None:
    assert box_office_score({"media_type": "movie", "revenue": 1_000_000_000}) == pytest.approx(90, abs=1e-6)
    assert box_office_score({"media_type": "movie"}) == 0
    assert box_office_score({"media_type": "tv", "revenue": 1_000_000_000}) == 0


def test_role_score_follows_billing_order() -> None:
    assert role_score({"order": 0}) == 100
    assert role_score({"order": 5}) == 50
    assert role_score({"order": 25}) == 0
    assert role_score({}) == role_score({"order": MISSING_CAST_ORDER}) == 0


@pytest.mark.parametrize(
    "episodes, multiplier",
    [(0, 0.1), (1, 0.1), (2, 0.3), (3, 0.3), (4, 0.5), (5, 0.5), (6, 0.7), (9, 0.7), (10, 1.0), (120, 1.0)],
)
def test_episode_penalty_bands(episodes: int, multiplier: float) -> None:
    assert episode_count_penalty(_series(episode_count=episodes)) == multiplier


def test_single_episode_series_scores_ten_percent() -> None:
    item = _series(episode_count=1)
    assert comprehensive_score(item) == pytest.approx(base_score(item) * 0.1)


def test_ten_episode_series_scores_full() -> None:
    item = _series(episode_count=10)
    assert comprehensive_score(item) == pytest.approx(base_score(item))


def test_movies_and_unknown_episode_counts_are_not_penalized() -> None:
    movie = {"media_type": "movie", "popularity": 10, "episode_count": 1}
    assert episode_count_penalty(movie) == 1.0
    assert episode_count_penalty(_series()) == 1.0
    assert comprehensive_score(movie) == pytest.approx(base_score(movie))


# ================================
#            SORTING
# ================================

def test_poster_presence_dominates_score() -> None:
    a = {
        "id": "A", "media_type": "movie", "poster_path": "/a.jpg", "popularity": 50,
        "vote_average": 8, "vote_count": 2000, "revenue": 1_000_000, "order": 0,
    }
    b = {"id": "B", "media_type": "movie", "popularity": 999, "vote_average": 10, "vote_count": 50_000}

    assert comprehensive_score(b) > comprehensive_score(a)
    assert [item["id"] for item in sort_by_comprehensive_score([b, a])] == ["A", "B"]


def test_sort_by_score_orders_descending_within_poster_group() -> None:
    low = {"id": 1, "poster_path": "/1.jpg", "popularity": 1}
    high = {"id": 2, "poster_path": "/2.jpg", "popularity": 100}
    assert [item["id"] for item in sort_by_comprehensive_score([low, high])] == [2, 1]


def test_sort_by_score_does_not_mutate_input() -> None:
    items = [{"id": 1, "popularity": 1}, {"id": 2, "popularity": 2}]
    sort_by_comprehensive_score(items)
    assert [item["id"] for item in items] == [1, 2]


def test_sort_by_popularity_treats_close_values_as_ties() -> None:
    items = [
        {"id": 1, "poster_path": "/1.jpg", "popularity": 10.05, "vote_count": 10},
        {"id": 2, "poster_path": "/2.jpg", "popularity": 10.0, "vote_count": 500},
        {"id": 3, "poster_path": "/3.jpg", "popularity": 30.0, "vote_count": 1},
        {"id": 4, "popularity": 99.0, "vote_count": 9999},
    ]
    assert [item["id"] for item in sort_by_popularity(items)] == [3, 2, 1, 4]


def test_sort_by_date_newest_first_undated_last() -> None:
    items = [
        {"id": 1, "poster_path": "/1.jpg", "release_date": "2010-07-16"},
        {"id": 2, "poster_path": "/2.jpg"},
        {"id": 3, "poster_path": "/3.jpg", "first_air_date": "2019-03-01"},
        {"id": 4, "release_date": "2024-01-01"},
    ]
    assert [item["id"] for item in sort_by_date(items)] == [3, 1, 2, 4]
