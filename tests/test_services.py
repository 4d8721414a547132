"""Tests for proximity ranking."""
import pytest

from spot_locator.errors import NoPosition
from spot_locator.geo import haversine_m
from spot_locator.models import RankOptions
from spot_locator.services import find_nearby, rank

from conftest import make_position, make_spot


def test_sample_ranking_from_kukatpally(hyderabad_spots, at_kukatpally):
    results = rank(at_kukatpally, hyderabad_spots)
    assert [r.spot.name for r in results] == [
        "Kukatpally Parking Zone",
        "Metro Station Parking",
        "KPHB Colony Parking",
        "Forum Mall Parking",
    ]
    assert results[0].distance_m == 0.0
    for r in results:
        assert r.distance_m == pytest.approx(
            haversine_m(17.4947, 78.3996, r.spot.point.latitude, r.spot.point.longitude)
        )
    assert 150 < results[1].distance_m < 190
    assert 370 < results[2].distance_m < 420
    assert 750 < results[3].distance_m < 820


def test_each_spot_exactly_once_and_sorted(hyderabad_spots, at_kukatpally):
    results = rank(at_kukatpally, hyderabad_spots)
    assert sorted(r.spot.id for r in results) == ["1", "2", "3", "4"]
    distances = [r.distance_m for r in results]
    assert distances == sorted(distances)


def test_ties_broken_by_id():
    spots = [make_spot("c", 1.0, 1.0), make_spot("a", 1.0, 1.0), make_spot("b", 1.0, 1.0)]
    results = rank(make_position(0.0, 0.0), spots)
    assert [r.spot.id for r in results] == ["a", "b", "c"]


def test_ranking_is_deterministic(hyderabad_spots, at_kukatpally):
    assert rank(at_kukatpally, hyderabad_spots) == rank(at_kukatpally, list(reversed(hyderabad_spots)))


def test_inputs_not_mutated(hyderabad_spots, at_kukatpally):
    spots = list(hyderabad_spots)
    rank(at_kukatpally, spots, RankOptions(max_results=1, exclude_full=True))
    assert spots == hyderabad_spots


def test_no_position():
    with pytest.raises(NoPosition):
        rank(None, [make_spot("1", 0.0, 0.0)])


def test_full_spot_kept_by_default():
    spots = [make_spot("near", 0.0, 0.001, available=0), make_spot("far", 0.0, 0.01)]
    results = rank(make_position(0.0, 0.0), spots)
    assert [r.spot.id for r in results] == ["near", "far"]


def test_exclude_full_omits_full_spots():
    spots = [make_spot("near", 0.0, 0.001, available=0), make_spot("far", 0.0, 0.01)]
    results = rank(make_position(0.0, 0.0), spots, RankOptions(exclude_full=True))
    assert [r.spot.id for r in results] == ["far"]


def test_max_results_keeps_closest(hyderabad_spots, at_kukatpally):
    results = rank(at_kukatpally, hyderabad_spots, RankOptions(max_results=2))
    assert [r.spot.id for r in results] == ["1", "4"]


def test_radius_filter(hyderabad_spots, at_kukatpally):
    results = rank(at_kukatpally, hyderabad_spots, RankOptions(radius_m=500))
    assert [r.spot.id for r in results] == ["1", "4", "2"]


def test_query_filter_is_case_insensitive(hyderabad_spots, at_kukatpally):
    results = rank(at_kukatpally, hyderabad_spots, RankOptions(query="  MALL "))
    assert [r.spot.id for r in results] == ["3"]


def test_empty_when_nothing_matches(hyderabad_spots, at_kukatpally):
    assert rank(at_kukatpally, hyderabad_spots, RankOptions(query="airport")) == []


def test_antimeridian_neighbour_ranked_first():
    spots = [make_spot("east", 0.0, 179.9), make_spot("west", 0.0, -170.0)]
    results = rank(make_position(0.0, -179.9), spots)
    assert results[0].spot.id == "east"
    assert results[0].distance_m == pytest.approx(22_239, rel=1e-3)


def test_find_nearby(hyderabad_spots):
    results = find_nearby(hyderabad_spots, lat=17.4947, lon=78.3996, k=3)
    assert [r.spot.id for r in results] == ["1", "4", "2"]
    assert find_nearby(hyderabad_spots, lat=17.4947, lon=78.3996, k=0)[0].spot.id == "1"
