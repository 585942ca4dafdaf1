"""Tests for filter chain: each filter in isolation + full chain."""

from datetime import datetime, time

import pytest

from src.core.geo import haversine_km
from src.core.schemas import Category, Coordinate, OpenInterval, Venue
from src.pipeline.matcher import (
    CategoryFilter,
    DistanceFilter,
    MinRatingFilter,
    OpenNowFilter,
    PriceFilter,
    price_ceiling,
    run_filter_chain,
)

HOME = Coordinate(latitude=40.7400, longitude=-73.9900)

# Monday
MORNING = datetime(2026, 3, 2, 8, 0)
NOON = datetime(2026, 3, 2, 12, 0)


def _venue(
    *,
    venue_id: str = "1",
    category: Category = Category.COFFEE,
    latitude: float = 40.7400,
    longitude: float = -73.9900,
    price_tier: int = 1,
    rating: float = 0.0,
    opening_hours: dict[int, list[OpenInterval]] | None = None,
) -> Venue:
    return Venue(
        venue_id=venue_id,
        name=f"Venue {venue_id}",
        category=category,
        location=Coordinate(latitude=latitude, longitude=longitude),
        price_tier=price_tier,
        rating=rating,
        opening_hours=opening_hours or {},
    )


def _open_from_ten() -> dict[int, list[OpenInterval]]:
    return {day: [OpenInterval(opens=time(10), closes=time(22))] for day in range(7)}


class TestDistanceFilter:
    def test_keeps_nearby(self) -> None:
        f = DistanceFilter(HOME, 5.0)
        near = _venue(latitude=40.7490)  # ~1 km
        assert f([near]) == [near]

    def test_drops_far(self) -> None:
        f = DistanceFilter(HOME, 5.0)
        far = _venue(latitude=40.8400)  # ~11 km
        assert f([far]) == []

    def test_limit_is_exclusive(self) -> None:
        venue = _venue(latitude=40.7500)
        f = DistanceFilter(HOME, haversine_km(HOME, venue.location))
        assert f([venue]) == []


class TestCategoryFilter:
    def test_no_categories_is_noop(self) -> None:
        venues = [_venue(venue_id="1"), _venue(venue_id="2", category=Category.BARS)]
        assert CategoryFilter()(venues) == venues

    def test_keeps_requested(self) -> None:
        venues = [
            _venue(venue_id="1"),
            _venue(venue_id="2", category=Category.BARS),
            _venue(venue_id="3", category=Category.FITNESS),
        ]
        result = CategoryFilter([Category.BARS, Category.FITNESS])(venues)
        assert [v.venue_id for v in result] == ["2", "3"]


class TestPriceFilter:
    def test_ceiling_is_inclusive(self) -> None:
        venues = [_venue(venue_id=str(tier), price_tier=tier) for tier in range(4)]
        result = PriceFilter(2)(venues)
        assert [v.venue_id for v in result] == ["0", "1", "2"]

    def test_free_always_kept(self) -> None:
        free = _venue(price_tier=0)
        assert PriceFilter(0)([free]) == [free]

    def test_default_keeps_everything(self) -> None:
        venues = [_venue(venue_id=str(tier), price_tier=tier) for tier in range(4)]
        assert PriceFilter()(venues) == venues


class TestPriceCeiling:
    @pytest.mark.parametrize(
        ("sensitivity", "ceiling"),
        [(0.0, 3), (0.4, 2), (0.5, 2), (0.8, 1), (1.0, 1)],
    )
    def test_from_sensitivity(self, sensitivity: float, ceiling: int) -> None:
        assert price_ceiling(sensitivity) == ceiling


class TestMinRatingFilter:
    def test_zero_is_noop(self) -> None:
        venues = [_venue(rating=0.0), _venue(venue_id="2", rating=3.0)]
        assert MinRatingFilter()(venues) == venues

    def test_drops_below_floor(self) -> None:
        venues = [
            _venue(venue_id="1", rating=3.9),
            _venue(venue_id="2", rating=4.0),
            _venue(venue_id="3", rating=4.6),
        ]
        result = MinRatingFilter(4.0)(venues)
        assert [v.venue_id for v in result] == ["2", "3"]

    def test_unrated_dropped_when_floor_set(self) -> None:
        assert MinRatingFilter(1.0)([_venue(rating=0.0)]) == []


class TestOpenNowFilter:
    def test_listed_hours(self) -> None:
        venue = _venue(opening_hours=_open_from_ten())
        assert OpenNowFilter(MORNING)([venue]) == []
        assert OpenNowFilter(NOON)([venue]) == [venue]

    def test_closing_time_is_exclusive(self) -> None:
        venue = _venue(opening_hours=_open_from_ten())
        assert OpenNowFilter(datetime(2026, 3, 2, 22, 0))([venue]) == []

    def test_estimated_hours_when_none_listed(self) -> None:
        # estimated coffee hours start early, nightlife hours start late
        cafe = _venue(venue_id="cafe", category=Category.COFFEE)
        club = _venue(venue_id="club", category=Category.NIGHTLIFE)
        result = OpenNowFilter(NOON)([cafe, club])
        assert [v.venue_id for v in result] == ["cafe"]


class TestRunFilterChain:
    def test_full_chain(self) -> None:
        venues = [
            _venue(venue_id="1"),
            _venue(venue_id="2", latitude=40.8400),
            _venue(venue_id="3", category=Category.BARS),
            _venue(venue_id="4", category=Category.COFFEE, latitude=40.7450),
            _venue(venue_id="5", price_tier=3),
        ]
        filters = [
            DistanceFilter(HOME, 5.0),
            CategoryFilter([Category.COFFEE]),
            PriceFilter(2),
        ]
        result = run_filter_chain(venues, filters)
        assert [v.venue_id for v in result] == ["1", "4"]

    def test_no_filters(self) -> None:
        venues = [_venue()]
        assert run_filter_chain(venues, []) == venues
