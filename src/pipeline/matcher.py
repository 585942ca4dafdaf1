"""Filter chain applied to fetched venues before scoring.

Filter order:
  1. DistanceFilter: drop venues beyond the user's travel limit
  2. CategoryFilter: optional, keep only requested categories
  3. PriceFilter: drop venues above the price ceiling (free is always kept)
  4. MinRatingFilter: optional, drop venues rated below a floor
  5. OpenNowFilter: optional, keep only venues open at the request time

Candidates arrive deduplicated from the candidate store.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from src.core.geo import haversine_km
from src.core.schemas import Category, Coordinate, Venue
from src.scheduling.hours import hours_or_estimate, is_open_at

logger = logging.getLogger(__name__)

# A filter is a callable that takes venues and returns a subset.
Filter = Callable[[list[Venue]], list[Venue]]

MAX_PRICE_TIER = 3


def price_ceiling(price_sensitivity: float) -> int:
    """Highest price tier a user with this sensitivity is shown.

    0.0 means any price; fully price-sensitive users still see tier 1.
    """
    return max(1, round((1.0 - price_sensitivity) * MAX_PRICE_TIER))


class DistanceFilter:
    """Remove venues farther than ``max_distance_km`` from the user."""

    def __init__(self, origin: Coordinate, max_distance_km: float) -> None:
        self._origin = origin
        self._max_distance_km = max_distance_km

    def __call__(self, venues: list[Venue]) -> list[Venue]:
        result = [
            v for v in venues
            if haversine_km(self._origin, v.location) < self._max_distance_km
        ]
        excluded = len(venues) - len(result)
        if excluded:
            logger.debug(
                "DistanceFilter: removed %d venues beyond %.1f km",
                excluded, self._max_distance_km,
            )
        return result


class CategoryFilter:
    """Keep only venues in the given categories.

    If no categories are given, the filter is a no-op.
    """

    def __init__(self, categories: Iterable[Category] = ()) -> None:
        self._categories = frozenset(categories)

    def __call__(self, venues: list[Venue]) -> list[Venue]:
        if not self._categories:
            return venues
        result = [v for v in venues if v.category in self._categories]
        excluded = len(venues) - len(result)
        if excluded:
            logger.debug("CategoryFilter: removed %d venues", excluded)
        return result


class PriceFilter:
    """Keep venues priced at or below ``max_price_tier``."""

    def __init__(self, max_price_tier: int = MAX_PRICE_TIER) -> None:
        self._max_price_tier = max_price_tier

    def __call__(self, venues: list[Venue]) -> list[Venue]:
        result = [v for v in venues if v.price_tier <= self._max_price_tier]
        excluded = len(venues) - len(result)
        if excluded:
            logger.debug(
                "PriceFilter: removed %d venues above tier %d",
                excluded, self._max_price_tier,
            )
        return result


class MinRatingFilter:
    """Keep venues rated at least ``min_rating``. A floor of 0 is a no-op."""

    def __init__(self, min_rating: float = 0.0) -> None:
        self._min_rating = min_rating

    def __call__(self, venues: list[Venue]) -> list[Venue]:
        if self._min_rating <= 0:
            return venues
        result = [v for v in venues if v.rating >= self._min_rating]
        excluded = len(venues) - len(result)
        if excluded:
            logger.debug(
                "MinRatingFilter: removed %d venues rated below %.1f",
                excluded, self._min_rating,
            )
        return result


class OpenNowFilter:
    """Keep venues open at ``moment``, using estimated hours when none are listed."""

    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def __call__(self, venues: list[Venue]) -> list[Venue]:
        result = []
        for v in venues:
            hours, _ = hours_or_estimate(v.opening_hours, v.category)
            if is_open_at(hours, self._moment):
                result.append(v)
        excluded = len(venues) - len(result)
        if excluded:
            logger.debug("OpenNowFilter: removed %d closed venues", excluded)
        return result


def run_filter_chain(
    venues: list[Venue],
    filters: list[Filter],
) -> list[Venue]:
    """Apply filters in order, returning the surviving venues."""
    result = venues
    for f in filters:
        result = f(result)
    return result
