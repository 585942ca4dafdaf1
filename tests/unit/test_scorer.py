"""Tests for rule-based venue scoring."""

from datetime import datetime

import pytest

from src.core.config import ScoringConfig
from src.core.schemas import (
    Category,
    Coordinate,
    FeedbackSignal,
    UserProfile,
    Venue,
)
from src.pipeline.scorer import score_venue, score_venues

HOME = Coordinate(latitude=40.7400, longitude=-73.9900)
MORNING = datetime(2026, 3, 2, 8, 0)
EVENING = datetime(2026, 3, 2, 19, 0)


def _venue(
    venue_id: str = "v1",
    category: Category = Category.COFFEE,
    location: Coordinate = HOME,
    **kw: object,
) -> Venue:
    return Venue(
        venue_id=venue_id,
        name=f"Venue {venue_id}",
        category=category,
        location=location,
        **kw,  # type: ignore[arg-type]
    )


def _profile(**weights: float) -> UserProfile:
    return UserProfile(user_id="alice", interest_weights=weights or {"coffee": 1.0}, max_distance_km=5)


@pytest.fixture()
def config() -> ScoringConfig:
    return ScoringConfig()


class TestInterest:
    def test_top_interest_gets_full_cap(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(), _profile(coffee=0.8, fitness=0.4), HOME, MORNING, config)
        assert s.breakdown.interest == pytest.approx(40.0)

    def test_relative_to_top_weight(self, config: ScoringConfig) -> None:
        v = _venue(category=Category.FITNESS)
        s = score_venue(v, _profile(coffee=0.8, fitness=0.4), HOME, MORNING, config)
        assert s.breakdown.interest == pytest.approx(20.0)

    def test_unlisted_category_zero(self, config: ScoringConfig) -> None:
        v = _venue(category=Category.BARS)
        s = score_venue(v, _profile(coffee=1.0), HOME, MORNING, config)
        assert s.breakdown.interest == 0.0

    def test_no_weights_zero(self, config: ScoringConfig) -> None:
        profile = UserProfile(user_id="alice")
        s = score_venue(_venue(), profile, HOME, MORNING, config)
        assert s.breakdown.interest == 0.0


class TestProximity:
    def test_at_user_location_full_cap(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(), _profile(), HOME, MORNING, config)
        assert s.distance_km == pytest.approx(0.0)
        assert s.breakdown.proximity == pytest.approx(25.0)

    def test_falls_off_with_distance(self, config: ScoringConfig) -> None:
        near = _venue("near", location=Coordinate(latitude=40.7490, longitude=-73.9900))
        far = _venue("far", location=Coordinate(latitude=40.7670, longitude=-73.9900))
        s_near = score_venue(near, _profile(), HOME, MORNING, config)
        s_far = score_venue(far, _profile(), HOME, MORNING, config)
        assert 0 < s_far.breakdown.proximity < s_near.breakdown.proximity < 25.0

    def test_beyond_limit_zero(self, config: ScoringConfig) -> None:
        # ~11 km north
        v = _venue(location=Coordinate(latitude=40.8400, longitude=-73.9900))
        s = score_venue(v, _profile(), HOME, MORNING, config)
        assert s.breakdown.proximity == 0.0


class TestTimeFit:
    def test_matching_daypart(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(), _profile(), HOME, MORNING, config)
        assert s.breakdown.time_fit == 15.0

    def test_other_daypart(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(), _profile(), HOME, EVENING, config)
        assert s.breakdown.time_fit == 0.0

    def test_bars_fit_evening(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(category=Category.BARS), _profile(), HOME, EVENING, config)
        assert s.breakdown.time_fit == 15.0


class TestFeedback:
    def test_venue_signal(self, config: ScoringConfig) -> None:
        signal = FeedbackSignal(venue_signals={"v1": 0.5})
        s = score_venue(_venue(), _profile(), HOME, MORNING, config, signal=signal)
        assert s.breakdown.feedback == pytest.approx(10.0)

    def test_negative_venue_signal(self, config: ScoringConfig) -> None:
        signal = FeedbackSignal(venue_signals={"v1": -1.0})
        s = score_venue(_venue(), _profile(), HOME, MORNING, config, signal=signal)
        assert s.breakdown.feedback == pytest.approx(-20.0)

    def test_category_signal_damped(self, config: ScoringConfig) -> None:
        signal = FeedbackSignal(category_signals={"coffee": 1.0})
        s = score_venue(_venue(), _profile(), HOME, MORNING, config, signal=signal)
        assert s.breakdown.feedback == pytest.approx(10.0)

    def test_venue_signal_overrides_category(self, config: ScoringConfig) -> None:
        signal = FeedbackSignal(venue_signals={"v1": 1.0}, category_signals={"coffee": -1.0})
        s = score_venue(_venue(), _profile(), HOME, MORNING, config, signal=signal)
        assert s.breakdown.feedback == pytest.approx(20.0)

    def test_no_signal_zero(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(), _profile(), HOME, MORNING, config)
        assert s.breakdown.feedback == 0.0


class TestFreshnessAndSponsored:
    def test_not_recently_shown_gets_bonus(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(), _profile(), HOME, MORNING, config)
        assert s.breakdown.freshness == 5.0

    def test_recently_shown_no_bonus(self, config: ScoringConfig) -> None:
        s = score_venue(_venue(), _profile(), HOME, MORNING, config, recently_shown={"v1"})
        assert s.breakdown.freshness == 0.0

    def test_sponsored_boost(self, config: ScoringConfig) -> None:
        plain = score_venue(_venue("a"), _profile(), HOME, MORNING, config)
        paid = score_venue(_venue("b", sponsored=True), _profile(), HOME, MORNING, config)
        assert paid.breakdown.sponsored == 5.0
        assert paid.score - plain.score == pytest.approx(5.0)


class TestTotals:
    def test_score_equals_breakdown_total(self, config: ScoringConfig) -> None:
        signal = FeedbackSignal(category_signals={"coffee": 0.4})
        s = score_venue(_venue(sponsored=True), _profile(), HOME, MORNING, config, signal=signal)
        assert s.score == pytest.approx(s.breakdown.total)

    def test_perfect_match_max(self, config: ScoringConfig) -> None:
        signal = FeedbackSignal(venue_signals={"v1": 1.0})
        s = score_venue(_venue(sponsored=True), _profile(), HOME, MORNING, config, signal=signal)
        assert s.score == pytest.approx(40 + 25 + 15 + 20 + 5 + 5)

    def test_deterministic(self, config: ScoringConfig) -> None:
        venues = [_venue(str(i), rating=4.0) for i in range(5)]
        a = score_venues(venues, _profile(), HOME, MORNING, config)
        b = score_venues(list(reversed(venues)), _profile(), HOME, MORNING, config)
        assert a == b

    def test_custom_caps(self) -> None:
        config = ScoringConfig(interest_max=10, proximity_max=0, time_fit_max=0, freshness_max=0)
        s = score_venue(_venue(), _profile(), HOME, MORNING, config)
        assert s.score == pytest.approx(10.0)


class TestScoreVenues:
    def test_sorted_by_ranking_key(self, config: ScoringConfig) -> None:
        venues = [
            _venue("gym", category=Category.FITNESS),
            _venue("cafe-b", rating=4.0),
            _venue("cafe-a", rating=4.0),
            _venue("cafe-top", rating=4.9),
        ]
        result = score_venues(venues, _profile(coffee=1.0, fitness=0.5), HOME, MORNING, config)
        assert [s.venue.venue_id for s in result] == ["cafe-top", "cafe-a", "cafe-b", "gym"]

    def test_empty(self, config: ScoringConfig) -> None:
        assert score_venues([], _profile(), HOME, MORNING, config) == []
