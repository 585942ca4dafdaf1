"""Rule-based relevance scoring for venue candidates.

Score is the unweighted sum of independently capped components (caps in
ScoringConfig): interest match, proximity, time-of-day fit, historical
feedback, freshness and a fixed sponsored addend. Scoring is pure: the same
(venue, profile, location, now, recently_shown, signal) always yields the
same ScoredCandidate.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from src.core.config import ScoringConfig
from src.core.geo import haversine_km
from src.core.schemas import (
    PREFERRED_DAYPARTS,
    Coordinate,
    FeedbackSignal,
    ScoreBreakdown,
    ScoredCandidate,
    UserProfile,
    Venue,
    daypart_for,
)

logger = logging.getLogger(__name__)

_NO_SIGNAL = FeedbackSignal()


def score_venue(
    venue: Venue,
    profile: UserProfile,
    user_location: Coordinate,
    now: datetime,
    config: ScoringConfig,
    recently_shown: Iterable[str] = (),
    signal: FeedbackSignal | None = None,
) -> ScoredCandidate:
    """Score a single venue for a user.

    Args:
        venue: The venue candidate to score.
        profile: The user's interest weights and travel limit.
        user_location: Where the user is now.
        now: Reference time for the time-of-day component.
        config: Component caps from settings.
        recently_shown: Venue ids shown inside the freshness window.
        signal: Accumulated accept/decline history (None = no history).

    Returns:
        ScoredCandidate with the total score and its breakdown.
    """
    distance = haversine_km(user_location, venue.location)
    breakdown = ScoreBreakdown(
        interest=_interest_score(venue, profile, config),
        proximity=_proximity_score(distance, profile.max_distance_km, config),
        time_fit=_time_fit_score(venue, now, config),
        feedback=_feedback_score(venue, signal or _NO_SIGNAL, config),
        freshness=0.0 if venue.venue_id in set(recently_shown) else config.freshness_max,
        sponsored=config.sponsored_boost if venue.sponsored else 0.0,
    )
    return ScoredCandidate(
        venue=venue,
        score=breakdown.total,
        breakdown=breakdown,
        distance_km=distance,
    )


def score_venues(
    venues: list[Venue],
    profile: UserProfile,
    user_location: Coordinate,
    now: datetime,
    config: ScoringConfig,
    recently_shown: Iterable[str] = (),
    signal: FeedbackSignal | None = None,
) -> list[ScoredCandidate]:
    """Score a batch of venues, returning them in ranking order.

    Ranking order is score desc, then rating desc, then venue id asc.
    """
    shown = frozenset(recently_shown)
    scored = [
        score_venue(v, profile, user_location, now, config, shown, signal)
        for v in venues
    ]
    scored.sort(key=lambda s: s.ranking_key)
    if scored:
        logger.debug(
            "Scored %d venues (top %.1f, bottom %.1f)",
            len(scored), scored[0].score, scored[-1].score,
        )
    return scored


def _interest_score(venue: Venue, profile: UserProfile, config: ScoringConfig) -> float:
    """Category weight relative to the profile's strongest interest."""
    if not profile.interest_weights:
        return 0.0
    top = max(profile.interest_weights.values())
    if top <= 0:
        return 0.0
    weight = profile.interest_weights.get(venue.category, 0.0)
    return config.interest_max * min(1.0, weight / top)


def _proximity_score(distance_km: float, max_distance_km: float, config: ScoringConfig) -> float:
    """Linear falloff from the full cap at 0 km to zero at the travel limit."""
    if distance_km >= max_distance_km:
        return 0.0
    return config.proximity_max * (1.0 - distance_km / max_distance_km)


def _time_fit_score(venue: Venue, now: datetime, config: ScoringConfig) -> float:
    if daypart_for(now) in PREFERRED_DAYPARTS[venue.category]:
        return config.time_fit_max
    return 0.0


def _feedback_score(venue: Venue, signal: FeedbackSignal, config: ScoringConfig) -> float:
    """Exact-venue history wins; otherwise a damped category signal applies."""
    if venue.venue_id in signal.venue_signals:
        value = signal.venue_signals[venue.venue_id]
        return config.feedback_max * _clamp(value)
    value = signal.category_signals.get(venue.category, 0.0)
    return config.feedback_max * config.category_feedback_share * _clamp(value)


def _clamp(value: float) -> float:
    return max(-1.0, min(1.0, value))
