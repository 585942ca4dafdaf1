"""Short human-readable reasons for a recommendation, built from its score breakdown."""

from src.core.schemas import ScoredCandidate, UserProfile

HIGH_RATING = 4.5
NEAR_KM = 3.0


def explain(candidate: ScoredCandidate, profile: UserProfile, now_daypart: str | None = None) -> str:
    """Return a reason like 'Right near you - perfect morning spot - you love coffee'."""
    venue = candidate.venue
    breakdown = candidate.breakdown
    parts: list[str] = []

    if candidate.distance_km <= NEAR_KM and breakdown.proximity > 0:
        parts.append("right near you")
    elif breakdown.proximity > 0:
        parts.append(f"{candidate.distance_km:.1f} km away")

    if breakdown.time_fit > 0 and now_daypart:
        parts.append(f"perfect {now_daypart} spot")

    weight = profile.interest_weights.get(venue.category, 0.0)
    if breakdown.interest > 0 and weight > 0:
        parts.append(f"you love {venue.category.value.replace('_', ' ')}")
    elif venue.rating >= HIGH_RATING:
        parts.append(f"highly rated ({venue.rating:.1f})")

    if not parts:
        return "Recommended for you"
    text = " - ".join(parts)
    return text[0].upper() + text[1:]
