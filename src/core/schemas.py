"""Core data models for the recommendation and scheduling engine."""

import math
from datetime import datetime, time, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Category(str, Enum):
    """Closed set of venue categories."""

    COFFEE = "coffee"
    DINING = "dining"
    BARS = "bars"
    NIGHTLIFE = "nightlife"
    FITNESS = "fitness"
    OUTDOOR = "outdoor"
    MUSEUM = "museum"
    ARTS = "arts"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    LIVE_MUSIC = "live_music"
    OTHER = "other"


class Tier(str, Enum):
    """Subscription tier."""

    FREE = "free"
    PLUS = "plus"
    PREMIUM = "premium"


class Daypart(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


def daypart_for(moment: datetime | time) -> Daypart:
    """Bucket a wall-clock time into its daypart."""
    hour = moment.hour
    if 5 <= hour < 12:
        return Daypart.MORNING
    if 12 <= hour < 17:
        return Daypart.AFTERNOON
    if 17 <= hour < 21:
        return Daypart.EVENING
    return Daypart.NIGHT


# Canonical dayparts per category, shared by scoring and scheduling.
PREFERRED_DAYPARTS: dict[Category, frozenset[Daypart]] = {
    Category.COFFEE: frozenset({Daypart.MORNING}),
    Category.DINING: frozenset({Daypart.EVENING}),
    Category.BARS: frozenset({Daypart.EVENING, Daypart.NIGHT}),
    Category.NIGHTLIFE: frozenset({Daypart.NIGHT}),
    Category.FITNESS: frozenset({Daypart.MORNING}),
    Category.OUTDOOR: frozenset({Daypart.MORNING, Daypart.AFTERNOON}),
    Category.MUSEUM: frozenset({Daypart.AFTERNOON}),
    Category.ARTS: frozenset({Daypart.AFTERNOON}),
    Category.SHOPPING: frozenset({Daypart.AFTERNOON}),
    Category.ENTERTAINMENT: frozenset({Daypart.EVENING}),
    Category.LIVE_MUSIC: frozenset({Daypart.EVENING, Daypart.NIGHT}),
    Category.OTHER: frozenset(),
}


class Coordinate(BaseModel):
    """A WGS84 point."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class OpenInterval(BaseModel):
    """One opening period within a day.

    ``closes <= opens`` means the venue closes on the following day.
    """

    model_config = ConfigDict(frozen=True)

    opens: time
    closes: time

    @property
    def crosses_midnight(self) -> bool:
        return self.closes <= self.opens


class Venue(BaseModel):
    """A venue candidate supplied by a venue-data provider.

    Frozen: a session never mutates venues, providers replace them wholesale.
    """

    model_config = ConfigDict(frozen=True)

    venue_id: str
    name: str
    category: Category
    location: Coordinate
    price_tier: int = Field(default=1, ge=0, le=3)
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    # weekday (0 = Monday) -> ordered opening periods
    opening_hours: dict[int, list[OpenInterval]] = Field(default_factory=dict)
    sponsored: bool = False
    source: str = ""

    @field_validator("venue_id")
    @classmethod
    def venue_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "venue_id must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("opening_hours")
    @classmethod
    def weekdays_in_range(
        cls, v: dict[int, list[OpenInterval]],
    ) -> dict[int, list[OpenInterval]]:
        for weekday in v:
            if not 0 <= weekday <= 6:
                msg = f"opening_hours weekday must be 0-6, got {weekday}"
                raise ValueError(msg)
        return {day: sorted(periods, key=lambda p: p.opens) for day, periods in v.items()}


class UserProfile(BaseModel):
    """Ranking inputs that belong to the user."""

    user_id: str
    interest_weights: dict[Category, float] = Field(default_factory=dict)
    price_sensitivity: float = Field(default=0.5, ge=0.0, le=1.0)
    max_distance_km: float = Field(default=8.0, gt=0.0)

    @field_validator("interest_weights")
    @classmethod
    def weights_non_negative(cls, v: dict[Category, float]) -> dict[Category, float]:
        for category, weight in v.items():
            if weight < 0 or not math.isfinite(weight):
                msg = f"interest weight for '{category.value}' must be a non-negative number"
                raise ValueError(msg)
        return v


class FeedbackSignal(BaseModel):
    """Accumulated accept/decline history for one user.

    Signals lie in [-1, 1]; positive means the user tends to accept.
    """

    venue_signals: dict[str, float] = Field(default_factory=dict)
    category_signals: dict[Category, float] = Field(default_factory=dict)
    declined_venue_ids: frozenset[str] = frozenset()

    @field_validator("venue_signals", "category_signals")
    @classmethod
    def signals_in_range(cls, v: dict) -> dict:  # type: ignore[type-arg]
        for key, value in v.items():
            if not -1.0 <= value <= 1.0:
                msg = f"feedback signal for '{key}' must be within [-1, 1], got {value}"
                raise ValueError(msg)
        return v


class ScoreBreakdown(BaseModel):
    """Additive score components, kept for explanations and tests."""

    model_config = ConfigDict(frozen=True)

    interest: float = 0.0
    proximity: float = 0.0
    time_fit: float = 0.0
    feedback: float = 0.0
    freshness: float = 0.0
    sponsored: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.interest + self.proximity + self.time_fit
            + self.feedback + self.freshness + self.sponsored
        )


class ScoredCandidate(BaseModel):
    """Wrapper that pairs a frozen Venue with its relevance score."""

    model_config = ConfigDict(frozen=True)

    venue: Venue
    score: float
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    distance_km: float = Field(default=0.0, ge=0.0)

    @field_validator("score")
    @classmethod
    def score_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            msg = "score must be finite"
            raise ValueError(msg)
        return v

    @property
    def ranking_key(self) -> tuple[float, float, str]:
        """Sort key: score desc, then rating desc, then venue id asc."""
        return (-self.score, -self.venue.rating, self.venue.venue_id)


class RefreshStatus(str, Enum):
    ELIGIBLE = "eligible"
    COOLING = "cooling"


class RefreshState(BaseModel):
    """Last successful candidate refresh for one user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    last_refresh_at: datetime
    tier: Tier


class EligibilityResult(BaseModel):
    """Outcome of a refresh eligibility check."""

    model_config = ConfigDict(frozen=True)

    eligible: bool
    retry_after: timedelta = timedelta(0)
    tier: Tier = Tier.FREE
    last_refresh_at: datetime | None = None

    @property
    def state(self) -> RefreshStatus:
        return RefreshStatus.ELIGIBLE if self.eligible else RefreshStatus.COOLING


class CalendarEvent(BaseModel):
    """An existing event owned by the calendar collaborator."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    start: datetime
    end: datetime
    title: str = ""
    location: Coordinate | None = None

    @model_validator(mode="after")
    def end_after_start(self) -> "CalendarEvent":
        if self.end <= self.start:
            msg = f"event '{self.event_id}' must end after it starts"
            raise ValueError(msg)
        return self


class ScheduleProposal(BaseModel):
    """A proposed visit window returned to the caller for confirmation."""

    model_config = ConfigDict(frozen=True)

    venue_id: str
    start: datetime | None = None
    end: datetime | None = None
    conflict: bool = False
    tight_schedule: bool = False
    travel_buffer: timedelta = timedelta(0)
    duration: timedelta = timedelta(0)
    estimated_hours: bool = False

    @model_validator(mode="after")
    def times_match_conflict(self) -> "ScheduleProposal":
        if self.conflict and (self.start is not None or self.end is not None):
            msg = "a conflicting proposal carries no start/end time"
            raise ValueError(msg)
        if not self.conflict and (self.start is None or self.end is None):
            msg = "a viable proposal needs both start and end"
            raise ValueError(msg)
        return self


class TimeValidation(BaseModel):
    """Result of validating a manually chosen time."""

    model_config = ConfigDict(frozen=True)

    conflict: bool
    conflicting_event_ids: list[str] = Field(default_factory=list)


class RecommendationResult(BaseModel):
    """Ranked feed returned to the UI/API layer."""

    items: list[ScoredCandidate] = Field(default_factory=list)
    served_from_cache: bool = False
    retry_after: timedelta = timedelta(0)
