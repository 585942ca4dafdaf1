"""Configuration models and YAML loader for the recommendation engine."""

from datetime import time
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.schemas import Category, Tier

# Typical visit length per category, in minutes.
DEFAULT_VISIT_MINUTES: dict[Category, int] = {
    Category.COFFEE: 60,
    Category.DINING: 120,
    Category.BARS: 90,
    Category.NIGHTLIFE: 150,
    Category.FITNESS: 75,
    Category.OUTDOOR: 90,
    Category.MUSEUM: 180,
    Category.ARTS: 120,
    Category.SHOPPING: 90,
    Category.ENTERTAINMENT: 150,
    Category.LIVE_MUSIC: 150,
    Category.OTHER: 90,
}


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/engine.db"


class ProviderConfig(BaseModel):
    """Venue provider call settings."""

    timeout_seconds: float = Field(default=10.0, gt=0.0)
    search_radius_km: float = Field(default=10.0, gt=0.0)


class ScoringConfig(BaseModel):
    """Caps for each additive scoring component."""

    interest_max: float = Field(default=40.0, ge=0.0)
    proximity_max: float = Field(default=25.0, ge=0.0)
    time_fit_max: float = Field(default=15.0, ge=0.0)
    feedback_max: float = Field(default=20.0, ge=0.0)
    freshness_max: float = Field(default=5.0, ge=0.0)
    sponsored_boost: float = Field(default=5.0, ge=0.0)
    category_feedback_share: float = Field(default=0.5, ge=0.0, le=1.0)
    freshness_window_hours: float = Field(default=72.0, ge=0.0)


class DiversityConfig(BaseModel):
    """Top-K caps as fractions of K."""

    category_cap_ratio: float = Field(default=0.3, gt=0.0, le=1.0)
    sponsored_cap_ratio: float = Field(default=0.2, gt=0.0, le=1.0)


class RefreshConfig(BaseModel):
    """Refresh cooldown per subscription tier."""

    cooldown_hours: dict[Tier, float] = Field(
        default_factory=lambda: {Tier.FREE: 4.0, Tier.PLUS: 1.0, Tier.PREMIUM: 0.0},
    )

    @field_validator("cooldown_hours")
    @classmethod
    def cooldowns_valid(cls, v: dict[Tier, float]) -> dict[Tier, float]:
        missing = [t.value for t in Tier if t not in v]
        if missing:
            msg = f"cooldown_hours missing tiers: {missing}"
            raise ValueError(msg)
        if any(hours < 0 for hours in v.values()):
            msg = "cooldown_hours must be non-negative"
            raise ValueError(msg)
        return v


class RushWindow(BaseModel):
    """Daily time range penalised by the scheduler."""

    start: time
    end: time

    @model_validator(mode="after")
    def start_before_end(self) -> "RushWindow":
        if self.end <= self.start:
            msg = f"rush window must end after it starts ({self.start}-{self.end})"
            raise ValueError(msg)
        return self


class SchedulerConfig(BaseModel):
    """Time-slot scheduling parameters."""

    horizon_days: int = Field(default=7, ge=1, le=31)
    travel_buffer_minutes: int = Field(default=15, ge=0)
    rush_windows: list[RushWindow] = Field(
        default_factory=lambda: [
            RushWindow(start=time(8, 0), end=time(9, 0)),
            RushWindow(start=time(17, 0), end=time(18, 0)),
        ],
    )
    visit_minutes: dict[Category, int] = Field(
        default_factory=lambda: dict(DEFAULT_VISIT_MINUTES),
    )
    daypart_bonus: float = 10.0
    adjacency_bonus: float = 5.0
    adjacency_horizon_minutes: int = Field(default=180, ge=1)
    rush_penalty: float = 8.0

    @field_validator("visit_minutes")
    @classmethod
    def fill_visit_minutes(cls, v: dict[Category, int]) -> dict[Category, int]:
        if any(minutes <= 0 for minutes in v.values()):
            msg = "visit_minutes must be positive"
            raise ValueError(msg)
        return {**DEFAULT_VISIT_MINUTES, **v}


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    providers: ProviderConfig = Field(default_factory=ProviderConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    diversity: DiversityConfig = Field(default_factory=DiversityConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
