"""DemoData model for config/demo_data.yaml: local stand-ins for the collaborators."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from src.core.schemas import CalendarEvent, Tier, UserProfile, Venue


class DemoData(BaseModel):
    """Profiles, tiers, venues and calendars for running the engine offline."""

    profiles: list[UserProfile] = Field(default_factory=list)
    tiers: dict[str, Tier] = Field(default_factory=dict)
    venues: list[Venue] = Field(default_factory=list)
    events: dict[str, list[CalendarEvent]] = Field(default_factory=dict)

    @field_validator("venues")
    @classmethod
    def venue_ids_unique(cls, v: list[Venue]) -> list[Venue]:
        ids = [venue.venue_id for venue in v]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            msg = f"duplicate venue ids: {duplicates}"
            raise ValueError(msg)
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DemoData":
        """Load demo data from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Demo data file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
