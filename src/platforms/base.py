"""Abstract base classes for the collaborators the engine consumes."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from src.core.schemas import (
    CalendarEvent,
    Category,
    Coordinate,
    FeedbackSignal,
    ScheduleProposal,
    Tier,
    UserProfile,
    Venue,
)


class VenueProvider(ABC):
    """A source of venue data (cached database, live search, ...)."""

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Unique identifier for this source (e.g. 'database')."""

    @abstractmethod
    async def fetch_nearby(
        self,
        coordinate: Coordinate,
        radius_km: float,
        categories: Iterable[Category] = (),
    ) -> list[Venue]:
        """Return raw (unfiltered, unscored) venues around ``coordinate``."""


class CalendarStore(ABC):
    """Owner of the user's calendar events."""

    @abstractmethod
    async def list_events(self, user_id: str, start: datetime, end: datetime) -> list[CalendarEvent]:
        """Return events overlapping ``[start, end)``."""

    @abstractmethod
    async def create_event(self, user_id: str, venue: Venue, proposal: ScheduleProposal) -> str:
        """Persist a confirmed proposal and return the new event id."""


class TierService(ABC):
    @abstractmethod
    async def get_tier(self, user_id: str) -> Tier:
        """Return the user's current subscription tier."""


class FeedbackStore(ABC):
    """Accept/decline history per user."""

    @abstractmethod
    async def get_signal(self, user_id: str) -> FeedbackSignal:
        """Return per-venue and per-category adjustment signals."""

    @abstractmethod
    async def record(self, user_id: str, venue_id: str, category: Category, accepted: bool) -> None:
        """Record one accept (True) or decline (False)."""


class ProfileStore(ABC):
    @abstractmethod
    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the user's profile, or None for an unknown user."""
