"""In-memory collaborators for local runs and tests."""

import itertools
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from src.core.geo import haversine_km
from src.core.schemas import (
    CalendarEvent,
    Category,
    Coordinate,
    ScheduleProposal,
    Tier,
    UserProfile,
    Venue,
)
from src.platforms.base import CalendarStore, ProfileStore, TierService, VenueProvider

logger = logging.getLogger(__name__)


class StaticVenueProvider(VenueProvider):
    """Serves a fixed venue list, filtered by radius and category."""

    def __init__(self, venues: list[Venue], source_id: str = "static") -> None:
        self._venues = list(venues)
        self._source_id = source_id

    @property
    def source_id(self) -> str:
        return self._source_id

    async def fetch_nearby(
        self,
        coordinate: Coordinate,
        radius_km: float,
        categories: Iterable[Category] = (),
    ) -> list[Venue]:
        wanted = frozenset(categories)
        return [
            v for v in self._venues
            if haversine_km(coordinate, v.location) <= radius_km
            and (not wanted or v.category in wanted)
        ]


class InMemoryCalendarStore(CalendarStore):
    """Calendar events held in a dict keyed by user id."""

    def __init__(self, events: dict[str, list[CalendarEvent]] | None = None) -> None:
        self._events: defaultdict[str, list[CalendarEvent]] = defaultdict(list)
        for user_id, user_events in (events or {}).items():
            self._events[user_id].extend(user_events)
        self._ids = itertools.count(1)

    async def list_events(self, user_id: str, start: datetime, end: datetime) -> list[CalendarEvent]:
        return sorted(
            (e for e in self._events[user_id] if e.start < end and start < e.end),
            key=lambda e: e.start,
        )

    async def create_event(self, user_id: str, venue: Venue, proposal: ScheduleProposal) -> str:
        if proposal.start is None or proposal.end is None:
            msg = "cannot create an event from a conflicting proposal"
            raise ValueError(msg)
        event_id = f"evt-{next(self._ids)}"
        self._events[user_id].append(
            CalendarEvent(
                event_id=event_id,
                start=proposal.start,
                end=proposal.end,
                title=venue.name,
                location=venue.location,
            ),
        )
        logger.debug("Created event '%s' for '%s'", event_id, user_id)
        return event_id


class StaticTierService(TierService):
    """Tier lookup from a dict; unknown users are on the free tier."""

    def __init__(self, tiers: dict[str, Tier] | None = None) -> None:
        self._tiers = dict(tiers or {})

    def set_tier(self, user_id: str, tier: Tier) -> None:
        self._tiers[user_id] = tier

    async def get_tier(self, user_id: str) -> Tier:
        return self._tiers.get(user_id, Tier.FREE)


class InMemoryProfileStore(ProfileStore):
    def __init__(self, profiles: Iterable[UserProfile] = ()) -> None:
        self._profiles = {p.user_id: p for p in profiles}

    async def get_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)
