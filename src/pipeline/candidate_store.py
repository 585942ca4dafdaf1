"""Candidate store: aggregates venues from every configured provider.

Providers are queried concurrently, each under its own timeout. A failing
provider is skipped as long as another one answers; results are deduplicated
by venue_id with earlier providers taking precedence.
"""

import asyncio
import logging
from collections.abc import Iterable

from src.core.errors import UpstreamUnavailable
from src.core.schemas import Category, Coordinate, Venue
from src.platforms.base import VenueProvider

logger = logging.getLogger(__name__)


class FetchResult:
    """Venues gathered by one fetch, plus which sources answered."""

    def __init__(self, venues: list[Venue], sources: list[str], failed: list[str]) -> None:
        self.venues = venues
        self.sources = sources
        self.failed = failed


class CandidateStore:
    """Fan-out fetch over venue providers."""

    def __init__(self, providers: list[VenueProvider], timeout_seconds: float = 10.0) -> None:
        if not providers:
            msg = "at least one venue provider is required"
            raise ValueError(msg)
        self._providers = providers
        self._timeout = timeout_seconds

    async def fetch(
        self,
        coordinate: Coordinate,
        radius_km: float,
        categories: Iterable[Category] = (),
    ) -> FetchResult:
        """Fetch venues from all providers.

        Raises:
            UpstreamUnavailable: every provider failed or timed out.
        """
        wanted = list(categories)
        outcomes = await asyncio.gather(
            *(self._fetch_one(p, coordinate, radius_km, wanted) for p in self._providers),
            return_exceptions=True,
        )

        seen: set[str] = set()
        venues: list[Venue] = []
        sources: list[str] = []
        failed: list[str] = []
        for provider, outcome in zip(self._providers, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Provider '%s' failed: %s", provider.source_id, outcome)
                failed.append(provider.source_id)
                continue
            sources.append(provider.source_id)
            for venue in outcome:
                if venue.venue_id in seen:
                    continue
                seen.add(venue.venue_id)
                if not venue.source:
                    venue = venue.model_copy(update={"source": provider.source_id})
                venues.append(venue)

        if not sources:
            msg = f"all venue providers failed: {', '.join(failed)}"
            raise UpstreamUnavailable(msg)

        logger.info(
            "Fetched %d unique venues from %s", len(venues), ", ".join(sources),
        )
        return FetchResult(venues=venues, sources=sources, failed=failed)

    async def _fetch_one(
        self,
        provider: VenueProvider,
        coordinate: Coordinate,
        radius_km: float,
        categories: list[Category],
    ) -> list[Venue]:
        try:
            return await asyncio.wait_for(
                provider.fetch_nearby(coordinate, radius_km, categories),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            msg = f"timed out after {self._timeout:.1f}s"
            raise TimeoutError(msg) from e
