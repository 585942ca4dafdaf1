"""Orchestrator: wires refresh gate, candidate store, filter chain, scorer,
diversity enforcer, local persistence and the time-slot scheduler.

Recommendation flow:
  1. Profile + tier lookup
  2. Refresh gate (cooling -> serve last-known list)
  3. Candidate store fetch (gate lock not held)
  4. Filter chain -> scorer -> diversity enforcer (exclusions and
     request filters also apply to a cached answer)
  5. Commit refresh (compare-and-swap; losing a race serves the cache)
  6. Persist ranked list, shown history, refresh history
"""

import asyncio
import json
import logging
import sqlite3
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from typing import TypeVar

from src.core.config import Settings
from src.core.db import (
    get_recently_shown,
    insert_refresh_history,
    load_ranked_list,
    record_shown,
    save_ranked_list,
)
from src.core.errors import EngineError, InputError, StaleRefreshState, UpstreamUnavailable
from src.core.geo import to_coordinate
from src.core.schemas import (
    Category,
    Coordinate,
    EligibilityResult,
    RecommendationResult,
    ScheduleProposal,
    ScoredCandidate,
    TimeValidation,
    UserProfile,
    Venue,
    daypart_for,
)
from src.pipeline.candidate_store import CandidateStore, FetchResult
from src.pipeline.diversity import enforce
from src.pipeline.explainer import explain
from src.pipeline.matcher import (
    MAX_PRICE_TIER,
    CategoryFilter,
    DistanceFilter,
    Filter,
    MinRatingFilter,
    OpenNowFilter,
    PriceFilter,
    price_ceiling,
    run_filter_chain,
)
from src.pipeline.refresh_gate import RefreshGate
from src.pipeline.scorer import score_venues
from src.platforms.base import CalendarStore, FeedbackStore, ProfileStore, TierService
from src.scheduling.scheduler import TimeSlotScheduler, require_consistent_timezones

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecommendationService:
    """Operations exposed to the UI/API layer."""

    def __init__(
        self,
        settings: Settings,
        conn: sqlite3.Connection,
        candidates: CandidateStore,
        calendar: CalendarStore,
        tiers: TierService,
        feedback: FeedbackStore,
        profiles: ProfileStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings
        self._conn = conn
        self._candidates = candidates
        self._calendar = calendar
        self._tiers = tiers
        self._feedback = feedback
        self._profiles = profiles
        self._clock = clock
        self._gate = RefreshGate(conn, settings.refresh)
        self._scheduler = TimeSlotScheduler(settings.scheduler)

    @property
    def gate(self) -> RefreshGate:
        return self._gate

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    async def get_recommendations(
        self,
        user_id: str,
        coordinate: Coordinate | tuple[float, float],
        k: int,
        now: datetime | None = None,
        exclude_venue_ids: Iterable[str] = (),
        categories: Iterable[Category] = (),
        max_price_tier: int | None = None,
        min_rating: float | None = None,
        open_now: bool = False,
    ) -> RecommendationResult:
        """Return up to ``k`` ranked venues for the user.

        Serves the last-known list (``served_from_cache=True``) while the
        user's refresh is cooling down. Exclusions and the request filters
        apply to the cached list too.

        Args:
            max_price_tier: Price ceiling; defaults to the one derived from
                the profile's price sensitivity.
            min_rating: Drop venues rated below this.
            open_now: Keep only venues open at ``now``.

        Raises:
            InputError: non-positive ``k``, malformed coordinate, out-of-range
                filter or unknown user.
            UpstreamUnavailable: a collaborator failed; carries the last-known list.
        """
        if k <= 0:
            msg = f"K must be positive, got {k}"
            raise InputError(msg)
        if max_price_tier is not None and not 0 <= max_price_tier <= MAX_PRICE_TIER:
            msg = f"max_price_tier must be between 0 and {MAX_PRICE_TIER}, got {max_price_tier}"
            raise InputError(msg)
        if min_rating is not None and not 0.0 <= min_rating <= 5.0:
            msg = f"min_rating must be between 0 and 5, got {min_rating}"
            raise InputError(msg)
        origin = to_coordinate(coordinate)
        now = now or self._clock()
        wanted = list(categories)
        excluded = set(exclude_venue_ids)

        profile = await self._require_profile(user_id)
        if max_price_tier is None:
            max_price_tier = price_ceiling(profile.price_sensitivity)
        request_filters: list[Filter] = [
            CategoryFilter(wanted),
            PriceFilter(max_price_tier),
            MinRatingFilter(min_rating or 0.0),
        ]
        if open_now:
            request_filters.append(OpenNowFilter(now))

        cached = load_ranked_list(self._conn, user_id)
        tier = await self._call(self._tiers.get_tier(user_id), "tier service", cached)

        eligibility = self._gate.check_eligibility(user_id, tier, now)
        if not eligibility.eligible:
            return self._serve_cached(
                user_id, cached, k, eligibility.retry_after, excluded, request_filters,
            )

        fetched = await self._fetch(origin, wanted, cached)
        signal = await self._call(self._feedback.get_signal(user_id), "feedback store", cached)

        filters: list[Filter] = [
            DistanceFilter(origin, profile.max_distance_km),
            *request_filters,
        ]
        venues = run_filter_chain(fetched.venues, filters)
        logger.info("After filtering: %d of %d venues", len(venues), len(fetched.venues))

        window = timedelta(hours=self._settings.scoring.freshness_window_hours)
        recently_shown = get_recently_shown(self._conn, user_id, now - window)
        scored = score_venues(
            venues, profile, origin, now, self._settings.scoring,
            recently_shown=recently_shown, signal=signal,
        )
        excluded |= set(signal.declined_venue_ids)
        items = enforce(scored, excluded, k, self._settings.diversity)

        try:
            self._gate.commit_refresh(user_id, tier, now, eligibility.last_refresh_at)
        except StaleRefreshState as e:
            logger.warning("Refresh race lost for '%s': %s", user_id, e)
            retry = self._gate.check_eligibility(user_id, tier, now)
            return self._serve_cached(
                user_id, load_ranked_list(self._conn, user_id), k, retry.retry_after,
                excluded, request_filters,
            )

        save_ranked_list(self._conn, user_id, items, now)
        record_shown(self._conn, user_id, [s.venue.venue_id for s in items], now)
        insert_refresh_history(self._conn, user_id, tier, len(items), fetched.sources, now)

        logger.info(
            "Recommendations for '%s': %d fetched, %d scored, %d served",
            user_id, len(fetched.venues), len(scored), len(items),
        )
        return RecommendationResult(items=items)

    async def check_refresh(self, user_id: str, now: datetime | None = None) -> EligibilityResult:
        """Report whether the user may refresh now, and when otherwise."""
        await self._require_profile(user_id)
        tier = await self._call(self._tiers.get_tier(user_id), "tier service", None)
        return self._gate.check_eligibility(user_id, tier, now or self._clock())

    async def decline(self, user_id: str, venue_id: str) -> None:
        """Record a decline; the venue is excluded from this user's feed for good."""
        venue = await self._find_venue(user_id, venue_id)
        await self._call(
            self._feedback.record(user_id, venue_id, venue.category, False),
            "feedback store", load_ranked_list(self._conn, user_id),
        )
        cached = load_ranked_list(self._conn, user_id) or []
        remaining = [s for s in cached if s.venue.venue_id != venue_id]
        save_ranked_list(self._conn, user_id, remaining, self._clock())
        logger.info("User '%s' declined '%s'", user_id, venue_id)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def propose_schedule(
        self,
        user_id: str,
        venue_id: str,
        now: datetime | None = None,
        preferred_window: timedelta | None = None,
    ) -> ScheduleProposal:
        """Propose a conflict-free visit for a venue from the user's feed."""
        now = now or self._clock()
        venue = await self._find_venue(user_id, venue_id)
        horizon_end = now + timedelta(days=self._settings.scheduler.horizon_days)
        events = await self._call(
            self._calendar.list_events(user_id, now, horizon_end), "calendar store",
            load_ranked_list(self._conn, user_id),
        )
        return self._scheduler.schedule(venue, events, now, preferred_window)

    async def validate_time(self, user_id: str, start: datetime, end: datetime) -> TimeValidation:
        """Check a manually chosen time against the user's calendar."""
        require_consistent_timezones([start, end])
        if end <= start:
            msg = "end must be after start"
            raise InputError(msg)
        await self._require_profile(user_id)
        events = await self._call(
            self._calendar.list_events(user_id, start, end), "calendar store",
            load_ranked_list(self._conn, user_id),
        )
        return self._scheduler.validate(start, end, events)

    async def confirm_schedule(
        self,
        user_id: str,
        venue_id: str,
        proposal: ScheduleProposal,
    ) -> str:
        """Write a confirmed proposal to the calendar and record the acceptance."""
        if proposal.conflict:
            msg = "cannot confirm a proposal without a time slot"
            raise InputError(msg)
        if proposal.venue_id != venue_id:
            msg = f"proposal is for '{proposal.venue_id}', not '{venue_id}'"
            raise InputError(msg)
        venue = await self._find_venue(user_id, venue_id)
        event_id = await self._call(
            self._calendar.create_event(user_id, venue, proposal), "calendar store",
            load_ranked_list(self._conn, user_id),
        )
        await self._call(
            self._feedback.record(user_id, venue_id, venue.category, True),
            "feedback store", load_ranked_list(self._conn, user_id),
        )
        logger.info("Scheduled '%s' for '%s' as event '%s'", venue_id, user_id, event_id)
        return event_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_profile(self, user_id: str) -> UserProfile:
        if not user_id.strip():
            msg = "user id must not be empty"
            raise InputError(msg)
        profile = await self._call(self._profiles.get_profile(user_id), "profile store", None)
        if profile is None:
            msg = f"unknown user: {user_id}"
            raise InputError(msg)
        return profile

    async def _find_venue(self, user_id: str, venue_id: str) -> Venue:
        await self._require_profile(user_id)
        for candidate in load_ranked_list(self._conn, user_id) or []:
            if candidate.venue.venue_id == venue_id:
                return candidate.venue
        msg = f"venue '{venue_id}' is not in the feed of '{user_id}'"
        raise InputError(msg)

    async def _fetch(
        self,
        origin: Coordinate,
        categories: list[Category],
        cached: list[ScoredCandidate] | None,
    ) -> FetchResult:
        try:
            return await self._candidates.fetch(
                origin, self._settings.providers.search_radius_km, categories,
            )
        except UpstreamUnavailable as e:
            raise UpstreamUnavailable(str(e), last_known=cached) from e

    async def _call(
        self,
        awaitable: Awaitable[T],
        collaborator: str,
        last_known: list[ScoredCandidate] | None,
    ) -> T:
        """Await a collaborator call under the provider timeout."""
        try:
            return await asyncio.wait_for(
                awaitable, timeout=self._settings.providers.timeout_seconds,
            )
        except EngineError:
            raise
        except Exception as e:
            logger.warning("%s unavailable: %s", collaborator, e)
            msg = f"{collaborator} unavailable: {e or type(e).__name__}"
            raise UpstreamUnavailable(msg, last_known=last_known) from e

    def _serve_cached(
        self,
        user_id: str,
        cached: list[ScoredCandidate] | None,
        k: int,
        retry_after: timedelta,
        excluded: set[str],
        filters: list[Filter],
    ) -> RecommendationResult:
        candidates = [s for s in cached or [] if s.venue.venue_id not in excluded]
        kept = {v.venue_id for v in run_filter_chain([s.venue for s in candidates], filters)}
        items = [s for s in candidates if s.venue.venue_id in kept][:k]
        logger.info(
            "Serving %d cached recommendations to '%s' (retry in %s)",
            len(items), user_id, retry_after,
        )
        return RecommendationResult(items=items, served_from_cache=True, retry_after=retry_after)


def export_recommendations_json(
    result: RecommendationResult,
    profile: UserProfile,
    now: datetime,
) -> str:
    """Export a ranked feed as a JSON string."""
    daypart = daypart_for(now).value
    data = []
    for s in result.items:
        v = s.venue
        data.append({
            "venue_id": v.venue_id,
            "name": v.name,
            "category": v.category.value,
            "rating": v.rating,
            "price_tier": v.price_tier,
            "sponsored": v.sponsored,
            "distance_km": round(s.distance_km, 2),
            "score": round(s.score, 2),
            "breakdown": s.breakdown.model_dump(),
            "reason": explain(s, profile, daypart),
        })
    return json.dumps(
        {
            "served_from_cache": result.served_from_cache,
            "retry_after_seconds": int(result.retry_after.total_seconds()),
            "items": data,
        },
        indent=2,
    )
