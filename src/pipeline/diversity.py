"""Diversity and dedup enforcement over a scored candidate list.

Greedy, two passes over the ranking order:
  1. Strict pass: accept a candidate only while its category holds fewer
     than ceil(category_cap_ratio * K) slots and sponsored items hold fewer
     than ceil(sponsored_cap_ratio * K).
  2. Relaxed pass (only when the strict pass left slots empty): revisit the
     skipped candidates, ignoring the category cap but not the sponsored cap.

Venues in ``already_shown_ids`` never appear in the output.
"""

import logging
import math
from collections import Counter
from collections.abc import Iterable

from src.core.config import DiversityConfig
from src.core.errors import InputError
from src.core.schemas import ScoredCandidate

logger = logging.getLogger(__name__)


def category_cap(k: int, config: DiversityConfig) -> int:
    return _ceil_share(config.category_cap_ratio, k)


def sponsored_cap(k: int, config: DiversityConfig) -> int:
    return _ceil_share(config.sponsored_cap_ratio, k)


def _ceil_share(ratio: float, k: int) -> int:
    # round first so 0.7 * 10 counts as 7, not 8
    return math.ceil(round(ratio * k, 9))


def enforce(
    scored: list[ScoredCandidate],
    already_shown_ids: Iterable[str],
    k: int,
    config: DiversityConfig | None = None,
) -> list[ScoredCandidate]:
    """Select up to ``k`` candidates satisfying the category and sponsored caps.

    Args:
        scored: Scored candidates (any order; re-sorted into ranking order).
        already_shown_ids: Venue ids that must never be returned.
        k: Size of the feed page.
        config: Cap ratios; defaults to DiversityConfig().

    Returns:
        At most ``k`` candidates in ranking order.
    """
    if k <= 0:
        msg = f"K must be positive, got {k}"
        raise InputError(msg)
    config = config or DiversityConfig()
    excluded = set(already_shown_ids)

    pool = _eligible_pool(scored, excluded)
    max_per_category = category_cap(k, config)
    max_sponsored = sponsored_cap(k, config)

    accepted: list[ScoredCandidate] = []
    skipped: list[ScoredCandidate] = []
    per_category: Counter[str] = Counter()
    sponsored_count = 0

    for candidate in pool:
        if len(accepted) >= k:
            break
        venue = candidate.venue
        if venue.sponsored and sponsored_count >= max_sponsored:
            skipped.append(candidate)
            continue
        if per_category[venue.category.value] >= max_per_category:
            skipped.append(candidate)
            continue
        accepted.append(candidate)
        per_category[venue.category.value] += 1
        if venue.sponsored:
            sponsored_count += 1

    if len(accepted) < k and skipped:
        logger.debug(
            "Strict pass filled %d/%d slots; relaxing category cap over %d skipped",
            len(accepted), k, len(skipped),
        )
        for candidate in skipped:
            if len(accepted) >= k:
                break
            if candidate.venue.sponsored:
                if sponsored_count >= max_sponsored:
                    continue
                sponsored_count += 1
            accepted.append(candidate)

    accepted.sort(key=lambda s: s.ranking_key)
    logger.debug(
        "Enforced diversity: %d candidates in, %d out (K=%d, excluded=%d)",
        len(scored), len(accepted), k, len(excluded),
    )
    return accepted


def _eligible_pool(
    scored: list[ScoredCandidate],
    excluded: set[str],
) -> list[ScoredCandidate]:
    """Ranking-ordered candidates minus excluded and duplicate venue ids."""
    seen: set[str] = set()
    pool: list[ScoredCandidate] = []
    for candidate in sorted(scored, key=lambda s: s.ranking_key):
        venue_id = candidate.venue.venue_id
        if venue_id in excluded or venue_id in seen:
            continue
        seen.add(venue_id)
        pool.append(candidate)
    return pool
