"""Refresh eligibility gate: per-user cooldown enforcement by subscription tier.

Each user is either Eligible or Cooling. A successful refresh moves the user
to Cooling by recording ``last_refresh_at = now``; the user becomes Eligible
again once ``now - last_refresh_at >= cooldown(tier)``. The current tier is
always used, so an upgrade shortens the wait immediately.

Refresh state lives in SQLite. Commits are compare-and-swap: a per-user lock
serialises the read-check-write inside this process and the conditional SQL
write rejects a commit whose expected timestamp is stale.
"""

import logging
import sqlite3
import threading
from collections import defaultdict
from datetime import datetime, timedelta

from src.core.config import RefreshConfig
from src.core.db import compare_and_set_refresh_state, get_refresh_state
from src.core.errors import StaleRefreshState
from src.core.schemas import EligibilityResult, RefreshState, Tier

logger = logging.getLogger(__name__)


class RefreshGate:
    """Decides whether a user may trigger a new candidate fetch.

    Usage::

        gate = RefreshGate(conn, settings.refresh)
        result = gate.check_eligibility(user_id, tier, now)
        if result.eligible:
            ...  # fetch candidates (gate lock NOT held)
            gate.commit_refresh(user_id, tier, now, result.last_refresh_at)
    """

    def __init__(self, conn: sqlite3.Connection, config: RefreshConfig | None = None) -> None:
        self._conn = conn
        self._config = config or RefreshConfig()
        self._locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def cooldown(self, tier: Tier) -> timedelta:
        """Return the minimum wait between refreshes for a tier."""
        return timedelta(hours=self._config.cooldown_hours[tier])

    def check_eligibility(self, user_id: str, tier: Tier, now: datetime) -> EligibilityResult:
        """Return whether the user may refresh now and, if not, how long to wait."""
        with self._user_lock(user_id):
            state = get_refresh_state(self._conn, user_id)
        return self._evaluate(state, tier, now)

    def commit_refresh(
        self,
        user_id: str,
        tier: Tier,
        now: datetime,
        expected_last_refresh: datetime | None,
    ) -> RefreshState:
        """Record a successful refresh at ``now``.

        ``expected_last_refresh`` is the timestamp observed by the eligibility
        check that preceded the fetch.

        Raises:
            StaleRefreshState: another refresh committed since that check, the
                user is no longer eligible, or ``now`` predates the stored
                timestamp.
        """
        with self._user_lock(user_id):
            current = get_refresh_state(self._conn, user_id)
            current_ts = current.last_refresh_at if current else None
            if current_ts != expected_last_refresh:
                msg = f"refresh state for '{user_id}' changed since eligibility check"
                raise StaleRefreshState(msg)
            if current_ts is not None and now < current_ts:
                msg = f"refresh at {now.isoformat()} predates stored {current_ts.isoformat()}"
                raise StaleRefreshState(msg)
            if not self._evaluate(current, tier, now).eligible:
                msg = f"user '{user_id}' is cooling; refresh not committed"
                raise StaleRefreshState(msg)
            if not compare_and_set_refresh_state(self._conn, user_id, tier, now, expected_last_refresh):
                msg = f"concurrent refresh committed first for '{user_id}'"
                raise StaleRefreshState(msg)

        logger.debug("Recorded refresh for '%s' at %s (%s)", user_id, now.isoformat(), tier.value)
        return RefreshState(user_id=user_id, last_refresh_at=now, tier=tier)

    def _evaluate(self, state: RefreshState | None, tier: Tier, now: datetime) -> EligibilityResult:
        if state is None:
            return EligibilityResult(eligible=True, tier=tier)

        cooldown = self.cooldown(tier)
        elapsed = now - state.last_refresh_at
        if elapsed >= cooldown:
            return EligibilityResult(eligible=True, tier=tier, last_refresh_at=state.last_refresh_at)

        retry_after = cooldown - elapsed
        logger.info(
            "Refresh cooling for '%s' (%s): retry in %s",
            state.user_id, tier.value, describe_cooldown(retry_after),
        )
        return EligibilityResult(
            eligible=False,
            retry_after=retry_after,
            tier=tier,
            last_refresh_at=state.last_refresh_at,
        )

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[user_id]


def describe_cooldown(retry_after: timedelta) -> str:
    """Format a wait for display, e.g. '2h 15m', '45m' or 'now'."""
    seconds = int(retry_after.total_seconds())
    if seconds <= 0:
        return "now"
    # round partial minutes up so "0m" is never shown while cooling
    minutes = -(-seconds // 60)
    hours, minutes = divmod(minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"
