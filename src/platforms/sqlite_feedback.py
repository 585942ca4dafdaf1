"""Feedback store backed by the engine's SQLite database.

Signals are accept/decline balances: (accepted - declined) / (accepted + declined),
per venue and pooled per category. Any decline puts the venue on the user's
permanent exclusion list.
"""

import sqlite3
from collections import defaultdict

from src.core.db import get_feedback_rows, record_feedback
from src.core.schemas import Category, FeedbackSignal
from src.platforms.base import FeedbackStore


class SqliteFeedbackStore(FeedbackStore):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def get_signal(self, user_id: str) -> FeedbackSignal:
        venue_signals: dict[str, float] = {}
        totals: defaultdict[Category, list[int]] = defaultdict(lambda: [0, 0])
        declined: set[str] = set()

        for row in get_feedback_rows(self._conn, user_id):
            accepted, rejected = row["accepted_count"], row["declined_count"]
            if accepted + rejected == 0:
                continue
            venue_signals[row["venue_id"]] = (accepted - rejected) / (accepted + rejected)
            pooled = totals[Category(row["category"])]
            pooled[0] += accepted
            pooled[1] += rejected
            if rejected:
                declined.add(row["venue_id"])

        category_signals = {
            category: (acc - rej) / (acc + rej) for category, (acc, rej) in totals.items()
        }
        return FeedbackSignal(
            venue_signals=venue_signals,
            category_signals=category_signals,
            declined_venue_ids=frozenset(declined),
        )

    async def record(self, user_id: str, venue_id: str, category: Category, accepted: bool) -> None:
        record_feedback(self._conn, user_id, venue_id, category, accepted)
