"""SQLite database layer for refresh state, ranked-list cache, shown history and feedback."""

import sqlite3
from datetime import datetime
from pathlib import Path

from pydantic import TypeAdapter

from src.core.schemas import Category, RefreshState, ScoredCandidate, Tier

_REFRESH_STATE_TABLE = """
CREATE TABLE IF NOT EXISTS refresh_state (
    user_id          TEXT PRIMARY KEY,
    last_refresh_at  TEXT NOT NULL,
    tier             TEXT NOT NULL
);
"""

_REFRESH_HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS refresh_history (
    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id                TEXT    NOT NULL,
    tier                   TEXT    NOT NULL,
    recommendations_count  INTEGER NOT NULL,
    data_sources           TEXT    NOT NULL DEFAULT '',
    refreshed_at           TEXT    NOT NULL
);
"""

_RANKED_CACHE_TABLE = """
CREATE TABLE IF NOT EXISTS ranked_cache (
    user_id     TEXT PRIMARY KEY,
    items_json  TEXT NOT NULL,
    stored_at   TEXT NOT NULL
);
"""

_SHOWN_VENUES_TABLE = """
CREATE TABLE IF NOT EXISTS shown_venues (
    user_id        TEXT NOT NULL,
    venue_id       TEXT NOT NULL,
    last_shown_at  TEXT NOT NULL,
    PRIMARY KEY (user_id, venue_id)
);
"""

_FEEDBACK_TABLE = """
CREATE TABLE IF NOT EXISTS feedback (
    user_id         TEXT    NOT NULL,
    venue_id        TEXT    NOT NULL,
    category        TEXT    NOT NULL,
    accepted_count  INTEGER NOT NULL DEFAULT 0,
    declined_count  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, venue_id)
);
"""

_SCORED_LIST = TypeAdapter(list[ScoredCandidate])


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # The refresh gate serialises access per user; the connection is shared across threads.
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_REFRESH_STATE_TABLE)
    conn.execute(_REFRESH_HISTORY_TABLE)
    conn.execute(_RANKED_CACHE_TABLE)
    conn.execute(_SHOWN_VENUES_TABLE)
    conn.execute(_FEEDBACK_TABLE)
    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Refresh state
# ---------------------------------------------------------------------------


def get_refresh_state(conn: sqlite3.Connection, user_id: str) -> RefreshState | None:
    """Return the stored refresh state for a user, or None before the first refresh."""
    row = conn.execute(
        "SELECT user_id, last_refresh_at, tier FROM refresh_state WHERE user_id = ?",
        (user_id,),
    ).fetchone()
    if row is None:
        return None
    return RefreshState(
        user_id=row["user_id"],
        last_refresh_at=datetime.fromisoformat(row["last_refresh_at"]),
        tier=Tier(row["tier"]),
    )


def compare_and_set_refresh_state(
    conn: sqlite3.Connection,
    user_id: str,
    tier: Tier,
    refreshed_at: datetime,
    expected: datetime | None,
) -> bool:
    """Atomically move a user's refresh timestamp from ``expected`` to ``refreshed_at``.

    ``expected=None`` means the caller saw no state yet. Returns False when the
    stored value no longer matches (another refresh committed first).
    """
    if expected is None:
        cursor = conn.execute(
            """
            INSERT INTO refresh_state (user_id, last_refresh_at, tier)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO NOTHING
            """,
            (user_id, refreshed_at.isoformat(), tier.value),
        )
    else:
        cursor = conn.execute(
            """
            UPDATE refresh_state
            SET last_refresh_at = ?, tier = ?
            WHERE user_id = ? AND last_refresh_at = ?
            """,
            (refreshed_at.isoformat(), tier.value, user_id, expected.isoformat()),
        )
    conn.commit()
    return cursor.rowcount == 1


def insert_refresh_history(
    conn: sqlite3.Connection,
    user_id: str,
    tier: Tier,
    recommendations_count: int,
    data_sources: list[str],
    refreshed_at: datetime,
) -> int:
    """Record a completed refresh. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO refresh_history
            (user_id, tier, recommendations_count, data_sources, refreshed_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            user_id,
            tier.value,
            recommendations_count,
            ",".join(sorted(set(data_sources))),
            refreshed_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


# ---------------------------------------------------------------------------
# Last-known ranked list
# ---------------------------------------------------------------------------


def save_ranked_list(
    conn: sqlite3.Connection,
    user_id: str,
    items: list[ScoredCandidate],
    stored_at: datetime,
) -> None:
    """Replace the user's last-known ranked list."""
    conn.execute(
        """
        INSERT INTO ranked_cache (user_id, items_json, stored_at)
        VALUES (?, ?, ?)
        ON CONFLICT(user_id)
        DO UPDATE SET items_json = excluded.items_json, stored_at = excluded.stored_at
        """,
        (user_id, _SCORED_LIST.dump_json(items).decode(), stored_at.isoformat()),
    )
    conn.commit()


def load_ranked_list(conn: sqlite3.Connection, user_id: str) -> list[ScoredCandidate] | None:
    """Return the last-known ranked list, or None if the user never had one."""
    row = conn.execute(
        "SELECT items_json FROM ranked_cache WHERE user_id = ?",
        (user_id,),
    ).fetchone()
    if row is None:
        return None
    return _SCORED_LIST.validate_json(row["items_json"])


# ---------------------------------------------------------------------------
# Shown-venue history
# ---------------------------------------------------------------------------


def record_shown(
    conn: sqlite3.Connection,
    user_id: str,
    venue_ids: list[str],
    shown_at: datetime,
) -> None:
    """Mark venues as shown to the user at ``shown_at``."""
    conn.executemany(
        """
        INSERT INTO shown_venues (user_id, venue_id, last_shown_at)
        VALUES (?, ?, ?)
        ON CONFLICT(user_id, venue_id)
        DO UPDATE SET last_shown_at = excluded.last_shown_at
        """,
        [(user_id, venue_id, shown_at.isoformat()) for venue_id in venue_ids],
    )
    conn.commit()


def get_recently_shown(
    conn: sqlite3.Connection,
    user_id: str,
    since: datetime,
) -> set[str]:
    """Return venue ids shown to the user at or after ``since``."""
    rows = conn.execute(
        "SELECT venue_id FROM shown_venues WHERE user_id = ? AND last_shown_at >= ?",
        (user_id, since.isoformat()),
    ).fetchall()
    return {row["venue_id"] for row in rows}


# ---------------------------------------------------------------------------
# Feedback counters
# ---------------------------------------------------------------------------


def record_feedback(
    conn: sqlite3.Connection,
    user_id: str,
    venue_id: str,
    category: Category,
    accepted: bool,
) -> None:
    """Increment the accept or decline counter for a venue. Creates row if needed."""
    accepted_delta, declined_delta = (1, 0) if accepted else (0, 1)
    conn.execute(
        """
        INSERT INTO feedback
            (user_id, venue_id, category, accepted_count, declined_count)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(user_id, venue_id)
        DO UPDATE SET
            category = excluded.category,
            accepted_count = accepted_count + excluded.accepted_count,
            declined_count = declined_count + excluded.declined_count
        """,
        (user_id, venue_id, category.value, accepted_delta, declined_delta),
    )
    conn.commit()


def get_feedback_rows(conn: sqlite3.Connection, user_id: str) -> list[sqlite3.Row]:
    """Return raw feedback counter rows for a user."""
    return conn.execute(
        """
        SELECT venue_id, category, accepted_count, declined_count
        FROM feedback WHERE user_id = ?
        ORDER BY venue_id
        """,
        (user_id,),
    ).fetchall()
