"""
crucible.engine.periods — Leaderboard Time Windows
===================================================

Maps a requested leaderboard period onto a ledger cutoff.  Unknown
period strings fall back to all-time.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime, timedelta


class LeaderboardPeriod(enum.StrEnum):
    ALL_TIME = "all-time"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


PERIOD_DAYS: dict[LeaderboardPeriod, int] = {
    LeaderboardPeriod.WEEKLY: 7,
    LeaderboardPeriod.MONTHLY: 30,
}


def resolve_period(value: str | LeaderboardPeriod | None) -> LeaderboardPeriod:
    """Coerce *value* to a period; anything unrecognised means all-time."""
    if isinstance(value, LeaderboardPeriod):
        return value
    try:
        return LeaderboardPeriod((value or "").strip().lower())
    except ValueError:
        return LeaderboardPeriod.ALL_TIME


def window_cutoff(
    period: LeaderboardPeriod, now: datetime | None = None
) -> datetime | None:
    """Earliest ledger timestamp counted for *period* (None for all-time)."""
    days = PERIOD_DAYS.get(period)
    if days is None:
        return None
    return (now or datetime.now(UTC)) - timedelta(days=days)
