"""
crucible.engine.cron — Cron Expression Helpers
===============================================

Pure functions around :mod:`croniter`.  Templates carry a standard
five-field cron string (minute hour day-of-month month day-of-week),
evaluated in UTC.  No database or Discord I/O here.
"""

from __future__ import annotations

from datetime import UTC, datetime

from croniter import croniter

CRON_FIELD_COUNT = 5


def is_valid_cron(expression: str | None) -> bool:
    """Return True if *expression* is a valid five-field cron string."""
    if not expression or not isinstance(expression, str):
        return False
    if len(expression.split()) != CRON_FIELD_COUNT:
        return False
    return croniter.is_valid(expression)


def utc_now() -> datetime:
    return datetime.now(UTC)


def next_fire_time(expression: str, after: datetime | None = None) -> datetime:
    """Next moment strictly after *after* (default: now) that matches *expression*."""
    base = after or utc_now()
    if base.tzinfo is None:
        base = base.replace(tzinfo=UTC)
    return croniter(expression, base).get_next(datetime)


def following_fire_time(expression: str, last_fire: datetime, now: datetime) -> datetime:
    """Fire after *last_fire*, skipping any ticks already behind *now*.

    Always strictly later than *last_fire*, so one tick never fires twice.
    """
    return next_fire_time(expression, max(last_fire, now))
