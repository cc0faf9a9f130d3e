"""
crucible.services.points_service — Ledger, Balances & Leaderboards
===================================================================

Every point mutation goes through :func:`apply_delta_in_session`: it
appends one ``point_logs`` row and bumps the cached ``points`` balance with a
single ``INSERT … ON CONFLICT DO UPDATE SET points = points + excluded.points``
statement inside the same transaction.  The increment happens in the
database, so concurrent awards to one user cannot lose an update, and the
ledger and the cache commit or roll back together.

Badge evaluation is a separate post-commit step (:func:`award_points`); its
failures are reported, never raised.

Leaderboards read the cache for all-time standings and sum the ledger for
weekly/monthly windows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Engine, and_, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from crucible.constants import DEFAULT_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT
from crucible.database.engine import get_session, run_db
from crucible.database.models import PointBalance, PointLog, PointReason, Submission
from crucible.engine.periods import LeaderboardPeriod, resolve_period, window_cutoff
from crucible.services.badge_service import BadgeEvaluation, evaluate_badges
from crucible.services.errors import ValidationError
from crucible.services.settings_service import load_settings

if TYPE_CHECKING:
    from crucible.services.badge_service import RoleGranter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    user_id: int
    points: int


@dataclass(frozen=True, slots=True)
class RankInfo:
    rank: int
    total: int


@dataclass(slots=True)
class AwardResult:
    """A committed point award plus the outcome of its badge sync."""

    balance: int
    badges: BadgeEvaluation = field(default_factory=BadgeEvaluation)


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------

def coerce_reason(reason: PointReason | str) -> PointReason:
    """Reject anything outside the closed reason set."""
    try:
        return PointReason(reason)
    except ValueError:
        raise ValidationError(f"Unknown point reason: {reason!r}") from None


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Point amounts must be whole numbers.")


# ---------------------------------------------------------------------------
# Atomic balance primitives
# ---------------------------------------------------------------------------

def _balance_upsert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(PointBalance)
    if dialect == "sqlite":
        return sqlite.insert(PointBalance)
    raise RuntimeError(f"Unsupported database dialect for balance upsert: {dialect}")


def increment_balance(session: Session, guild_id: int, user_id: int, amount: int) -> None:
    """``balance += amount`` in one statement, creating the row at *amount*."""
    stmt = _balance_upsert(session).values(
        guild_id=guild_id, user_id=user_id, points=amount
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[PointBalance.guild_id, PointBalance.user_id],
        set_={"points": PointBalance.points + stmt.excluded.points},
    )
    session.execute(stmt)


def overwrite_balance(session: Session, guild_id: int, user_id: int, points: int) -> None:
    """Set the cached balance outright (recalculation only)."""
    stmt = _balance_upsert(session).values(
        guild_id=guild_id, user_id=user_id, points=points
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[PointBalance.guild_id, PointBalance.user_id],
        set_={"points": stmt.excluded.points},
    )
    session.execute(stmt)


def read_balance(session: Session, guild_id: int, user_id: int) -> int:
    points = session.scalar(
        select(PointBalance.points).where(
            PointBalance.guild_id == guild_id, PointBalance.user_id == user_id
        )
    )
    return points or 0


# ---------------------------------------------------------------------------
# Ledger writes
# ---------------------------------------------------------------------------

def apply_delta_in_session(
    session: Session,
    guild_id: int,
    user_id: int,
    amount: int,
    reason: PointReason | str,
    *,
    related_id: int | None = None,
    operator_id: int | None = None,
) -> int:
    """Append a ledger entry and bump the balance inside *session*.

    The caller owns the transaction.  Returns the balance as seen by this
    transaction after the increment.
    """
    reason = coerce_reason(reason)
    _validate_amount(amount)

    session.add(PointLog(
        guild_id=guild_id,
        user_id=user_id,
        amount=amount,
        reason=reason.value,
        related_id=related_id,
        operator_id=operator_id,
    ))
    session.flush()
    increment_balance(session, guild_id, user_id, amount)
    return read_balance(session, guild_id, user_id)


def apply_delta(
    engine: Engine,
    guild_id: int,
    user_id: int,
    amount: int,
    reason: PointReason | str,
    *,
    related_id: int | None = None,
    operator_id: int | None = None,
) -> int:
    """Atomically log and apply a signed point change.  Returns the new balance."""
    with get_session(engine) as session:
        balance = apply_delta_in_session(
            session, guild_id, user_id, amount, reason,
            related_id=related_id, operator_id=operator_id,
        )
    logger.info(
        "Points %+d (%s) → user %d in guild %d, balance %d",
        amount, reason, user_id, guild_id, balance,
    )
    return balance


def adjust_points(
    engine: Engine, guild_id: int, user_id: int, amount: int, *, operator_id: int
) -> int:
    """Admin adjustment: positive → ADMIN_ADD, negative → ADMIN_REMOVE."""
    _validate_amount(amount)
    if amount == 0:
        raise ValidationError("The adjustment amount cannot be zero.")
    reason = PointReason.ADMIN_ADD if amount > 0 else PointReason.ADMIN_REMOVE
    return apply_delta(
        engine, guild_id, user_id, amount, reason, operator_id=operator_id
    )


async def award_points(
    engine: Engine,
    granter: RoleGranter | None,
    guild_id: int,
    user_id: int,
    amount: int,
    reason: PointReason | str,
    *,
    related_id: int | None = None,
    operator_id: int | None = None,
    timeout: float = 30.0,
) -> AwardResult:
    """Commit a point change, then run the best-effort badge sync."""
    balance = await run_db(
        apply_delta, engine, guild_id, user_id, amount, reason,
        related_id=related_id, operator_id=operator_id,
    )
    badges = await evaluate_badges(
        engine, granter, guild_id, user_id, balance, timeout=timeout
    )
    return AwardResult(balance=balance, badges=badges)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_balance(engine: Engine, guild_id: int, user_id: int) -> int:
    with get_session(engine) as session:
        return read_balance(session, guild_id, user_id)


def get_point_history(
    engine: Engine, guild_id: int, user_id: int, limit: int = 20
) -> list[PointLog]:
    """Most recent ledger entries for a user, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(PointLog)
            .where(PointLog.guild_id == guild_id, PointLog.user_id == user_id)
            .order_by(PointLog.created_at.desc(), PointLog.id.desc())
            .limit(limit)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


# ---------------------------------------------------------------------------
# Recalculation
# ---------------------------------------------------------------------------

def recalculate_in_session(session: Session, guild_id: int, user_id: int) -> int:
    """Rebuild a balance from current submissions and votes.

    ``submissions × points_per_submission + Σ votes × points_per_vote`` under
    the guild's *current* settings.  Only the cache is overwritten; the
    ledger keeps its history.
    """
    settings = load_settings(session, guild_id)
    count, total_votes = session.execute(
        select(
            func.count(Submission.id),
            func.coalesce(func.sum(Submission.votes), 0),
        ).where(Submission.guild_id == guild_id, Submission.user_id == user_id)
    ).one()
    points = (
        count * settings.points_per_submission
        + total_votes * settings.points_per_vote
    )
    overwrite_balance(session, guild_id, user_id, points)
    return points


def recalculate(engine: Engine, guild_id: int, user_id: int) -> int:
    with get_session(engine) as session:
        points = recalculate_in_session(session, guild_id, user_id)
    logger.info("Recalculated user %d in guild %d → %d points", user_id, guild_id, points)
    return points


# ---------------------------------------------------------------------------
# Leaderboards & ranks
# ---------------------------------------------------------------------------

def _clamp_limit(limit: int) -> int:
    return max(1, min(int(limit or DEFAULT_LEADERBOARD_LIMIT), MAX_LEADERBOARD_LIMIT))


def get_leaderboard(
    engine: Engine,
    guild_id: int,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
    period: str | LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
    *,
    now: datetime | None = None,
) -> list[LeaderboardEntry]:
    """Top users for *period*; ties are broken by ascending user id."""
    limit = _clamp_limit(limit)
    resolved = resolve_period(period)
    cutoff = window_cutoff(resolved, now)

    with get_session(engine) as session:
        if cutoff is None:
            rows = session.execute(
                select(PointBalance.user_id, PointBalance.points)
                .where(PointBalance.guild_id == guild_id)
                .order_by(PointBalance.points.desc(), PointBalance.user_id)
                .limit(limit)
            ).all()
        else:
            total = func.sum(PointLog.amount).label("points")
            rows = session.execute(
                select(PointLog.user_id, total)
                .where(PointLog.guild_id == guild_id, PointLog.created_at >= cutoff)
                .group_by(PointLog.user_id)
                .having(func.sum(PointLog.amount) > 0)
                .order_by(total.desc(), PointLog.user_id)
                .limit(limit)
            ).all()

    return [LeaderboardEntry(user_id=r[0], points=int(r[1])) for r in rows]


def rank_in_session(session: Session, guild_id: int, user_id: int) -> RankInfo | None:
    mine = session.get(PointBalance, (guild_id, user_id))
    if mine is None:
        return None

    total: int = session.scalar(
        select(func.count()).select_from(PointBalance)
        .where(PointBalance.guild_id == guild_id)
    ) or 0
    ahead: int = session.scalar(
        select(func.count()).select_from(PointBalance).where(
            PointBalance.guild_id == guild_id,
            or_(
                PointBalance.points > mine.points,
                and_(
                    PointBalance.points == mine.points,
                    PointBalance.user_id < user_id,
                ),
            ),
        )
    ) or 0
    return RankInfo(rank=ahead + 1, total=total)


def get_rank(engine: Engine, guild_id: int, user_id: int) -> RankInfo | None:
    """1-based all-time position, or None if the user has no balance row."""
    with get_session(engine) as session:
        return rank_in_session(session, guild_id, user_id)
