"""
crucible.services.challenge_service — Challenges & Templates
=============================================================

Challenges and recurring templates share the ``challenges`` table:

* A **template** (``is_template=True``) carries a cron schedule and never
  accepts submissions.  Its states are template-active → template-cancelled.
* A **concrete challenge** is created active, may be closed (terminal for
  new submissions) and may be hard-deleted, which cascades to submissions
  and votes and can optionally reverse the ledger entries tagged with it.

All functions are synchronous; cogs and the scheduler call them through
``run_db``.  Returned rows are expunged so they can be read off-thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from crucible.database.engine import get_session
from crucible.database.models import Challenge, PointLog, PointReason, Submission
from crucible.engine.cron import is_valid_cron
from crucible.services.errors import ConflictError, NotFoundError, ValidationError
from crucible.services.points_service import apply_delta_in_session, increment_balance

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeletionSummary:
    challenge_id: int
    title: str
    was_template: bool
    submissions_deleted: int
    reversed_points: dict[int, int] = field(default_factory=dict)


@dataclass(slots=True)
class WinnerResult:
    challenge: Challenge
    winner_id: int
    bonus: int
    balance: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_for_guild(session: Session, challenge_id: int, guild_id: int | None) -> Challenge:
    challenge = session.get(Challenge, challenge_id)
    if challenge is None or (guild_id is not None and challenge.guild_id != guild_id):
        raise NotFoundError(f"No challenge with the ID #{challenge_id} exists.")
    return challenge


def _detach(session: Session, challenge: Challenge) -> Challenge:
    session.flush()
    session.refresh(challenge)
    session.expunge(challenge)
    return challenge


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def create_challenge(
    engine: Engine,
    *,
    guild_id: int,
    title: str,
    description: str = "",
    type: str,
    created_by: int | None = None,
    channel_id: int | None = None,
    starts_at: datetime | None = None,
    ends_at: datetime | None = None,
    is_template: bool = False,
    cron_schedule: str | None = None,
) -> Challenge:
    """Insert a concrete challenge or a recurring template."""
    title = (title or "").strip()
    if not title:
        raise ValidationError("A challenge needs a title.")
    if not (type or "").strip():
        raise ValidationError("A challenge needs a type.")
    if starts_at and ends_at and ends_at <= starts_at:
        raise ValidationError("The end time must be after the start time.")

    if is_template:
        if not is_valid_cron(cron_schedule):
            raise ValidationError(
                f"The schedule `{cron_schedule}` is not a valid cron string."
            )
    elif cron_schedule:
        raise ValidationError("Only recurring templates can carry a schedule.")

    with get_session(engine) as session:
        challenge = Challenge(
            guild_id=guild_id,
            title=title,
            description=description or "",
            type=type.strip(),
            created_by=created_by,
            channel_id=channel_id,
            starts_at=starts_at,
            ends_at=ends_at,
            is_active=True,
            is_template=is_template,
            cron_schedule=cron_schedule.strip() if is_template else None,
        )
        session.add(challenge)
        challenge = _detach(session, challenge)

    logger.info(
        "Created %s #%d %r in guild %d",
        "template" if is_template else "challenge",
        challenge.id, challenge.title, guild_id,
    )
    return challenge


def create_instance_from_template(engine: Engine, template_id: int) -> Challenge | None:
    """Spawn a concrete challenge from a template.

    Returns None when the template no longer exists or has been cancelled,
    which tells the scheduler to stop its job.
    """
    with get_session(engine) as session:
        template = session.get(Challenge, template_id)
        if template is None or not template.is_template or not template.is_active:
            return None
        instance = Challenge(
            guild_id=template.guild_id,
            title=template.title,
            description=template.description,
            type=template.type,
            created_by=template.created_by,
            channel_id=template.channel_id,
            is_active=True,
            is_template=False,
            cron_schedule=None,
        )
        session.add(instance)
        return _detach(session, instance)


def attach_message_and_thread(
    engine: Engine,
    challenge_id: int,
    *,
    message_id: int,
    thread_id: int | None,
    channel_id: int | None = None,
) -> bool:
    """Link a challenge to its posted announcement.  False if it vanished."""
    with get_session(engine) as session:
        challenge = session.get(Challenge, challenge_id)
        if challenge is None:
            return False
        challenge.message_id = message_id
        challenge.thread_id = thread_id
        if channel_id is not None:
            challenge.channel_id = channel_id
        return True


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_challenge(engine: Engine, challenge_id: int, *, guild_id: int | None = None) -> Challenge:
    with get_session(engine) as session:
        challenge = _load_for_guild(session, challenge_id, guild_id)
        session.expunge(challenge)
        return challenge


def list_active_challenges(engine: Engine, guild_id: int) -> list[Challenge]:
    """Open, non-template challenges, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Challenge)
            .where(
                Challenge.guild_id == guild_id,
                Challenge.is_active.is_(True),
                Challenge.is_template.is_(False),
            )
            .order_by(Challenge.id.desc())
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def list_templates(engine: Engine, guild_id: int, *, include_cancelled: bool = False) -> list[Challenge]:
    with get_session(engine) as session:
        stmt = select(Challenge).where(
            Challenge.guild_id == guild_id, Challenge.is_template.is_(True)
        )
        if not include_cancelled:
            stmt = stmt.where(Challenge.is_active.is_(True))
        rows = session.scalars(stmt.order_by(Challenge.id)).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def list_active_templates(engine: Engine) -> list[Challenge]:
    """Every active template across all guilds (scheduler bootstrap)."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Challenge)
            .where(Challenge.is_template.is_(True), Challenge.is_active.is_(True))
            .order_by(Challenge.id)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def count_submissions(engine: Engine, challenge_id: int) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count(Submission.id)).where(Submission.challenge_id == challenge_id)
        ) or 0


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

def close_challenge(engine: Engine, challenge_id: int, *, guild_id: int | None = None) -> Challenge:
    """active → closed (or template-active → template-cancelled).

    Closing twice is a conflict.  For templates the caller must also cancel
    the scheduler job.
    """
    with get_session(engine) as session:
        challenge = _load_for_guild(session, challenge_id, guild_id)
        if not challenge.is_active:
            raise ConflictError(
                f"Challenge #{challenge_id}: {challenge.title} is already inactive."
            )
        challenge.is_active = False
        challenge = _detach(session, challenge)

    logger.info(
        "Closed %s #%d in guild %d",
        "template" if challenge.is_template else "challenge",
        challenge.id, challenge.guild_id,
    )
    return challenge


def select_winner(
    engine: Engine,
    challenge_id: int,
    *,
    guild_id: int,
    winner_id: int,
    bonus_points: int,
    operator_id: int,
) -> WinnerResult:
    """Award a WINNER_BONUS and close the challenge in one transaction."""
    if isinstance(bonus_points, bool) or not isinstance(bonus_points, int) or bonus_points < 1:
        raise ValidationError("Bonus points must be at least 1.")

    with get_session(engine) as session:
        challenge = _load_for_guild(session, challenge_id, guild_id)
        if challenge.is_template:
            raise ConflictError("Winners are picked on challenges, not recurring templates.")
        if not challenge.is_active:
            raise ConflictError(f"Challenge #{challenge_id} is already closed.")

        balance = apply_delta_in_session(
            session, guild_id, winner_id, bonus_points, PointReason.WINNER_BONUS,
            related_id=challenge_id, operator_id=operator_id,
        )
        challenge.is_active = False
        challenge = _detach(session, challenge)

    logger.info(
        "Winner %d picked for challenge #%d (+%d points)",
        winner_id, challenge_id, bonus_points,
    )
    return WinnerResult(
        challenge=challenge, winner_id=winner_id, bonus=bonus_points, balance=balance
    )


def delete_challenge(
    engine: Engine,
    challenge_id: int,
    *,
    guild_id: int | None = None,
    reverse_points: bool = False,
) -> DeletionSummary:
    """Hard-delete a challenge with its submissions and votes.

    With *reverse_points*, every ledger entry tagged with this challenge is
    summed per user, subtracted from that user's balance and purged, so the
    ledger and the cache stay in agreement.
    """
    with get_session(engine) as session:
        challenge = _load_for_guild(session, challenge_id, guild_id)
        summary = DeletionSummary(
            challenge_id=challenge.id,
            title=challenge.title,
            was_template=challenge.is_template,
            submissions_deleted=len(challenge.submissions),
        )

        if reverse_points:
            rows = session.execute(
                select(PointLog.user_id, func.sum(PointLog.amount))
                .where(
                    PointLog.guild_id == challenge.guild_id,
                    PointLog.related_id == challenge_id,
                )
                .group_by(PointLog.user_id)
            ).all()
            for user_id, total in rows:
                total = int(total or 0)
                if total:
                    increment_balance(session, challenge.guild_id, user_id, -total)
                summary.reversed_points[user_id] = total
            session.execute(
                delete(PointLog).where(
                    PointLog.guild_id == challenge.guild_id,
                    PointLog.related_id == challenge_id,
                )
            )

        session.delete(challenge)

    logger.info(
        "Deleted challenge #%d (%d submissions, %d users reversed)",
        challenge_id, summary.submissions_deleted, len(summary.reversed_points),
    )
    return summary
