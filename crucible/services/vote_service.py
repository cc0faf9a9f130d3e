"""
crucible.services.vote_service — Vote Toggle & Reaction Votes
==============================================================

A vote is a ``submission_votes`` row keyed by (submission, voter).  The
composite primary key is the double-vote guard: the insert runs inside a
SAVEPOINT and an ``IntegrityError`` means another request got there first.

The vote row, the ``submissions.votes`` counter (updated in SQL, never read
and written back) and the ``VOTE_RECEIVED`` ledger entry for the author all
commit together.  Any chat-side follow-up (badge sync, reaction cleanup)
happens after commit in the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crucible.database.engine import get_session
from crucible.database.models import PointReason, Submission, Vote
from crucible.services.errors import (
    ConflictError,
    DuplicateVoteError,
    NotFoundError,
    SelfVoteError,
)
from crucible.services.points_service import apply_delta_in_session
from crucible.services.settings_service import load_settings

logger = logging.getLogger(__name__)

ADDED = "added"
REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class VoteOutcome:
    action: str
    submission_id: int
    guild_id: int
    author_id: int
    votes: int
    author_balance: int


# ---------------------------------------------------------------------------
# Internals (caller owns the session)
# ---------------------------------------------------------------------------

def _load_votable(session: Session, submission_id: int, voter_id: int, guild_id: int) -> Submission:
    submission = session.get(Submission, submission_id)
    if submission is None or submission.guild_id != guild_id:
        raise NotFoundError("That submission does not exist.")
    if submission.user_id == voter_id:
        raise SelfVoteError("You cannot vote for your own submission.")
    return submission


def _add(session: Session, submission: Submission, voter_id: int) -> VoteOutcome:
    try:
        with session.begin_nested():
            session.add(Vote(
                submission_id=submission.id,
                user_id=voter_id,
                guild_id=submission.guild_id,
            ))
    except IntegrityError:
        raise DuplicateVoteError("You have already voted for this submission.") from None

    session.execute(
        update(Submission)
        .where(Submission.id == submission.id)
        .values(votes=Submission.votes + 1)
    )
    return _settle(session, submission, voter_id, +1, ADDED)


def _remove(session: Session, submission: Submission, vote: Vote, voter_id: int) -> VoteOutcome:
    session.delete(vote)
    session.flush()
    session.execute(
        update(Submission)
        .where(Submission.id == submission.id)
        .values(votes=Submission.votes - 1)
    )
    return _settle(session, submission, voter_id, -1, REMOVED)


def _settle(
    session: Session, submission: Submission, voter_id: int, sign: int, action: str
) -> VoteOutcome:
    per_vote = load_settings(session, submission.guild_id).points_per_vote
    balance = apply_delta_in_session(
        session,
        submission.guild_id,
        submission.user_id,
        sign * per_vote,
        PointReason.VOTE_RECEIVED,
        related_id=submission.challenge_id,
        operator_id=voter_id,
    )
    session.refresh(submission, ["votes"])
    return VoteOutcome(
        action=action,
        submission_id=submission.id,
        guild_id=submission.guild_id,
        author_id=submission.user_id,
        votes=submission.votes,
        author_balance=balance,
    )


def _log(outcome: VoteOutcome, voter_id: int) -> None:
    logger.info(
        "Vote %s by %d on submission #%d (now %d votes)",
        outcome.action, voter_id, outcome.submission_id, outcome.votes,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def cast_vote(engine: Engine, submission_id: int, voter_id: int, guild_id: int) -> VoteOutcome:
    """Toggle *voter_id*'s vote on a submission.

    Adds the vote if absent, removes it if present.  Self-votes raise
    :class:`SelfVoteError` and change nothing.
    """
    with get_session(engine) as session:
        submission = _load_votable(session, submission_id, voter_id, guild_id)
        existing = session.get(Vote, (submission_id, voter_id))
        if existing is None:
            outcome = _add(session, submission, voter_id)
        else:
            outcome = _remove(session, submission, existing, voter_id)
    _log(outcome, voter_id)
    return outcome


def add_vote(engine: Engine, submission_id: int, voter_id: int, guild_id: int) -> VoteOutcome:
    """Reaction-add path: record a vote, conflict if it already exists."""
    with get_session(engine) as session:
        submission = _load_votable(session, submission_id, voter_id, guild_id)
        if session.get(Vote, (submission_id, voter_id)) is not None:
            raise DuplicateVoteError("You have already voted for this submission.")
        outcome = _add(session, submission, voter_id)
    _log(outcome, voter_id)
    return outcome


def remove_vote(engine: Engine, submission_id: int, voter_id: int, guild_id: int) -> VoteOutcome:
    """Reaction-remove path: drop a vote, conflict if there is none."""
    with get_session(engine) as session:
        submission = _load_votable(session, submission_id, voter_id, guild_id)
        existing = session.get(Vote, (submission_id, voter_id))
        if existing is None:
            raise ConflictError("There is no vote to remove.")
        outcome = _remove(session, submission, existing, voter_id)
    _log(outcome, voter_id)
    return outcome


def has_voted(engine: Engine, submission_id: int, voter_id: int) -> bool:
    with get_session(engine) as session:
        return session.get(Vote, (submission_id, voter_id)) is not None
