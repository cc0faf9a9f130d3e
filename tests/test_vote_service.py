"""
tests/test_vote_service.py — Vote Toggle Tests
===============================================
The vote row, the submission's counter and the author's VOTE_RECEIVED
ledger entry must move together, and self-votes must change nothing.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from crucible.database.models import Challenge, PointLog, Submission, Vote
from crucible.services import points_service, vote_service
from crucible.services.errors import (
    ConflictError,
    DuplicateVoteError,
    NotFoundError,
    SelfVoteError,
)
from crucible.services.settings_service import update_guild_settings

GUILD = 100
AUTHOR = 1
VOTER = 2


@pytest.fixture
def submission_id(seed_submission):
    return seed_submission(user_id=AUTHOR)


def _votes(engine, sid: int) -> int:
    with Session(engine) as session:
        return session.get(Submission, sid).votes


class TestCastVote:
    def test_toggle_adds_then_removes(self, engine, submission_id):
        first = vote_service.cast_vote(engine, submission_id, VOTER, GUILD)
        assert first.action == vote_service.ADDED
        assert first.votes == 1
        assert first.author_balance == 1
        assert vote_service.has_voted(engine, submission_id, VOTER)

        second = vote_service.cast_vote(engine, submission_id, VOTER, GUILD)
        assert second.action == vote_service.REMOVED
        assert second.votes == 0
        assert second.author_balance == 0
        assert not vote_service.has_voted(engine, submission_id, VOTER)

    def test_self_vote_changes_nothing(self, engine, submission_id):
        with pytest.raises(SelfVoteError):
            vote_service.cast_vote(engine, submission_id, AUTHOR, GUILD)
        assert _votes(engine, submission_id) == 0
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 0
        assert not vote_service.has_voted(engine, submission_id, AUTHOR)

    def test_self_vote_is_a_conflict(self):
        assert issubclass(SelfVoteError, ConflictError)

    def test_unknown_submission(self, engine):
        with pytest.raises(NotFoundError):
            vote_service.cast_vote(engine, 4040, VOTER, GUILD)

    def test_other_guild_is_not_found(self, engine, submission_id):
        with pytest.raises(NotFoundError):
            vote_service.cast_vote(engine, submission_id, VOTER, GUILD + 1)

    def test_points_per_vote_setting(self, engine, submission_id):
        update_guild_settings(engine, GUILD, points_per_vote=3)
        outcome = vote_service.cast_vote(engine, submission_id, VOTER, GUILD)
        assert outcome.author_balance == 3

    def test_several_voters_count(self, engine, submission_id):
        for voter in (10, 11, 12):
            vote_service.cast_vote(engine, submission_id, voter, GUILD)
        assert _votes(engine, submission_id) == 3
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 3

    def test_ledger_tagged_with_challenge_and_voter(self, engine, submission_id):
        vote_service.cast_vote(engine, submission_id, VOTER, GUILD)
        with Session(engine) as session:
            challenge_id = session.get(Submission, submission_id).challenge_id
            row = session.scalar(select(PointLog))
        assert row.reason == "VOTE_RECEIVED"
        assert row.user_id == AUTHOR
        assert row.related_id == challenge_id
        assert row.operator_id == VOTER


class TestReactionPaths:
    def test_add_twice_is_duplicate(self, engine, submission_id):
        vote_service.add_vote(engine, submission_id, VOTER, GUILD)
        with pytest.raises(DuplicateVoteError):
            vote_service.add_vote(engine, submission_id, VOTER, GUILD)
        assert _votes(engine, submission_id) == 1

    def test_remove_without_vote_conflicts(self, engine, submission_id):
        with pytest.raises(ConflictError):
            vote_service.remove_vote(engine, submission_id, VOTER, GUILD)
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 0

    def test_add_then_remove_restores_balance(self, engine, submission_id):
        vote_service.add_vote(engine, submission_id, VOTER, GUILD)
        outcome = vote_service.remove_vote(engine, submission_id, VOTER, GUILD)
        assert outcome.votes == 0
        assert outcome.author_balance == 0


class TestStorageGuard:
    """The (submission, voter) primary key rejects a vote the pre-check missed.

    Runs on the file-backed engine so the insert sits in a real SAVEPOINT
    inside the outer transaction.
    """

    def _seed(self, engine) -> int:
        with Session(engine) as session:
            challenge = Challenge(guild_id=GUILD, title="Draw a cat", description="", type="art")
            session.add(challenge)
            session.flush()
            submission = Submission(
                challenge_id=challenge.id, guild_id=GUILD, user_id=AUTHOR,
                username="painter", content_text="entry",
            )
            session.add(submission)
            session.commit()
            return submission.id

    def _vote_row(self, engine, sid: int) -> None:
        with Session(engine) as session:
            session.add(Vote(submission_id=sid, user_id=VOTER, guild_id=GUILD))
            session.commit()

    def _ledger_rows(self, engine) -> int:
        with Session(engine) as session:
            return len(session.scalars(select(PointLog)).all())

    def test_savepoint_rejects_existing_row(self, file_engine):
        sid = self._seed(file_engine)
        self._vote_row(file_engine, sid)

        with Session(file_engine) as session:
            submission = session.get(Submission, sid)
            with pytest.raises(DuplicateVoteError):
                vote_service._add(session, submission, VOTER)
            # Only the savepoint rolled back; the outer transaction still commits.
            session.commit()

        assert _votes(file_engine, sid) == 0
        assert points_service.get_balance(file_engine, GUILD, AUTHOR) == 0
        assert self._ledger_rows(file_engine) == 0

    def test_cast_vote_racing_an_insert(self, file_engine):
        sid = self._seed(file_engine)
        self._vote_row(file_engine, sid)
        real_get = Session.get

        def get_missing_votes(session, entity, ident, **kw):
            if entity is Vote:
                return None
            return real_get(session, entity, ident, **kw)

        with patch.object(Session, "get", new=get_missing_votes):
            with pytest.raises(DuplicateVoteError):
                vote_service.cast_vote(file_engine, sid, VOTER, GUILD)

        assert vote_service.has_voted(file_engine, sid, VOTER)
        assert _votes(file_engine, sid) == 0
        assert points_service.get_balance(file_engine, GUILD, AUTHOR) == 0
        assert self._ledger_rows(file_engine) == 0
