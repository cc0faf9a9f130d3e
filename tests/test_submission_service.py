"""
tests/test_submission_service.py — Submission Tests
====================================================
Creation awards points in the same transaction; deletion recalculates the
author's balance from what is left.
"""

from __future__ import annotations

import pytest

from crucible.services import points_service, submission_service, vote_service
from crucible.services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from crucible.services.settings_service import update_guild_settings

GUILD = 100
USER = 7


def _submit(engine, challenge_id, **kw):
    params = dict(
        challenge_id=challenge_id, guild_id=GUILD, user_id=USER,
        username="painter", content_text="my cat",
    )
    params.update(kw)
    return submission_service.create_submission(engine, **params)


class TestCreate:
    def test_awards_submission_points(self, engine, seed_challenge):
        update_guild_settings(engine, GUILD, points_per_submission=4)
        cid = seed_challenge()
        result = _submit(engine, cid)
        assert result.points_awarded == 4
        assert result.balance == 4
        assert result.submission.votes == 0
        assert result.submission.content_text == "my cat"

        history = points_service.get_point_history(engine, GUILD, USER)
        assert [(h.reason, h.related_id) for h in history] == [("SUBMISSION", cid)]

    def test_requires_some_content(self, engine, seed_challenge):
        cid = seed_challenge()
        with pytest.raises(ValidationError):
            _submit(engine, cid, content_text="   ")
        assert points_service.get_balance(engine, GUILD, USER) == 0

    def test_link_alone_is_enough(self, engine, seed_challenge):
        result = _submit(engine, seed_challenge(), content_text=None, link_url="https://x.test/a")
        assert result.submission.link_url == "https://x.test/a"
        assert result.submission.content_text is None

    def test_inactive_challenge_rejected(self, engine, seed_challenge):
        with pytest.raises(ConflictError):
            _submit(engine, seed_challenge(is_active=False))

    def test_template_rejected(self, engine, seed_challenge):
        cid = seed_challenge(is_template=True, cron_schedule="0 9 * * 1")
        with pytest.raises(ConflictError):
            _submit(engine, cid)

    def test_other_guild_challenge_not_found(self, engine, seed_challenge):
        with pytest.raises(NotFoundError):
            _submit(engine, seed_challenge(guild_id=GUILD + 1))

    def test_duplicate_message_rejected(self, engine, seed_challenge):
        cid = seed_challenge()
        _submit(engine, cid, message_id=5001)
        with pytest.raises(ConflictError):
            _submit(engine, cid, message_id=5001, user_id=USER + 1)
        assert points_service.get_balance(engine, GUILD, USER + 1) == 0


class TestReads:
    def test_lookup_by_message(self, engine, seed_challenge):
        result = _submit(engine, seed_challenge())
        submission_service.attach_submission_message(
            engine, result.submission.id, message_id=777, channel_id=555
        )
        found = submission_service.get_submission_by_message(engine, 777)
        assert found.id == result.submission.id
        assert submission_service.get_submission_by_message(engine, 778) is None

    def test_get_scoped_to_guild(self, engine, seed_challenge):
        result = _submit(engine, seed_challenge())
        with pytest.raises(NotFoundError):
            submission_service.get_submission(engine, result.submission.id, guild_id=GUILD + 1)

    def test_list_most_voted_first(self, engine, seed_challenge, seed_submission):
        cid = seed_challenge()
        low = seed_submission(user_id=1, votes=1, challenge_id=cid)
        high = seed_submission(user_id=2, votes=5, challenge_id=cid)
        rows = submission_service.list_for_challenge(engine, cid)
        assert [r.id for r in rows] == [high, low]


class TestEdit:
    def test_owner_can_edit(self, engine, seed_challenge):
        sid = _submit(engine, seed_challenge()).submission.id
        edited = submission_service.edit_submission(
            engine, sid, editor_id=USER, link_url="https://x.test/b"
        )
        assert edited.link_url == "https://x.test/b"
        assert edited.content_text == "my cat"

    def test_non_owner_forbidden(self, engine, seed_challenge):
        sid = _submit(engine, seed_challenge()).submission.id
        with pytest.raises(AuthorizationError):
            submission_service.edit_submission(engine, sid, editor_id=USER + 1, content_text="x")

    def test_cannot_empty_submission(self, engine, seed_challenge):
        sid = _submit(engine, seed_challenge()).submission.id
        with pytest.raises(ValidationError):
            submission_service.edit_submission(engine, sid, editor_id=USER, content_text="")
        assert submission_service.get_submission(engine, sid).content_text == "my cat"


class TestDelete:
    def test_delete_recalculates_author(self, engine, seed_challenge):
        update_guild_settings(engine, GUILD, points_per_submission=2, points_per_vote=1)
        cid = seed_challenge()
        keep = _submit(engine, cid).submission.id
        drop = _submit(engine, cid).submission.id
        for voter in (20, 21, 22):
            vote_service.cast_vote(engine, drop, voter, GUILD)
        vote_service.cast_vote(engine, keep, 20, GUILD)
        assert points_service.get_balance(engine, GUILD, USER) == 2 + 2 + 3 + 1

        deletion = submission_service.delete_submission(engine, drop, guild_id=GUILD)

        assert deletion.balance == 2 + 1
        assert points_service.get_balance(engine, GUILD, USER) == 3
        assert not vote_service.has_voted(engine, drop, 20)
        with pytest.raises(NotFoundError):
            submission_service.get_submission(engine, drop)

    def test_delete_wrong_guild(self, engine, seed_challenge):
        sid = _submit(engine, seed_challenge()).submission.id
        with pytest.raises(NotFoundError):
            submission_service.delete_submission(engine, sid, guild_id=GUILD + 1)
