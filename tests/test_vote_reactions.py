"""
tests/test_vote_reactions.py — Reaction Vote Listener Tests
============================================================

Feeds raw reaction payloads into the Votes cog with a mocked bot and a
real SQLite engine.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from crucible.bot.cogs.votes import Votes
from crucible.constants import DEFAULT_VOTE_EMOJI
from crucible.services import points_service, submission_service, vote_service

GUILD = 100
AUTHOR = 1
VOTER = 2
MESSAGE = 5001


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


def _make_bot(engine) -> MagicMock:
    bot = MagicMock()
    bot.engine = engine
    bot.granter = None
    bot.user = SimpleNamespace(id=424242)
    bot.cfg = SimpleNamespace(external_timeout_seconds=1.0)
    return bot


def _payload(user_id: int, emoji: str = DEFAULT_VOTE_EMOJI, message_id: int = MESSAGE):
    return SimpleNamespace(
        guild_id=GUILD, channel_id=555, message_id=message_id,
        user_id=user_id, emoji=emoji, member=None,
    )


def _posted_submission(engine, seed_challenge) -> int:
    result = submission_service.create_submission(
        engine, challenge_id=seed_challenge(), guild_id=GUILD, user_id=AUTHOR,
        username="painter", content_text="cat", message_id=MESSAGE,
    )
    return result.submission.id


class TestReactionAdd:
    def test_vote_emoji_adds_vote(self, engine, seed_challenge):
        sid = _posted_submission(engine, seed_challenge)
        cog = Votes(_make_bot(engine))

        run_async(cog.on_raw_reaction_add(_payload(VOTER)))

        assert vote_service.has_voted(engine, sid, VOTER)
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 1 + 1

    def test_other_emoji_ignored(self, engine, seed_challenge):
        sid = _posted_submission(engine, seed_challenge)
        cog = Votes(_make_bot(engine))

        run_async(cog.on_raw_reaction_add(_payload(VOTER, emoji="\U0001f525")))

        assert not vote_service.has_voted(engine, sid, VOTER)

    def test_unknown_message_ignored(self, engine, seed_challenge):
        _posted_submission(engine, seed_challenge)
        cog = Votes(_make_bot(engine))
        run_async(cog.on_raw_reaction_add(_payload(VOTER, message_id=1)))
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 1

    def test_self_vote_reaction_is_removed(self, engine, seed_challenge):
        sid = _posted_submission(engine, seed_challenge)
        bot = _make_bot(engine)
        cog = Votes(bot)

        with patch("crucible.bot.cogs.votes.remove_reaction", new=AsyncMock()) as removed, \
             patch("crucible.bot.cogs.votes.send_dm", new=AsyncMock()) as dm:
            run_async(cog.on_raw_reaction_add(_payload(AUTHOR)))

        removed.assert_awaited_once_with(bot, 555, MESSAGE, DEFAULT_VOTE_EMOJI, AUTHOR)
        dm.assert_awaited_once()
        assert not vote_service.has_voted(engine, sid, AUTHOR)
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 1

    def test_bot_reactions_ignored(self, engine, seed_challenge):
        sid = _posted_submission(engine, seed_challenge)
        cog = Votes(_make_bot(engine))
        run_async(cog.on_raw_reaction_add(_payload(424242)))
        assert not vote_service.has_voted(engine, sid, 424242)


class TestReactionRemove:
    def test_removal_takes_vote_back(self, engine, seed_challenge):
        sid = _posted_submission(engine, seed_challenge)
        cog = Votes(_make_bot(engine))

        run_async(cog.on_raw_reaction_add(_payload(VOTER)))
        run_async(cog.on_raw_reaction_remove(_payload(VOTER)))

        assert not vote_service.has_voted(engine, sid, VOTER)
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 1

    def test_removal_without_vote_is_quiet(self, engine, seed_challenge):
        _posted_submission(engine, seed_challenge)
        cog = Votes(_make_bot(engine))
        run_async(cog.on_raw_reaction_remove(_payload(AUTHOR)))
        assert points_service.get_balance(engine, GUILD, AUTHOR) == 1
