"""
tests/test_settings_and_cron.py — Settings, Cron & Period Helpers
==================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from crucible.constants import (
    DEFAULT_POINTS_PER_SUBMISSION,
    DEFAULT_POINTS_PER_VOTE,
    DEFAULT_VOTE_EMOJI,
)
from crucible.engine.cron import following_fire_time, is_valid_cron, next_fire_time
from crucible.engine.periods import LeaderboardPeriod, resolve_period, window_cutoff
from crucible.services import settings_service
from crucible.services.errors import ValidationError

GUILD = 100


# ===========================================================================
# Guild settings
# ===========================================================================
class TestGuildSettings:
    def test_defaults_without_row(self, engine):
        snap = settings_service.get_guild_settings(engine, GUILD)
        assert snap.points_per_submission == DEFAULT_POINTS_PER_SUBMISSION
        assert snap.points_per_vote == DEFAULT_POINTS_PER_VOTE
        assert snap.vote_emoji == DEFAULT_VOTE_EMOJI

    def test_partial_update_keeps_other_fields(self, engine):
        settings_service.update_guild_settings(engine, GUILD, points_per_vote=5)
        snap = settings_service.update_guild_settings(engine, GUILD, points_per_submission=2)
        assert snap.points_per_vote == 5
        assert snap.points_per_submission == 2
        assert snap.vote_emoji == DEFAULT_VOTE_EMOJI

    def test_set_vote_emoji(self, engine):
        snap = settings_service.set_vote_emoji(engine, GUILD, " ⭐ ")
        assert snap.vote_emoji == "⭐"
        assert settings_service.get_guild_settings(engine, GUILD).vote_emoji == "⭐"

    @pytest.mark.parametrize("emoji", ["", "   ", "two words", "x" * 65])
    def test_bad_emoji_rejected(self, engine, emoji):
        with pytest.raises(ValidationError):
            settings_service.set_vote_emoji(engine, GUILD, emoji)

    def test_negative_points_rejected(self, engine):
        with pytest.raises(ValidationError):
            settings_service.update_guild_settings(engine, GUILD, points_per_vote=-1)
        assert settings_service.get_guild_settings(engine, GUILD).points_per_vote == DEFAULT_POINTS_PER_VOTE

    def test_to_dict_stringifies_guild(self, engine):
        data = settings_service.get_guild_settings(engine, GUILD).to_dict()
        assert data["guild_id"] == str(GUILD)

    def test_guilds_are_isolated(self, engine):
        settings_service.update_guild_settings(engine, GUILD, points_per_vote=9)
        assert settings_service.get_guild_settings(engine, GUILD + 1).points_per_vote == DEFAULT_POINTS_PER_VOTE


# ===========================================================================
# Cron
# ===========================================================================
class TestCron:
    @pytest.mark.parametrize("expr", ["0 9 * * 1", "*/15 * * * *", "30 18 1 * *"])
    def test_valid(self, expr):
        assert is_valid_cron(expr)

    @pytest.mark.parametrize(
        "expr", [None, "", "every monday", "0 9 * *", "0 9 * * 1 2026", "61 * * * *"]
    )
    def test_invalid(self, expr):
        assert not is_valid_cron(expr)

    def test_next_fire_is_strictly_after(self):
        monday_nine = datetime(2026, 3, 16, 9, 0, tzinfo=UTC)
        assert next_fire_time("0 9 * * 1", monday_nine) == monday_nine + timedelta(days=7)

    def test_naive_input_treated_as_utc(self):
        fire = next_fire_time("0 9 * * *", datetime(2026, 3, 16, 8, 0))
        assert fire == datetime(2026, 3, 16, 9, 0, tzinfo=UTC)

    def test_following_fire_after_early_wake_skips_same_tick(self):
        fired = datetime(2026, 3, 16, 9, 0, tzinfo=UTC)
        woke_early = fired - timedelta(milliseconds=5)
        assert following_fire_time("0 9 * * 1", fired, woke_early) == fired + timedelta(days=7)

    def test_following_fire_skips_missed_ticks(self):
        fired = datetime(2026, 3, 16, 9, 0, tzinfo=UTC)
        late = fired + timedelta(days=15)
        assert following_fire_time("0 9 * * 1", fired, late) == fired + timedelta(days=21)


# ===========================================================================
# Periods
# ===========================================================================
class TestPeriods:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("weekly", LeaderboardPeriod.WEEKLY),
            ("MONTHLY", LeaderboardPeriod.MONTHLY),
            ("all-time", LeaderboardPeriod.ALL_TIME),
            ("yearly", LeaderboardPeriod.ALL_TIME),
            (None, LeaderboardPeriod.ALL_TIME),
        ],
    )
    def test_resolve(self, raw, expected):
        assert resolve_period(raw) is expected

    def test_cutoffs(self):
        now = datetime(2026, 3, 20, tzinfo=UTC)
        assert window_cutoff(LeaderboardPeriod.WEEKLY, now) == now - timedelta(days=7)
        assert window_cutoff(LeaderboardPeriod.MONTHLY, now) == now - timedelta(days=30)
        assert window_cutoff(LeaderboardPeriod.ALL_TIME, now) is None
