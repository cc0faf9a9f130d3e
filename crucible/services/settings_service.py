"""
crucible.services.settings_service — Per-guild Settings
========================================================

Typed read/write access to the ``guild_settings`` table.  A guild without a
row gets the defaults from :mod:`crucible.constants`; updates are partial and
never clobber fields the caller did not mention.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from crucible.constants import (
    DEFAULT_POINTS_PER_SUBMISSION,
    DEFAULT_POINTS_PER_VOTE,
    DEFAULT_VOTE_EMOJI,
    MAX_VOTE_EMOJI_LENGTH,
)
from crucible.database.engine import get_session
from crucible.database.models import GuildSettings
from crucible.services.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SettingsSnapshot:
    """Effective settings for one guild."""

    guild_id: int
    points_per_submission: int = DEFAULT_POINTS_PER_SUBMISSION
    points_per_vote: int = DEFAULT_POINTS_PER_VOTE
    vote_emoji: str = DEFAULT_VOTE_EMOJI

    def to_dict(self) -> dict:
        data = asdict(self)
        data["guild_id"] = str(self.guild_id)
        return data


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def load_settings(session: Session, guild_id: int) -> SettingsSnapshot:
    """Read effective settings inside an existing session."""
    row = session.get(GuildSettings, guild_id)
    if row is None:
        return SettingsSnapshot(guild_id=guild_id)
    return SettingsSnapshot(
        guild_id=guild_id,
        points_per_submission=row.points_per_submission,
        points_per_vote=row.points_per_vote,
        vote_emoji=row.vote_emoji,
    )


def get_guild_settings(engine: Engine, guild_id: int) -> SettingsSnapshot:
    with get_session(engine) as session:
        return load_settings(session, guild_id)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _validate_points(name: str, value: int | None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be a whole number.")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative.")


def _validate_emoji(emoji: str | None) -> str | None:
    if emoji is None:
        return None
    emoji = emoji.strip()
    if not emoji or len(emoji) > MAX_VOTE_EMOJI_LENGTH or len(emoji.split()) != 1:
        raise ValidationError("The vote emoji must be a single emoji.")
    return emoji


def update_guild_settings(
    engine: Engine,
    guild_id: int,
    *,
    points_per_submission: int | None = None,
    points_per_vote: int | None = None,
    vote_emoji: str | None = None,
) -> SettingsSnapshot:
    """Apply a partial update; ``None`` means "leave unchanged"."""
    _validate_points("Points per submission", points_per_submission)
    _validate_points("Points per vote", points_per_vote)
    vote_emoji = _validate_emoji(vote_emoji)

    with get_session(engine) as session:
        row = session.get(GuildSettings, guild_id)
        if row is None:
            row = GuildSettings(
                guild_id=guild_id,
                points_per_submission=DEFAULT_POINTS_PER_SUBMISSION,
                points_per_vote=DEFAULT_POINTS_PER_VOTE,
                vote_emoji=DEFAULT_VOTE_EMOJI,
            )
            session.add(row)
        if points_per_submission is not None:
            row.points_per_submission = points_per_submission
        if points_per_vote is not None:
            row.points_per_vote = points_per_vote
        if vote_emoji is not None:
            row.vote_emoji = vote_emoji
        session.flush()
        snapshot = load_settings(session, guild_id)

    logger.info(
        "Guild %d settings updated: submission=%d vote=%d emoji=%s",
        guild_id, snapshot.points_per_submission,
        snapshot.points_per_vote, snapshot.vote_emoji,
    )
    return snapshot


def set_vote_emoji(engine: Engine, guild_id: int, emoji: str) -> SettingsSnapshot:
    """Change only the vote emoji."""
    if emoji is None:
        raise ValidationError("The vote emoji must be a single emoji.")
    return update_guild_settings(engine, guild_id, vote_emoji=emoji)
