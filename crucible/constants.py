"""
crucible.constants — Shared Constants
======================================

Single source of truth for default gameplay values and presentation
constants.  Import from here instead of duplicating in cogs and services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Per-guild defaults (used when no guild_settings row exists)
# ---------------------------------------------------------------------------
DEFAULT_POINTS_PER_SUBMISSION = 1
DEFAULT_POINTS_PER_VOTE = 1
DEFAULT_VOTE_EMOJI = "\U0001f44d"  # 👍

MAX_VOTE_EMOJI_LENGTH = 64  # fits custom emoji markup <a:name:id>

# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 100

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

# ---------------------------------------------------------------------------
# Embed colours (hex ints, mirrored by the dashboard)
# ---------------------------------------------------------------------------
COLORS: dict[str, int] = {
    "primary": 0x5865F2,
    "success": 0x57F287,
    "error": 0xED4245,
    "winner": 0xFFD700,
}

# Threads auto-archive after a week of inactivity
THREAD_ARCHIVE_MINUTES = 10080
