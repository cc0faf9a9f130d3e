"""
crucible.services.embeds — Discord embed builders
==================================================

All embed construction lives here so cogs and the gateway only need to
supply data.
"""

from __future__ import annotations

import discord

from crucible.constants import COLORS, RANK_BADGES
from crucible.database.models import Challenge, Submission
from crucible.services.points_service import LeaderboardEntry, RankInfo

_FIELD_LIMIT = 1024


def _clip(text: str, limit: int = _FIELD_LIMIT) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def success_embed(title: str, description: str = "") -> discord.Embed:
    return discord.Embed(
        title=f"✅ {title}", description=description, color=COLORS["success"]
    )


def error_embed(description: str, title: str = "Error") -> discord.Embed:
    return discord.Embed(
        title=f"❌ {title}", description=description, color=COLORS["error"]
    )


def build_challenge_embed(challenge: Challenge, *, submissions: int | None = None) -> discord.Embed:
    """Announcement embed for a concrete challenge or a template."""
    embed = discord.Embed(
        title=f"\U0001f3c6 {challenge.title}",
        description=_clip(challenge.description or "*No description.*", 4000),
        color=COLORS["primary"],
    )
    embed.add_field(name="Type", value=challenge.type, inline=True)
    embed.add_field(name="ID", value=f"#{challenge.id}", inline=True)
    if challenge.is_template:
        embed.add_field(name="Schedule", value=f"`{challenge.cron_schedule}`", inline=True)
    if challenge.ends_at is not None:
        embed.add_field(
            name="Ends", value=discord.utils.format_dt(challenge.ends_at, "R"), inline=True
        )
    if submissions is not None:
        embed.add_field(name="Submissions", value=str(submissions), inline=True)
    embed.set_footer(text="Use /submit in the thread to enter.")
    return embed


def build_closed_challenge_embed(challenge: Challenge, winner_id: int | None = None) -> discord.Embed:
    """Replacement for the original post once a challenge is over."""
    embed = discord.Embed(
        title=f"\U0001f512 {challenge.title} (closed)",
        description=_clip(challenge.description or "", 4000),
        color=COLORS["winner"] if winner_id else COLORS["error"],
    )
    if winner_id:
        embed.add_field(name="Winner", value=f"<@{winner_id}>", inline=False)
    return embed


def build_submission_embed(submission: Submission, *, vote_emoji: str) -> discord.Embed:
    embed = discord.Embed(
        title=f"Submission #{submission.id}",
        description=_clip(submission.content_text or "", 4000),
        color=COLORS["primary"],
    )
    embed.set_author(name=submission.username)
    if submission.link_url:
        embed.add_field(name="Link", value=_clip(submission.link_url), inline=False)
    if submission.attachment_url:
        embed.set_image(url=submission.attachment_url)
    embed.set_footer(text=f"React with {vote_emoji} to vote")
    return embed


def build_winner_embed(challenge: Challenge, winner_id: int, bonus: int) -> discord.Embed:
    return discord.Embed(
        title="\U0001f389 We have a winner!",
        description=(
            f"<@{winner_id}> wins **{challenge.title}** and receives "
            f"**{bonus}** bonus point{'s' if bonus != 1 else ''}."
        ),
        color=COLORS["winner"],
    )


def build_leaderboard_embed(
    entries: list[LeaderboardEntry], *, period: str, community_name: str
) -> discord.Embed:
    embed = discord.Embed(
        title=f"\U0001f4ca {community_name} Leaderboard ({period})",
        color=COLORS["primary"],
    )
    if not entries:
        embed.description = "No points have been earned in this period yet."
        return embed

    lines = []
    for i, entry in enumerate(entries):
        marker = RANK_BADGES[i] if i < len(RANK_BADGES) else f"**{i + 1}.**"
        lines.append(f"{marker} <@{entry.user_id}> · {entry.points} pts")
    embed.description = "\n".join(lines)
    return embed


def build_profile_embed(
    display_name: str,
    avatar_url: str | None,
    *,
    balance: int,
    rank: RankInfo | None,
    submission_count: int,
    recent: list[Submission],
) -> discord.Embed:
    embed = discord.Embed(title=f"{display_name}'s profile", color=COLORS["primary"])
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    embed.add_field(name="Points", value=str(balance), inline=True)
    embed.add_field(
        name="Rank",
        value=f"#{rank.rank} of {rank.total}" if rank else "Unranked",
        inline=True,
    )
    embed.add_field(name="Submissions", value=str(submission_count), inline=True)
    if recent:
        embed.add_field(
            name="Recent submissions",
            value=_clip("\n".join(
                f"#{s.id} on challenge #{s.challenge_id} ({s.votes} votes)" for s in recent
            )),
            inline=False,
        )
    return embed
