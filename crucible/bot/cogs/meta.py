"""
crucible.bot.cogs.meta — Leaderboard, Profile & Help
=====================================================

- /leaderboard — top members, all-time or for the last week/month
- /profile — points, rank and recent submissions for a member
- /help — command overview
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from crucible.bot.checks import reply, safe_defer
from crucible.constants import DEFAULT_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT
from crucible.database.engine import run_db
from crucible.engine.periods import LeaderboardPeriod
from crucible.services.embeds import build_leaderboard_embed, build_profile_embed
from crucible.services.points_service import get_leaderboard
from crucible.services.profile_service import get_profile

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot

_HELP = {
    "Challenges": (
        "`/challenges` list open challenges\n"
        "`/challenge` show one challenge\n"
        "`/submit` enter a challenge\n"
        "`/edit-submission` change your entry\n"
        "`/vote` vote for an entry (or react with the vote emoji)"
    ),
    "Standings": (
        "`/leaderboard` top members\n"
        "`/profile` your points and rank"
    ),
    "Admin": (
        "`/create-challenge`, `/close-challenge`, `/pick-winner`, `/delete-challenge`\n"
        "`/delete-submission`, `/set-points`, `/set-vote-emoji`, `/adjust-points`\n"
        "`/recalculate`, `/badge add`, `/badge list`, `/badge remove`"
    ),
}


class Meta(commands.Cog, name="Meta"):
    """Leaderboards and member profiles."""

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot

    @app_commands.command(name="leaderboard", description="Show the top members.")
    @app_commands.describe(period="Time window", limit="How many members to show")
    @app_commands.choices(
        period=[
            app_commands.Choice(name=p.value.replace("-", " ").title(), value=p.value)
            for p in LeaderboardPeriod
        ],
    )
    async def leaderboard(
        self,
        interaction: discord.Interaction,
        period: str = LeaderboardPeriod.ALL_TIME.value,
        limit: app_commands.Range[int, 1, MAX_LEADERBOARD_LIMIT] = DEFAULT_LEADERBOARD_LIMIT,
    ) -> None:
        if not await safe_defer(interaction):
            return
        entries = await run_db(
            get_leaderboard, self.bot.engine, interaction.guild_id, limit, period
        )
        await reply(
            interaction,
            embed=build_leaderboard_embed(
                entries, period=period, community_name=self.bot.cfg.community_name
            ),
        )

    @app_commands.command(name="profile", description="Show points and rank for a member.")
    @app_commands.describe(member="Member to look up (defaults to you)")
    async def profile(
        self, interaction: discord.Interaction, member: discord.Member | None = None
    ) -> None:
        if not await safe_defer(interaction):
            return
        target = member or interaction.user
        profile = await run_db(get_profile, self.bot.engine, interaction.guild_id, target.id)
        await reply(
            interaction,
            embed=build_profile_embed(
                target.display_name,
                target.display_avatar.url,
                balance=profile.balance,
                rank=profile.rank,
                submission_count=profile.submission_count,
                recent=profile.recent_submissions,
            ),
        )

    @app_commands.command(name="help", description="List the available commands.")
    async def help(self, interaction: discord.Interaction) -> None:
        embed = discord.Embed(
            title=f"{self.bot.cfg.community_name} challenges",
            color=discord.Color.blurple(),
        )
        for name, value in _HELP.items():
            embed.add_field(name=name, value=value, inline=False)
        await reply(interaction, embed=embed, ephemeral=True)


async def setup(bot: CrucibleBot) -> None:
    await bot.add_cog(Meta(bot))
