"""
crucible.bot.cogs.admin — Admin Slash Commands
===============================================

Discord slash commands for server admins:
- /set-points — points per submission / per vote
- /set-vote-emoji — the reaction that counts as a vote
- /adjust-points — manual ledger adjustment for a member
- /recalculate — rebuild a member's balance from submissions and votes
- /points-history — recent ledger entries for a member
- /badge add | list | remove — point-threshold badge roles

All commands require the configured admin role (or Administrator).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from crucible.bot.checks import is_admin, reply, report_error, safe_defer
from crucible.database.engine import run_db
from crucible.services import badge_service, points_service, settings_service
from crucible.services.embeds import success_embed
from crucible.services.errors import CrucibleError

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot

logger = logging.getLogger(__name__)


class Admin(commands.Cog, name="Admin"):
    """Server administration commands for Crucible."""

    badge = app_commands.Group(name="badge", description="Manage point-threshold badge roles.")

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await reply(interaction, "You need the admin role to use this command.", ephemeral=True)
            return
        logger.error("Admin command failed", exc_info=error)

    # -------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------
    @app_commands.command(name="set-points", description="Configure how many points are awarded.")
    @app_commands.describe(
        submission="Points per submission",
        vote="Points per vote received",
    )
    @is_admin()
    async def set_points(
        self,
        interaction: discord.Interaction,
        submission: app_commands.Range[int, 0] | None = None,
        vote: app_commands.Range[int, 0] | None = None,
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        if submission is None and vote is None:
            await reply(interaction, "Provide at least one value to change.", ephemeral=True)
            return
        try:
            snapshot = await run_db(
                settings_service.update_guild_settings,
                self.bot.engine,
                interaction.guild_id,
                points_per_submission=submission,
                points_per_vote=vote,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return
        await reply(
            interaction,
            embed=success_embed(
                "Points updated",
                f"Submission: **{snapshot.points_per_submission}** · "
                f"Vote: **{snapshot.points_per_vote}**",
            ),
            ephemeral=True,
        )

    @app_commands.command(name="set-vote-emoji", description="Set the emoji used for voting.")
    @app_commands.describe(emoji="A single emoji")
    @is_admin()
    async def set_vote_emoji(self, interaction: discord.Interaction, emoji: str) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            snapshot = await run_db(
                settings_service.set_vote_emoji, self.bot.engine, interaction.guild_id, emoji
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return
        await reply(
            interaction,
            embed=success_embed("Vote emoji updated", f"Members now vote with {snapshot.vote_emoji}."),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # Points
    # -------------------------------------------------------------------
    @app_commands.command(name="adjust-points", description="Add or remove points for a member.")
    @app_commands.describe(member="The member", amount="Points to add (negative to remove)")
    @is_admin()
    async def adjust_points(
        self, interaction: discord.Interaction, member: discord.Member, amount: int
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            balance = await run_db(
                points_service.adjust_points,
                self.bot.engine,
                interaction.guild_id,
                member.id,
                amount,
                operator_id=interaction.user.id,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        badges = await badge_service.evaluate_badges(
            self.bot.engine, self.bot.granter, interaction.guild_id, member.id, balance,
            timeout=self.bot.cfg.external_timeout_seconds,
        )
        text = f"{member.mention}: {amount:+d} points, balance now **{balance}**."
        if badges.granted:
            text += "\nNew badges: " + ", ".join(f"<@&{r}>" for r in badges.granted)
        if not badges.ok:
            text += "\n⚠️ Some badge roles could not be granted; check the bot's role position."
        await reply(interaction, embed=success_embed("Points adjusted", text), ephemeral=True)

    @app_commands.command(
        name="recalculate",
        description="Rebuild a member's points from their submissions and votes.",
    )
    @app_commands.describe(member="The member")
    @is_admin()
    async def recalculate(self, interaction: discord.Interaction, member: discord.Member) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        balance = await run_db(
            points_service.recalculate, self.bot.engine, interaction.guild_id, member.id
        )
        await reply(
            interaction,
            embed=success_embed("Recalculated", f"{member.mention} now has **{balance}** points."),
            ephemeral=True,
        )

    @app_commands.command(name="points-history", description="Recent point changes for a member.")
    @app_commands.describe(member="The member")
    @is_admin()
    async def points_history(self, interaction: discord.Interaction, member: discord.Member) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        rows = await run_db(
            points_service.get_point_history, self.bot.engine, interaction.guild_id, member.id
        )
        if not rows:
            await reply(interaction, f"{member.display_name} has no point history.", ephemeral=True)
            return
        lines = [
            f"`{r.amount:+d}` {r.reason}"
            + (f" (#{r.related_id})" if r.related_id else "")
            + (f" {discord.utils.format_dt(r.created_at, 'R')}" if r.created_at else "")
            for r in rows
        ]
        embed = discord.Embed(
            title=f"Point history: {member.display_name}",
            description="\n".join(lines),
            color=discord.Color.blurple(),
        )
        await reply(interaction, embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /badge
    # -------------------------------------------------------------------
    @badge.command(name="add", description="Grant a role automatically at a point threshold.")
    @app_commands.describe(role="The role to grant", points_required="Points needed")
    @is_admin()
    async def badge_add(
        self,
        interaction: discord.Interaction,
        role: discord.Role,
        points_required: app_commands.Range[int, 0],
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            badge = await run_db(
                badge_service.add_badge_role,
                self.bot.engine,
                guild_id=interaction.guild_id,
                role_id=role.id,
                points_required=points_required,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return
        await reply(
            interaction,
            embed=success_embed(
                "Badge role added",
                f"{role.mention} is granted at **{badge.points_required}** points (ID {badge.id}).",
            ),
            ephemeral=True,
        )

    @badge.command(name="list", description="List the configured badge roles.")
    async def badge_list(self, interaction: discord.Interaction) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        rows = await run_db(badge_service.list_badge_roles, self.bot.engine, interaction.guild_id)
        if not rows:
            await reply(interaction, "No badge roles are configured.", ephemeral=True)
            return
        embed = discord.Embed(
            title="Badge roles",
            description="\n".join(
                f"`{b.id}` <@&{b.role_id}> at **{b.points_required}** points" for b in rows
            ),
            color=discord.Color.blurple(),
        )
        await reply(interaction, embed=embed, ephemeral=True)

    @badge.command(name="remove", description="Stop granting a badge role.")
    @app_commands.describe(badge_id="ID from /badge list")
    @is_admin()
    async def badge_remove(self, interaction: discord.Interaction, badge_id: int) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            badge = await run_db(
                badge_service.remove_badge_role,
                self.bot.engine,
                badge_id,
                guild_id=interaction.guild_id,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return
        await reply(
            interaction,
            embed=success_embed("Badge role removed", f"<@&{badge.role_id}> is no longer a badge."),
            ephemeral=True,
        )


async def setup(bot: CrucibleBot) -> None:
    await bot.add_cog(Admin(bot))
