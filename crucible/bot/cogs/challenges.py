"""
crucible.bot.cogs.challenges — Challenge Slash Commands
========================================================

- /create-challenge — one-time challenge, or a recurring template when a
  cron schedule is given
- /challenges — list open challenges
- /close-challenge — close a challenge or cancel a template
- /pick-winner — award a bonus, announce, close and archive
- /delete-challenge — hard delete, optionally reversing its points

Every mutation goes through :mod:`crucible.services.challenge_service`;
Discord follow-ups after a commit are best effort.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from crucible.bot.checks import is_admin, reply, report_error, safe_defer
from crucible.database.engine import run_db
from crucible.services import challenge_service
from crucible.services.badge_service import evaluate_badges
from crucible.services.discord_gateway import (
    archive_thread,
    edit_message_embed,
    resolve_channel,
)
from crucible.services.embeds import (
    build_challenge_embed,
    build_closed_challenge_embed,
    build_winner_embed,
    success_embed,
)
from crucible.services.errors import CrucibleError

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot

logger = logging.getLogger(__name__)


class Challenges(commands.Cog, name="Challenges"):
    """Create, list, close and judge challenges."""

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /create-challenge
    # -------------------------------------------------------------------
    @app_commands.command(name="create-challenge", description="Create a new challenge.")
    @app_commands.describe(
        title="Challenge title",
        description="What participants should do",
        type="Category, e.g. art, code, writing",
        channel="Where to post it (defaults to this channel)",
        schedule="Cron schedule (UTC) to make this a recurring template, e.g. '0 10 * * 1'",
    )
    @is_admin()
    async def create_challenge(
        self,
        interaction: discord.Interaction,
        title: str,
        description: str,
        type: str,
        channel: discord.TextChannel | None = None,
        schedule: str | None = None,
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        target = channel or interaction.channel
        try:
            challenge = await run_db(
                challenge_service.create_challenge,
                self.bot.engine,
                guild_id=interaction.guild_id,
                title=title,
                description=description,
                type=type,
                created_by=interaction.user.id,
                channel_id=target.id if target else None,
                is_template=schedule is not None,
                cron_schedule=schedule,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        if challenge.is_template:
            self.bot.scheduler.schedule(challenge)
            await reply(
                interaction,
                embed=success_embed(
                    "Recurring challenge scheduled",
                    f"Template #{challenge.id} **{challenge.title}** runs on "
                    f"`{challenge.cron_schedule}` (UTC).",
                ),
                ephemeral=True,
            )
            return

        ref = None
        try:
            ref = await self.bot.announcer.announce(challenge)
        except Exception:
            logger.exception("Posting challenge #%d failed", challenge.id)
        if ref is not None:
            await run_db(
                challenge_service.attach_message_and_thread,
                self.bot.engine,
                challenge.id,
                message_id=ref.message_id,
                thread_id=ref.thread_id,
                channel_id=ref.channel_id,
            )
            note = f"Posted in <#{ref.channel_id}>."
        else:
            note = "It was saved, but could not be posted."
        await reply(
            interaction,
            embed=success_embed(f"Challenge #{challenge.id} created", note),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /challenges
    # -------------------------------------------------------------------
    @app_commands.command(name="challenges", description="List the open challenges.")
    async def list_challenges(self, interaction: discord.Interaction) -> None:
        if not await safe_defer(interaction):
            return
        rows = await run_db(
            challenge_service.list_active_challenges, self.bot.engine, interaction.guild_id
        )
        if not rows:
            await reply(interaction, "There are no open challenges right now.")
            return
        embed = discord.Embed(title="Open challenges", color=discord.Color.blurple())
        for c in rows[:25]:
            where = f" in <#{c.thread_id or c.channel_id}>" if (c.thread_id or c.channel_id) else ""
            embed.add_field(name=f"#{c.id} · {c.title}", value=f"{c.type}{where}", inline=False)
        await reply(interaction, embed=embed)

    # -------------------------------------------------------------------
    # /close-challenge
    # -------------------------------------------------------------------
    @app_commands.command(
        name="close-challenge",
        description="Close a challenge or cancel a recurring template.",
    )
    @app_commands.describe(challenge_id="ID of the challenge or template")
    @is_admin()
    async def close_challenge(self, interaction: discord.Interaction, challenge_id: int) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            challenge = await run_db(
                challenge_service.close_challenge,
                self.bot.engine,
                challenge_id,
                guild_id=interaction.guild_id,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        if challenge.is_template:
            self.bot.scheduler.cancel(challenge.id)
            text = f"Recurring template #{challenge.id} has been cancelled."
        else:
            await edit_message_embed(
                self.bot, challenge.channel_id, challenge.message_id,
                build_closed_challenge_embed(challenge),
            )
            await archive_thread(self.bot, challenge.thread_id)
            text = f"Challenge #{challenge.id}: {challenge.title} is now closed."
        await reply(interaction, embed=success_embed("Closed", text), ephemeral=True)

    # -------------------------------------------------------------------
    # /pick-winner
    # -------------------------------------------------------------------
    @app_commands.command(name="pick-winner", description="Pick a challenge winner.")
    @app_commands.describe(
        challenge_id="ID of the challenge",
        winner="The winning member",
        bonus_points="Bonus points to award (at least 1)",
    )
    @is_admin()
    async def pick_winner(
        self,
        interaction: discord.Interaction,
        challenge_id: int,
        winner: discord.Member,
        bonus_points: app_commands.Range[int, 1] = 5,
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            result = await run_db(
                challenge_service.select_winner,
                self.bot.engine,
                challenge_id,
                guild_id=interaction.guild_id,
                winner_id=winner.id,
                bonus_points=bonus_points,
                operator_id=interaction.user.id,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        challenge = result.challenge
        await evaluate_badges(
            self.bot.engine, self.bot.granter, interaction.guild_id, winner.id,
            result.balance, timeout=self.bot.cfg.external_timeout_seconds,
        )

        announce_in = await resolve_channel(
            self.bot, challenge.thread_id or challenge.channel_id
        )
        if announce_in is not None:
            try:
                await announce_in.send(
                    embed=build_winner_embed(challenge, winner.id, result.bonus)
                )
            except discord.HTTPException:
                logger.exception("Winner announcement for challenge #%d failed", challenge.id)
        await edit_message_embed(
            self.bot, challenge.channel_id, challenge.message_id,
            build_closed_challenge_embed(challenge, winner.id),
        )
        await archive_thread(self.bot, challenge.thread_id)

        await reply(
            interaction,
            embed=success_embed(
                "Winner selected",
                f"{winner.mention} won **{challenge.title}** (+{result.bonus} points, "
                f"now {result.balance}).",
            ),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /delete-challenge
    # -------------------------------------------------------------------
    @app_commands.command(
        name="delete-challenge",
        description="Permanently delete a challenge and its submissions.",
    )
    @app_commands.describe(
        challenge_id="ID of the challenge or template",
        reverse_points="Also take back every point earned through this challenge",
    )
    @is_admin()
    async def delete_challenge(
        self,
        interaction: discord.Interaction,
        challenge_id: int,
        reverse_points: bool = False,
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            summary = await run_db(
                challenge_service.delete_challenge,
                self.bot.engine,
                challenge_id,
                guild_id=interaction.guild_id,
                reverse_points=reverse_points,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        if summary.was_template:
            self.bot.scheduler.cancel(summary.challenge_id)
        text = (
            f"Deleted **{summary.title}** and {summary.submissions_deleted} submission(s)."
        )
        if reverse_points:
            text += f"\nReversed points for {len(summary.reversed_points)} member(s)."
        await reply(interaction, embed=success_embed("Deleted", text), ephemeral=True)

    # -------------------------------------------------------------------
    # /challenge
    # -------------------------------------------------------------------
    @app_commands.command(name="challenge", description="Show one challenge.")
    @app_commands.describe(challenge_id="ID of the challenge")
    async def show_challenge(self, interaction: discord.Interaction, challenge_id: int) -> None:
        if not await safe_defer(interaction):
            return
        try:
            challenge = await run_db(
                challenge_service.get_challenge, self.bot.engine, challenge_id,
                guild_id=interaction.guild_id,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return
        count = await run_db(challenge_service.count_submissions, self.bot.engine, challenge_id)
        await reply(interaction, embed=build_challenge_embed(challenge, submissions=count))


async def setup(bot: CrucibleBot) -> None:
    await bot.add_cog(Challenges(bot))
