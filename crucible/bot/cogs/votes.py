"""
crucible.bot.cogs.votes — Reaction & Slash-command Voting
==========================================================

Reacting with the guild's vote emoji on a posted submission adds a vote;
removing the reaction takes it back.  Uses raw events so votes on
uncached (old) messages still count.

``/vote`` is the explicit toggle for members who prefer commands.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from crucible.bot.checks import reply, report_error, safe_defer
from crucible.database.engine import run_db
from crucible.services import vote_service
from crucible.services.badge_service import evaluate_badges
from crucible.services.discord_gateway import remove_reaction, send_dm
from crucible.services.errors import ConflictError, CrucibleError, SelfVoteError
from crucible.services.settings_service import get_guild_settings
from crucible.services.submission_service import get_submission_by_message

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot
    from crucible.database.models import Submission

logger = logging.getLogger(__name__)


class Votes(commands.Cog, name="Votes"):
    """Turns vote reactions into ledger entries."""

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot

    async def _voted_submission(
        self, payload: discord.RawReactionActionEvent
    ) -> Submission | None:
        """The submission behind *payload* if it is a vote reaction, else None."""
        if payload.guild_id is None:
            return None
        if self.bot.user is not None and payload.user_id == self.bot.user.id:
            return None
        settings = await run_db(get_guild_settings, self.bot.engine, payload.guild_id)
        if str(payload.emoji) != settings.vote_emoji:
            return None
        return await run_db(get_submission_by_message, self.bot.engine, payload.message_id)

    # -------------------------------------------------------------------
    # Reaction listeners
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.member is not None and payload.member.bot:
            return
        try:
            submission = await self._voted_submission(payload)
            if submission is None:
                return
            try:
                outcome = await run_db(
                    vote_service.add_vote,
                    self.bot.engine, submission.id, payload.user_id, payload.guild_id,
                )
            except SelfVoteError:
                await remove_reaction(
                    self.bot, payload.channel_id, payload.message_id,
                    payload.emoji, payload.user_id,
                )
                await send_dm(self.bot, payload.user_id, "You cannot vote for your own submission.")
                return
            except ConflictError as exc:
                logger.debug("Ignoring vote reaction: %s", exc.message)
                return

            await evaluate_badges(
                self.bot.engine, self.bot.granter, outcome.guild_id,
                outcome.author_id, outcome.author_balance,
                timeout=self.bot.cfg.external_timeout_seconds,
            )
        except Exception:
            logger.exception(
                "Error processing vote on message %s from user %s",
                payload.message_id, payload.user_id,
            )

    @commands.Cog.listener()
    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        try:
            submission = await self._voted_submission(payload)
            if submission is None:
                return
            try:
                await run_db(
                    vote_service.remove_vote,
                    self.bot.engine, submission.id, payload.user_id, payload.guild_id,
                )
            except ConflictError as exc:
                # Also raised for our own cleanup of a rejected self-vote.
                logger.debug("Ignoring vote removal: %s", exc.message)
        except Exception:
            logger.exception(
                "Error processing vote removal on message %s from user %s",
                payload.message_id, payload.user_id,
            )

    # -------------------------------------------------------------------
    # /vote
    # -------------------------------------------------------------------
    @app_commands.command(name="vote", description="Vote for a submission, or take your vote back.")
    @app_commands.describe(submission_id="The ID of the submission")
    async def vote(self, interaction: discord.Interaction, submission_id: int) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            outcome = await run_db(
                vote_service.cast_vote,
                self.bot.engine, submission_id, interaction.user.id, interaction.guild_id,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        if outcome.action == vote_service.ADDED:
            await evaluate_badges(
                self.bot.engine, self.bot.granter, outcome.guild_id,
                outcome.author_id, outcome.author_balance,
                timeout=self.bot.cfg.external_timeout_seconds,
            )
            text = f"Vote added to submission #{submission_id} ({outcome.votes} total)."
        else:
            text = f"Vote removed from submission #{submission_id} ({outcome.votes} total)."
        await reply(interaction, text, ephemeral=True)


async def setup(bot: CrucibleBot) -> None:
    await bot.add_cog(Votes(bot))
