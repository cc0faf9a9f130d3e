"""
crucible.bot.cogs.submissions — Submission Slash Commands
==========================================================

- /submit — post an entry in the challenge thread and record it
- /edit-submission — author-only edit, mirrored onto the posted embed
- /delete-submission — admin delete with author balance recalculation

/submit posts a placeholder first so the stored row can point at a real
message id; if recording fails the placeholder is removed again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from crucible.bot.checks import is_admin, reply, report_error, safe_defer
from crucible.database.engine import run_db
from crucible.services import challenge_service, submission_service
from crucible.services.badge_service import evaluate_badges
from crucible.services.discord_gateway import (
    delete_message,
    edit_message_embed,
    resolve_channel,
)
from crucible.services.embeds import build_submission_embed, success_embed
from crucible.services.errors import CrucibleError
from crucible.services.settings_service import get_guild_settings

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot

logger = logging.getLogger(__name__)


class Submissions(commands.Cog, name="Submissions"):
    """Entering challenges and managing entries."""

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /submit
    # -------------------------------------------------------------------
    @app_commands.command(name="submit", description="Submit your entry to a challenge.")
    @app_commands.describe(
        challenge_id="The ID of the challenge to submit to",
        text="Text description for your entry",
        attachment="An image, video, or file for your entry",
        link="A URL to your content",
    )
    async def submit(
        self,
        interaction: discord.Interaction,
        challenge_id: int,
        text: str | None = None,
        attachment: discord.Attachment | None = None,
        link: str | None = None,
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        engine = self.bot.engine
        guild_id = interaction.guild_id
        try:
            challenge = await run_db(
                challenge_service.get_challenge, engine, challenge_id, guild_id=guild_id
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        target = await resolve_channel(self.bot, challenge.thread_id or challenge.channel_id)
        if target is None:
            await reply(
                interaction,
                f"Challenge #{challenge_id} has no reachable submission thread.",
                ephemeral=True,
            )
            return

        placeholder = await target.send("Processing your submission…")
        try:
            result = await run_db(
                submission_service.create_submission,
                engine,
                challenge_id=challenge_id,
                guild_id=guild_id,
                user_id=interaction.user.id,
                username=interaction.user.display_name,
                channel_id=target.id,
                message_id=placeholder.id,
                thread_id=challenge.thread_id,
                content_text=text,
                attachment_url=attachment.url if attachment else None,
                link_url=link,
            )
        except CrucibleError as exc:
            await delete_message(self.bot, target.id, placeholder.id)
            await report_error(interaction, exc)
            return
        except Exception:
            await delete_message(self.bot, target.id, placeholder.id)
            raise

        settings = await run_db(get_guild_settings, engine, guild_id)
        try:
            await placeholder.edit(
                content=None,
                embed=build_submission_embed(result.submission, vote_emoji=settings.vote_emoji),
            )
            await placeholder.add_reaction(settings.vote_emoji)
        except discord.HTTPException:
            logger.exception("Could not finish posting submission #%d", result.submission.id)

        await evaluate_badges(
            engine, self.bot.granter, guild_id, interaction.user.id, result.balance,
            timeout=self.bot.cfg.external_timeout_seconds,
        )
        await reply(
            interaction,
            embed=success_embed(
                "Submission recorded",
                f"[View your submission]({placeholder.jump_url}) "
                f"(+{result.points_awarded} points)",
            ),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /edit-submission
    # -------------------------------------------------------------------
    @app_commands.command(name="edit-submission", description="Edit a submission you made.")
    @app_commands.describe(
        submission_id="The ID of the submission you want to edit",
        new_text="The new text for your submission",
        new_attachment="The new attachment for your submission",
        new_link="The new link for your submission",
    )
    async def edit_submission(
        self,
        interaction: discord.Interaction,
        submission_id: int,
        new_text: str | None = None,
        new_attachment: discord.Attachment | None = None,
        new_link: str | None = None,
    ) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        if new_text is None and new_attachment is None and new_link is None:
            await reply(interaction, "You must provide at least one new value to edit.", ephemeral=True)
            return

        changes = {}
        if new_text is not None:
            changes["content_text"] = new_text
        if new_link is not None:
            changes["link_url"] = new_link
        if new_attachment is not None:
            changes["attachment_url"] = new_attachment.url
        try:
            submission = await run_db(
                submission_service.edit_submission,
                self.bot.engine,
                submission_id,
                editor_id=interaction.user.id,
                **changes,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        settings = await run_db(get_guild_settings, self.bot.engine, submission.guild_id)
        edited = await edit_message_embed(
            self.bot, submission.channel_id, submission.message_id,
            build_submission_embed(submission, vote_emoji=settings.vote_emoji),
        )
        note = "" if edited else " The original message could not be found to be edited."
        await reply(
            interaction,
            embed=success_embed("Submission updated", f"Submission #{submission.id} was saved.{note}"),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /delete-submission
    # -------------------------------------------------------------------
    @app_commands.command(
        name="delete-submission",
        description="Delete a submission and recalculate its author's points.",
    )
    @app_commands.describe(submission_id="The ID of the submission to delete")
    @is_admin()
    async def delete_submission(self, interaction: discord.Interaction, submission_id: int) -> None:
        if not await safe_defer(interaction, ephemeral=True):
            return
        try:
            deletion = await run_db(
                submission_service.delete_submission,
                self.bot.engine,
                submission_id,
                guild_id=interaction.guild_id,
            )
        except CrucibleError as exc:
            await report_error(interaction, exc)
            return

        submission = deletion.submission
        await delete_message(self.bot, submission.channel_id, submission.message_id)
        await reply(
            interaction,
            embed=success_embed(
                "Submission deleted",
                f"Submission #{submission.id} by <@{submission.user_id}> was removed. "
                f"Their balance is now {deletion.balance}.",
            ),
            ephemeral=True,
        )


async def setup(bot: CrucibleBot) -> None:
    await bot.add_cog(Submissions(bot))
