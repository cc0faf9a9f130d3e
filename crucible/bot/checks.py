"""
crucible.bot.checks — Shared slash-command helpers
===================================================

- :func:`is_admin` — app-command check for the configured admin role.
- :func:`safe_defer` / :func:`reply` — acknowledge and answer interactions,
  logging and swallowing the errors Discord raises once an interaction
  token has expired.
- :func:`report_error` — turn a :class:`CrucibleError` into an ephemeral
  error embed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from crucible.services.embeds import error_embed
from crucible.services.errors import CrucibleError

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot

logger = logging.getLogger(__name__)


def member_is_admin(bot: CrucibleBot, user) -> bool:
    if user is None or not hasattr(user, "roles"):
        return False
    if getattr(getattr(user, "guild_permissions", None), "administrator", False):
        return True
    return any(role.id == bot.cfg.admin_role_id for role in user.roles)


def is_admin():
    """Decorator that checks if the user has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: CrucibleBot = interaction.client  # type: ignore[assignment]
        return member_is_admin(bot, interaction.user)
    return app_commands.check(predicate)


async def safe_defer(interaction: discord.Interaction, *, ephemeral: bool = False) -> bool:
    """Acknowledge the interaction.  False if it already expired."""
    if interaction.response.is_done():
        return True
    try:
        await interaction.response.defer(ephemeral=ephemeral, thinking=True)
        return True
    except (discord.NotFound, discord.InteractionResponded):
        logger.warning("Interaction %s expired before it could be deferred", interaction.id)
        return False
    except discord.HTTPException:
        logger.exception("Deferring interaction %s failed", interaction.id)
        return False


async def reply(
    interaction: discord.Interaction,
    content: str | None = None,
    *,
    embed: discord.Embed | None = None,
    ephemeral: bool = False,
) -> discord.Message | None:
    """Send a followup (or first response) without raising on expiry."""
    kwargs = {"ephemeral": ephemeral}
    if content is not None:
        kwargs["content"] = content
    if embed is not None:
        kwargs["embed"] = embed
    try:
        if interaction.response.is_done():
            return await interaction.followup.send(wait=True, **kwargs)
        await interaction.response.send_message(**kwargs)
        return await interaction.original_response()
    except discord.NotFound:
        logger.warning("Interaction %s expired; reply dropped", interaction.id)
    except discord.HTTPException:
        logger.exception("Replying to interaction %s failed", interaction.id)
    return None


async def report_error(interaction: discord.Interaction, exc: CrucibleError) -> None:
    await reply(interaction, embed=error_embed(exc.message), ephemeral=True)
