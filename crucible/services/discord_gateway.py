"""
crucible.services.discord_gateway — Chat-platform collaborators
================================================================

discord.py implementations of the narrow interfaces the core services
depend on:

- :class:`DiscordRoleGranter` satisfies
  :class:`~crucible.services.badge_service.RoleGranter`.
- :class:`DiscordChallengeAnnouncer` satisfies
  :class:`~crucible.services.scheduler.ChallengeAnnouncer`.

Plus a few best-effort helpers the cogs share (fetch a channel, edit or
delete a message, remove a reaction, DM a user).  A missing channel,
message or member is logged and reported as ``None``/``False`` rather than
raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from crucible.constants import THREAD_ARCHIVE_MINUTES
from crucible.database.models import Challenge
from crucible.services.embeds import build_challenge_embed
from crucible.services.scheduler import AnnouncementRef

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot

logger = logging.getLogger(__name__)

_MISSING = (discord.NotFound, discord.Forbidden)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
async def resolve_channel(bot: CrucibleBot, channel_id: int | None):
    """Cached channel, falling back to an API fetch.  None if unreachable."""
    if not channel_id:
        return None
    channel = bot.get_channel(channel_id)
    if channel is not None:
        return channel
    try:
        return await bot.fetch_channel(channel_id)
    except (discord.NotFound, discord.Forbidden, discord.HTTPException):
        logger.warning("Channel %s could not be fetched", channel_id)
        return None


async def resolve_member(bot: CrucibleBot, guild_id: int, user_id: int) -> discord.Member | None:
    guild = bot.get_guild(guild_id)
    if guild is None:
        return None
    member = guild.get_member(user_id)
    if member is not None:
        return member
    try:
        return await guild.fetch_member(user_id)
    except discord.NotFound:
        return None


# ---------------------------------------------------------------------------
# Best-effort message helpers
# ---------------------------------------------------------------------------
async def edit_message_embed(
    bot: CrucibleBot, channel_id: int | None, message_id: int | None, embed: discord.Embed
) -> bool:
    channel = await resolve_channel(bot, channel_id)
    if channel is None or not message_id:
        return False
    try:
        message = await channel.fetch_message(message_id)
        await message.edit(embed=embed)
        return True
    except _MISSING:
        logger.info("Message %s in channel %s is gone; not edited", message_id, channel_id)
    except discord.HTTPException:
        logger.exception("Editing message %s failed", message_id)
    return False


async def delete_message(bot: CrucibleBot, channel_id: int | None, message_id: int | None) -> bool:
    channel = await resolve_channel(bot, channel_id)
    if channel is None or not message_id:
        return False
    try:
        message = await channel.fetch_message(message_id)
        await message.delete()
        return True
    except _MISSING:
        logger.info("Message %s already deleted", message_id)
    except discord.HTTPException:
        logger.exception("Deleting message %s failed", message_id)
    return False


async def archive_thread(bot: CrucibleBot, thread_id: int | None) -> bool:
    thread = await resolve_channel(bot, thread_id)
    if not isinstance(thread, discord.Thread):
        return False
    try:
        await thread.edit(archived=True, locked=True)
        return True
    except (discord.Forbidden, discord.HTTPException):
        logger.exception("Archiving thread %s failed", thread_id)
        return False


async def remove_reaction(
    bot: CrucibleBot, channel_id: int, message_id: int, emoji, user_id: int
) -> bool:
    channel = await resolve_channel(bot, channel_id)
    if channel is None:
        return False
    try:
        message = await channel.fetch_message(message_id)
        await message.remove_reaction(emoji, discord.Object(id=user_id))
        return True
    except (discord.NotFound, discord.Forbidden, discord.HTTPException):
        logger.warning("Could not remove reaction from message %s", message_id)
        return False


async def send_dm(bot: CrucibleBot, user_id: int, content: str) -> bool:
    try:
        user = bot.get_user(user_id) or await bot.fetch_user(user_id)
        await user.send(content)
        return True
    except (discord.NotFound, discord.Forbidden, discord.HTTPException):
        logger.info("Could not DM user %s", user_id)
        return False


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class DiscordRoleGranter:
    """Grants badge roles through the bot's guild cache."""

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot

    async def member_role_ids(self, guild_id: int, user_id: int) -> set[int] | None:
        member = await resolve_member(self.bot, guild_id, user_id)
        if member is None:
            return None
        return {role.id for role in member.roles}

    async def grant_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise LookupError(f"Guild {guild_id} is not available")
        role = guild.get_role(role_id)
        if role is None:
            raise LookupError(f"Role {role_id} no longer exists in guild {guild_id}")
        member = await resolve_member(self.bot, guild_id, user_id)
        if member is None:
            raise LookupError(f"User {user_id} left guild {guild_id}")
        await member.add_roles(role, reason=f"Crucible badge: reached {role.name}")


class DiscordChallengeAnnouncer:
    """Posts a challenge embed and opens its submission thread."""

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot

    async def announce(self, challenge: Challenge) -> AnnouncementRef | None:
        channel_id = challenge.channel_id or self.bot.cfg.announce_channel_id
        channel = await resolve_channel(self.bot, channel_id)
        if channel is None:
            logger.warning(
                "No reachable channel for challenge #%d (channel %s)",
                challenge.id, channel_id,
            )
            return None

        message = await channel.send(embed=build_challenge_embed(challenge))
        thread_id = None
        try:
            thread = await message.create_thread(
                name=f"Challenge #{challenge.id}: {challenge.title}"[:100],
                auto_archive_duration=THREAD_ARCHIVE_MINUTES,
            )
            thread_id = thread.id
        except (discord.Forbidden, discord.HTTPException):
            logger.exception("Could not open a thread for challenge #%d", challenge.id)

        return AnnouncementRef(
            channel_id=channel.id, message_id=message.id, thread_id=thread_id
        )
