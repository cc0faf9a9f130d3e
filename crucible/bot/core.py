"""
crucible.bot.core — Bot Instance & Cog Loader
==============================================

:class:`CrucibleBot` is a ``commands.Bot`` subclass that carries the shared
state every cog reads through ``self.bot``:

- ``cfg`` — the parsed :class:`CrucibleConfig`.
- ``engine`` — the SQLAlchemy :class:`Engine`.
- ``granter`` — the Discord :class:`RoleGranter` used for badge roles.
- ``announcer`` — posts challenge embeds and opens their threads.
- ``scheduler`` — the :class:`ChallengeScheduler` for recurring templates.

On the first ``on_ready`` it syncs the slash-command tree (guild-scoped
when ``DEV_GUILD_ID`` is set) and rebuilds the scheduler from the database.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from crucible.config import CrucibleConfig
from crucible.services.discord_gateway import DiscordChallengeAnnouncer, DiscordRoleGranter
from crucible.services.scheduler import ChallengeScheduler

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "crucible.bot.cogs.challenges",
    "crucible.bot.cogs.submissions",
    "crucible.bot.cogs.votes",
    "crucible.bot.cogs.meta",
    "crucible.bot.cogs.admin",
    "crucible.bot.cogs.tasks",
]


class CrucibleBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state."""

    def __init__(self, cfg: CrucibleConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.members = True            # Privileged: badge role grants
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} challenges",
        )

        self.cfg = cfg
        self.engine = engine
        self.granter = DiscordRoleGranter(self)
        self.announcer = DiscordChallengeAnnouncer(self)
        self.scheduler = ChallengeScheduler(
            engine, self.announcer, timeout=cfg.external_timeout_seconds
        )
        self._ready_once = False

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load every cog.  One broken cog is logged, not fatal."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)
        if self._ready_once:
            return  # on_ready also fires after reconnects
        self._ready_once = True

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        try:
            count = await self.scheduler.initialize()
            logger.info("Scheduler started with %d recurring template(s)", count)
        except Exception:
            logger.exception("Scheduler initialization failed; the resync task will retry")

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        await self.scheduler.shutdown()
        await super().close()
