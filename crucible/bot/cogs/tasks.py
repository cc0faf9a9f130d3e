"""
crucible.bot.cogs.tasks — Periodic Background Tasks
====================================================

- **Scheduler resync** — every ``scheduler_resync_minutes``, re-runs
  :meth:`ChallengeScheduler.initialize` so templates created from the
  dashboard (another process) get a timer.  Templates cancelled elsewhere
  are dropped by the scheduler itself on their next fire.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

if TYPE_CHECKING:
    from crucible.bot.core import CrucibleBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: CrucibleBot) -> None:
        self.bot = bot
        self.resync_loop.change_interval(minutes=bot.cfg.scheduler_resync_minutes)

    async def cog_load(self) -> None:
        self.resync_loop.start()

    async def cog_unload(self) -> None:
        self.resync_loop.cancel()

    @tasks.loop(minutes=15)
    async def resync_loop(self):
        try:
            added = await self.bot.scheduler.initialize()
            if added:
                logger.info("Scheduler resync picked up %d template(s)", added)
        except Exception:
            logger.exception("Scheduler resync failed", extra={"task": "scheduler_resync"})

    @resync_loop.before_loop
    async def _wait_resync(self):
        await self.bot.wait_until_ready()


async def setup(bot: CrucibleBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
