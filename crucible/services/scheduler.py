"""
crucible.services.scheduler — Recurring Challenge Scheduler
============================================================

One asyncio task per active template, keyed by template id.  Each task
sleeps until the template's next cron fire, then launches a *spawn* as a
separate task and goes back to sleep.  Keeping the spawn out of the timer
task means :meth:`ChallengeScheduler.cancel` stops future fires without
interrupting a spawn that is already posting its announcement.

The cron string stored on the template row is the durable source of truth.
:meth:`ChallengeScheduler.initialize` rebuilds the job map from the
database on startup and on every periodic resync; scheduling an id that is
already in the map is a no-op, so there is never more than one timer per
template.

A spawn re-reads its template first.  If the template was deleted or
deactivated (for example from the dashboard API, which runs in another
process) the job cancels itself instead of creating an instance.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import Engine

from crucible.database.engine import run_db
from crucible.database.models import Challenge
from crucible.engine.cron import following_fire_time, is_valid_cron, next_fire_time, utc_now
from crucible.services import challenge_service

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class AnnouncementRef:
    """Where a challenge announcement ended up on the chat platform."""

    channel_id: int
    message_id: int
    thread_id: int | None = None


class ChallengeAnnouncer(Protocol):
    """Posts a new challenge and opens its discussion thread."""

    async def announce(self, challenge: Challenge) -> AnnouncementRef | None:
        ...


class ChallengeScheduler:
    """Owns the template-id → timer-task map."""

    def __init__(
        self,
        engine: Engine,
        announcer: ChallengeAnnouncer | None = None,
        *,
        timeout: float = 30.0,
        sleep: SleepFn = asyncio.sleep,
        now: ClockFn = utc_now,
    ) -> None:
        self._engine = engine
        self._announcer = announcer
        self._timeout = timeout
        self._sleep = sleep
        self._now = now
        self._jobs: dict[int, asyncio.Task] = {}
        self._spawns: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def is_scheduled(self, template_id: int) -> bool:
        return template_id in self._jobs

    @property
    def scheduled_ids(self) -> list[int]:
        return sorted(self._jobs)

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------
    async def initialize(self) -> int:
        """Schedule every persisted active template.  Returns how many were added."""
        templates = await run_db(challenge_service.list_active_templates, self._engine)
        added = sum(1 for t in templates if self.schedule(t))
        if added:
            logger.info("Scheduler initialized %d new job(s); %d total", added, len(self._jobs))
        return added

    def schedule(self, template: Challenge) -> bool:
        """Register a timer for *template*.

        No-op (returns False) when the cron string is invalid or the template
        already has a timer.  Must be called from the running event loop.
        """
        if template.id in self._jobs:
            return False
        if not is_valid_cron(template.cron_schedule):
            logger.warning(
                "Template #%d has an invalid cron %r; not scheduling",
                template.id, template.cron_schedule,
            )
            return False

        task = asyncio.get_running_loop().create_task(
            self._run_job(template.id, template.cron_schedule),
            name=f"challenge-template-{template.id}",
        )
        self._jobs[template.id] = task
        logger.info("Scheduled template #%d with cron %r", template.id, template.cron_schedule)
        return True

    def cancel(self, template_id: int) -> bool:
        """Stop the timer for *template_id*.  In-flight spawns run to completion.

        Returns False if nothing was scheduled.  Marking the template inactive
        in storage is the caller's job.
        """
        task = self._jobs.pop(template_id, None)
        if task is None:
            return False
        task.cancel()
        logger.info("Cancelled scheduled job for template #%d", template_id)
        return True

    async def wait_idle(self) -> None:
        """Wait until no spawn is in flight."""
        while self._spawns:
            await asyncio.gather(*self._spawns, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every timer and wait for in-flight spawns."""
        timers = list(self._jobs.values())
        for template_id in list(self._jobs):
            self.cancel(template_id)
        await asyncio.gather(*timers, return_exceptions=True)
        await self.wait_idle()

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------
    async def _run_job(self, template_id: int, cron: str) -> None:
        # A sleep that returns before next_at is resumed; each fire time spawns once.
        next_at = next_fire_time(cron, self._now())
        while True:
            while (now := self._now()) < next_at:
                await self._sleep((next_at - now).total_seconds())
            if self._jobs.get(template_id) is not asyncio.current_task():
                return
            spawn = asyncio.get_running_loop().create_task(
                self.spawn_instance(template_id),
                name=f"challenge-spawn-{template_id}",
            )
            self._spawns.add(spawn)
            spawn.add_done_callback(self._spawns.discard)
            next_at = following_fire_time(cron, next_at, self._now())

    async def spawn_instance(self, template_id: int) -> Challenge | None:
        """Create one concrete challenge from a template and announce it.

        Never raises: storage and announcement failures are logged and the
        job stays registered for the next fire.
        """
        try:
            instance = await run_db(
                challenge_service.create_instance_from_template, self._engine, template_id
            )
        except Exception:
            logger.exception("Failed to spawn an instance of template #%d", template_id)
            return None

        if instance is None:
            logger.info("Template #%d is gone or inactive; stopping its job", template_id)
            self.cancel(template_id)
            return None

        logger.info("Spawned challenge #%d from template #%d", instance.id, template_id)
        if self._announcer is None:
            return instance

        try:
            ref = await asyncio.wait_for(self._announcer.announce(instance), self._timeout)
        except Exception:
            logger.exception("Announcement failed for challenge #%d", instance.id)
            return instance
        if ref is None:
            logger.warning("Challenge #%d was created but could not be announced", instance.id)
            return instance

        try:
            await run_db(
                challenge_service.attach_message_and_thread,
                self._engine,
                instance.id,
                message_id=ref.message_id,
                thread_id=ref.thread_id,
                channel_id=ref.channel_id,
            )
            instance.message_id = ref.message_id
            instance.thread_id = ref.thread_id
            instance.channel_id = ref.channel_id
        except Exception:
            logger.exception("Could not link challenge #%d to its announcement", instance.id)
        return instance
