"""
tests/test_scheduler.py — Recurring Challenge Scheduler Tests
==============================================================
Drives ChallengeScheduler with a manual clock: the injected ``sleep``
blocks until the test releases a tick and ``now`` only moves when a sleep
returns, so every fire is explicit.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from crucible.database.models import Challenge
from crucible.services import challenge_service
from crucible.services.scheduler import AnnouncementRef, ChallengeScheduler

GUILD = 100
CRON = "0 9 * * 1"
MONDAY_MORNING = datetime(2026, 3, 16, 8, 0, tzinfo=UTC)


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


class ManualClock:
    """Stand-in for the scheduler's clock and sleep.

    ``sleep`` returns only when ticked, then advances ``current`` by the
    requested delay.  ``early`` makes the first ticked sleep come back that
    much short of its target, like a timer that wakes slightly early.
    """

    def __init__(self, start: datetime = MONDAY_MORNING, *, early: timedelta | None = None) -> None:
        self.current = start
        self.delays: list[float] = []
        self.fired = 0
        self._early = early
        self._ticks: asyncio.Queue | None = None

    @property
    def ticks(self) -> asyncio.Queue:
        if self._ticks is None:
            self._ticks = asyncio.Queue()
        return self._ticks

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)
        await self.ticks.get()
        self.current += timedelta(seconds=seconds)
        if self._early is not None:
            self.current -= self._early
            self._early = None
        self.fired += 1

    async def fire(self) -> None:
        """Release one tick and wait until a timer has consumed it."""
        before = self.fired
        self.ticks.put_nowait(None)
        for _ in range(1000):
            if self.fired > before:
                return
            await asyncio.sleep(0)
        raise AssertionError("no timer consumed the tick")


def _clocked(clock: ManualClock) -> dict:
    return {"sleep": clock.sleep, "now": clock.now}


def _instances(engine) -> list[Challenge]:
    with Session(engine) as session:
        return list(session.scalars(
            select(Challenge).where(Challenge.is_template.is_(False)).order_by(Challenge.id)
        ).all())


def _announcer(ref: AnnouncementRef | None = None):
    announcer = MagicMock()
    announcer.announce = AsyncMock(return_value=ref)
    return announcer


# ===========================================================================
# initialize / schedule / cancel
# ===========================================================================
class TestJobMap:
    def test_initialize_is_idempotent(self, engine, seed_challenge):
        a = seed_challenge(is_template=True, cron_schedule=CRON)
        b = seed_challenge(is_template=True, cron_schedule="*/5 * * * *")
        seed_challenge(is_template=True, cron_schedule="not a cron")
        seed_challenge(is_template=True, cron_schedule=CRON, is_active=False)
        seed_challenge()

        async def _go():
            scheduler = ChallengeScheduler(engine, **_clocked(ManualClock()))
            first = await scheduler.initialize()
            second = await scheduler.initialize()
            ids = scheduler.scheduled_ids
            await scheduler.shutdown()
            return first, second, ids, scheduler.scheduled_ids

        first, second, ids, after = run_async(_go())
        assert first == 2
        assert second == 0
        assert ids == [a, b]
        assert after == []

    def test_schedule_twice_is_noop(self, engine):
        template = challenge_service.create_challenge(
            engine, guild_id=GUILD, title="Weekly", type="art",
            is_template=True, cron_schedule=CRON,
        )

        async def _go():
            scheduler = ChallengeScheduler(engine, **_clocked(ManualClock()))
            results = (scheduler.schedule(template), scheduler.schedule(template))
            await scheduler.shutdown()
            return results

        assert run_async(_go()) == (True, False)

    def test_cancel(self, engine, seed_challenge):
        tid = seed_challenge(is_template=True, cron_schedule=CRON)

        async def _go():
            scheduler = ChallengeScheduler(engine, **_clocked(ManualClock()))
            await scheduler.initialize()
            first = scheduler.cancel(tid)
            second = scheduler.cancel(tid)
            scheduled = scheduler.is_scheduled(tid)
            await scheduler.shutdown()
            return first, second, scheduled

        assert run_async(_go()) == (True, False, False)

    def test_sleeps_until_next_fire(self, engine, seed_challenge):
        seed_challenge(is_template=True, cron_schedule="* * * * *")
        clock = ManualClock()

        async def _go():
            scheduler = ChallengeScheduler(engine, **_clocked(clock))
            await scheduler.initialize()
            await asyncio.sleep(0)
            await scheduler.shutdown()

        run_async(_go())
        assert clock.delays == [60.0]


# ===========================================================================
# Firing
# ===========================================================================
class TestFiring:
    def test_each_tick_spawns_one_instance(self, engine, seed_challenge):
        tid = seed_challenge(is_template=True, cron_schedule=CRON, title="Weekly sketch")
        clock = ManualClock()
        announcer = _announcer(AnnouncementRef(channel_id=555, message_id=9001, thread_id=9002))

        async def _go():
            scheduler = ChallengeScheduler(engine, announcer, **_clocked(clock))
            await scheduler.initialize()
            await clock.fire()
            await scheduler.wait_idle()
            await clock.fire()
            await scheduler.wait_idle()
            still = scheduler.is_scheduled(tid)
            await scheduler.shutdown()
            return still

        assert run_async(_go()) is True
        instances = _instances(engine)
        assert [c.title for c in instances] == ["Weekly sketch", "Weekly sketch"]
        assert all(c.is_active for c in instances)
        assert announcer.announce.await_count == 2
        assert instances[0].message_id == 9001
        assert instances[0].thread_id == 9002

    def test_early_wake_does_not_fire_twice(self, engine, seed_challenge):
        seed_challenge(is_template=True, cron_schedule=CRON)
        clock = ManualClock(early=timedelta(milliseconds=5))

        async def _go():
            scheduler = ChallengeScheduler(engine, **_clocked(clock))
            await scheduler.initialize()
            await clock.fire()
            await scheduler.wait_idle()
            spawned_early = len(_instances(engine))
            await clock.fire()
            await scheduler.wait_idle()
            await scheduler.shutdown()
            return spawned_early

        assert run_async(_go()) == 0
        assert len(_instances(engine)) == 1
        assert clock.delays == pytest.approx([3600.0, 0.005, 7 * 24 * 3600.0])
        assert clock.current == MONDAY_MORNING + timedelta(hours=1)

    def test_cancelled_template_stops_its_job(self, engine, seed_challenge):
        tid = seed_challenge(is_template=True, cron_schedule=CRON)
        clock = ManualClock()

        async def _go():
            scheduler = ChallengeScheduler(engine, **_clocked(clock))
            await scheduler.initialize()
            challenge_service.close_challenge(engine, tid)
            await clock.fire()
            await scheduler.wait_idle()
            scheduled = scheduler.is_scheduled(tid)
            await scheduler.shutdown()
            return scheduled

        assert run_async(_go()) is False
        assert _instances(engine) == []

    def test_cancel_lets_inflight_spawn_finish(self, engine, seed_challenge):
        tid = seed_challenge(is_template=True, cron_schedule=CRON)
        clock = ManualClock()

        async def _go():
            release = asyncio.Event()

            async def slow_announce(challenge):
                await release.wait()
                return AnnouncementRef(channel_id=555, message_id=7777)

            announcer = MagicMock()
            announcer.announce = AsyncMock(side_effect=slow_announce)
            scheduler = ChallengeScheduler(engine, announcer, **_clocked(clock))
            await scheduler.initialize()
            await clock.fire()
            for _ in range(500):
                if announcer.announce.await_count:
                    break
                await asyncio.sleep(0.01)
            scheduler.cancel(tid)
            release.set()
            await scheduler.wait_idle()
            await scheduler.shutdown()

        run_async(_go())
        instances = _instances(engine)
        assert len(instances) == 1
        assert instances[0].message_id == 7777


# ===========================================================================
# spawn_instance failure handling
# ===========================================================================
class TestSpawnFailures:
    def test_announcer_error_keeps_instance(self, engine, seed_challenge, caplog):
        tid = seed_challenge(is_template=True, cron_schedule=CRON)
        announcer = MagicMock()
        announcer.announce = AsyncMock(side_effect=RuntimeError("discord down"))

        async def _go():
            scheduler = ChallengeScheduler(engine, announcer, **_clocked(ManualClock()))
            return await scheduler.spawn_instance(tid)

        with caplog.at_level(logging.ERROR, logger="crucible.services.scheduler"):
            instance = run_async(_go())

        assert instance is not None
        assert instance.message_id is None
        assert len(_instances(engine)) == 1
        assert "Announcement failed" in caplog.text

    def test_announcer_timeout(self, engine, seed_challenge, caplog):
        tid = seed_challenge(is_template=True, cron_schedule=CRON)

        async def hang(challenge):
            await asyncio.sleep(10)

        announcer = MagicMock()
        announcer.announce = AsyncMock(side_effect=hang)

        async def _go():
            scheduler = ChallengeScheduler(engine, announcer, timeout=0.05)
            return await scheduler.spawn_instance(tid)

        with caplog.at_level(logging.ERROR, logger="crucible.services.scheduler"):
            instance = run_async(_go())

        assert instance is not None
        assert "Announcement failed" in caplog.text

    def test_unreachable_channel_logged(self, engine, seed_challenge, caplog):
        tid = seed_challenge(is_template=True, cron_schedule=CRON)

        async def _go():
            scheduler = ChallengeScheduler(engine, _announcer(None))
            return await scheduler.spawn_instance(tid)

        with caplog.at_level(logging.WARNING, logger="crucible.services.scheduler"):
            instance = run_async(_go())

        assert instance.message_id is None
        assert "could not be announced" in caplog.text

    def test_storage_error_is_logged_and_job_survives(self, engine, seed_challenge, caplog):
        tid = seed_challenge(is_template=True, cron_schedule=CRON)

        async def _go():
            scheduler = ChallengeScheduler(engine, **_clocked(ManualClock()))
            await scheduler.initialize()
            with patch.object(
                challenge_service, "create_instance_from_template",
                side_effect=RuntimeError("db down"),
            ):
                result = await scheduler.spawn_instance(tid)
            scheduled = scheduler.is_scheduled(tid)
            await scheduler.shutdown()
            return result, scheduled

        with caplog.at_level(logging.ERROR, logger="crucible.services.scheduler"):
            result, scheduled = run_async(_go())

        assert result is None
        assert scheduled is True
        assert "Failed to spawn" in caplog.text
        assert _instances(engine) == []
