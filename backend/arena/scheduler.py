"""Tracker supervision using APScheduler."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, NoReturn

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from arena.config import Settings
from arena.runtime import Arena
from arena.trackers import Tracker, TrackerStatus

logger = logging.getLogger(__name__)

DEFAULT_TRACKERS = ("market_refresh", "integrated")

_JOB_NAMES = {
    "odds": "Odds Tracker",
    "positions": "Position Manager",
    "market_refresh": "Market Refresh",
    "integrated": "Integrated Tracker",
}


class TrackerSupervisor:
    """Owns tracker lifecycles: one interval job per running tracker."""

    def __init__(
        self,
        trackers: dict[str, Tracker],
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.trackers = trackers
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

    def _get(self, name: str) -> Tracker:
        tracker = self.trackers.get(name)
        if tracker is None:
            raise KeyError(f"Unknown tracker: {name}")
        return tracker

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("✓ Scheduler started")

    def start_tracker(self, name: str, run_now: bool = True) -> bool:
        """Schedule a tracker; False if it was already running."""
        tracker = self._get(name)
        if tracker.running:
            return False

        self.start()
        self.scheduler.add_job(
            tracker.run_cycle,
            IntervalTrigger(seconds=tracker.interval_seconds),
            id=name,
            name=_JOB_NAMES.get(name, name),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc) if run_now else None,
        )
        tracker.running = True
        logger.info(
            f"Registered job: {_JOB_NAMES.get(name, name)} (every {tracker.interval_seconds:g}s)"
        )
        return True

    def stop_tracker(self, name: str) -> bool:
        """Unschedule a tracker and cancel its in-flight cycle."""
        tracker = self._get(name)
        if not tracker.running:
            return False

        tracker.running = False
        try:
            self.scheduler.remove_job(name)
        except JobLookupError:
            logger.debug(f"No scheduled job for {name}")
        if tracker.cancel():
            logger.info(f"Cancelled in-flight {name} cycle")
        logger.info(f"🛑 Stopped {name} tracker")
        return True

    async def force_cycle(self, name: str) -> Any:
        return await self._get(name).run_cycle()

    def status(self) -> dict[str, TrackerStatus]:
        return {name: tracker.status() for name, tracker in self.trackers.items()}

    def shutdown(self) -> None:
        for name in list(self.trackers):
            self.stop_tracker(name)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("✓ Scheduler stopped cleanly")


async def run_trackers(settings: Settings, trackers: tuple[str, ...] = DEFAULT_TRACKERS) -> None:
    """Run the default trackers until cancelled."""
    async with Arena(settings) as arena:
        supervisor = TrackerSupervisor(arena.trackers)
        for name in trackers:
            supervisor.start_tracker(name)

        logger.info(f"✓ {len(supervisor.scheduler.get_jobs())} jobs registered")
        logger.info("Press Ctrl+C to stop\n")
        try:
            await asyncio.Event().wait()
        finally:
            supervisor.shutdown()


def start_scheduler(settings: Settings) -> NoReturn:
    """Block running the trackers; exits on Ctrl+C."""
    try:
        asyncio.run(run_trackers(settings))
    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
    raise SystemExit(0)
