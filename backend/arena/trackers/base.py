"""Common lifecycle for periodic tracking loops.

A tracker only knows how to run one cycle. Scheduling belongs to the
supervisor in ``arena.scheduler``; a cycle is a cancellable task bounded by
a timeout, and overlapping cycles of the same tracker are skipped.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from arena.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class TrackerStatus(BaseModel):
    name: str
    running: bool = False
    cycle_in_progress: bool = False
    interval_seconds: float
    cycles_completed: int = 0
    cycles_failed: int = 0
    cycles_timed_out: int = 0
    last_started: datetime | None = None
    last_completed: datetime | None = None
    last_duration_seconds: float | None = None
    last_error: str | None = None


class Tracker(ABC):
    name: str = "tracker"

    def __init__(
        self,
        interval_seconds: float,
        timeout_seconds: float = 120,
        clock: Clock | None = None,
    ):
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.clock = clock or SystemClock()
        self.running = False
        self.last_result: Any = None
        self._task: asyncio.Task | None = None
        self._status = TrackerStatus(name=self.name, interval_seconds=interval_seconds)

    @abstractmethod
    async def _cycle(self) -> Any:
        """One unit of work. Exceptions are recorded by ``run_cycle``."""

    async def run_cycle(self) -> Any:
        """Run one cycle with a timeout. Returns the cycle result, or None if
        the cycle was skipped, failed, or timed out."""
        if self._task is not None and not self._task.done():
            logger.info(f"[{self.name}] cycle already in progress, skipping")
            return None

        started = self.clock.now()
        self._status.last_started = started
        task = asyncio.create_task(self._cycle(), name=f"{self.name}-cycle")
        self._task = task

        try:
            result = await asyncio.wait_for(task, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._status.cycles_timed_out += 1
            self._status.last_error = f"timed out after {self.timeout_seconds}s"
            logger.error(f"[{self.name}] cycle timed out after {self.timeout_seconds}s")
            return None
        except asyncio.CancelledError:
            if task.cancelled() and not self.running:
                logger.info(f"[{self.name}] cycle cancelled")
                return None
            raise
        except Exception as e:
            self._status.cycles_failed += 1
            self._status.last_error = str(e)
            logger.error(f"[{self.name}] cycle failed: {e}", exc_info=True)
            return None
        finally:
            if self._task is task:
                self._task = None

        completed = self.clock.now()
        self._status.cycles_completed += 1
        self._status.last_completed = completed
        self._status.last_duration_seconds = (completed - started).total_seconds()
        self._status.last_error = None
        self.last_result = result
        return result

    async def wait_for_cycle(self) -> None:
        """Wait until the in-flight cycle, if any, has finished. Never raises its errors."""
        task = self._task
        if task is not None and not task.done():
            logger.info(f"[{self.name}] waiting for in-flight cycle")
            await asyncio.wait({task})

    def cancel(self) -> bool:
        """Cancel the in-flight cycle, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            return True
        return False

    def status(self) -> TrackerStatus:
        return self._status.model_copy(
            update={
                "running": self.running,
                "cycle_in_progress": self._task is not None and not self._task.done(),
            }
        )
