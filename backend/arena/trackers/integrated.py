"""Integrated tracker: odds, then positions, strictly in sequence."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from arena.clock import Clock

from .base import Tracker
from .odds import OddsCycleStats, OddsTracker
from .positions import PositionCycleStats, PositionManager

logger = logging.getLogger(__name__)


class IntegratedCycleStats(BaseModel):
    odds: OddsCycleStats | None = None
    positions: PositionCycleStats | None = None


class IntegratedTracker(Tracker):
    name = "integrated"

    def __init__(
        self,
        odds_tracker: OddsTracker,
        position_manager: PositionManager,
        interval_seconds: float = 300,
        timeout_seconds: float = 240,
        clock: Clock | None = None,
    ):
        super().__init__(interval_seconds, timeout_seconds, clock)
        self.odds_tracker = odds_tracker
        self.position_manager = position_manager

    async def _cycle(self) -> IntegratedCycleStats:
        # A standalone odds cycle may already be writing; let it finish first.
        await self.odds_tracker.wait_for_cycle()
        odds = await self.odds_tracker.run_cycle()
        if odds is None:
            logger.warning("[integrated] odds phase produced no result, skipping revaluation")
            return IntegratedCycleStats()

        positions = await self.position_manager.run_cycle()
        return IntegratedCycleStats(odds=odds, positions=positions)
