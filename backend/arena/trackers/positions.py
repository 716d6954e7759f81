"""Position manager: revalues open positions and runs the closure policy."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from arena.clock import Clock
from arena.markets.cache import MarketCache
from arena.markets.odds import OddsStore
from arena.models import Odds
from arena.positions.models import ManagementStats, PositionReport
from arena.positions.store import PositionStore

from .base import Tracker, TrackerStatus

logger = logging.getLogger(__name__)


class PositionCycleStats(BaseModel):
    markets_revalued: int = 0
    positions_revalued: int = 0
    markets_without_odds: int = 0
    errors: int = 0
    management: ManagementStats = Field(default_factory=ManagementStats)


class PositionManagerStatus(TrackerStatus):
    open_positions: int = 0
    total_unrealized_pnl: float = 0.0


class PositionManager(Tracker):
    name = "positions"

    def __init__(
        self,
        positions: PositionStore,
        odds_store: OddsStore,
        markets: MarketCache,
        interval_seconds: float = 300,
        timeout_seconds: float = 120,
        clock: Clock | None = None,
    ):
        super().__init__(interval_seconds, timeout_seconds, clock)
        self.positions = positions
        self.odds_store = odds_store
        self.markets = markets

    async def _odds_for(self, market_id: str) -> Odds | None:
        stored = await self.odds_store.get_odds(market_id)
        if stored is not None:
            return stored.to_odds()
        market = await self.markets.get_market(market_id)
        if market is None:
            return None
        return Odds(yes_price=market.yes_price, no_price=market.no_price, timestamp=self.clock.now())

    async def _cycle(self) -> PositionCycleStats:
        stats = PositionCycleStats()

        for market_id in await self.positions.get_markets_with_open_positions():
            try:
                odds = await self._odds_for(market_id)
                if odds is None:
                    stats.markets_without_odds += 1
                    continue
                stats.positions_revalued += await self.positions.update_market_odds(market_id, odds)
                stats.markets_revalued += 1
            except Exception as e:
                stats.errors += 1
                logger.error(f"Revaluation failed for {market_id}: {e}", exc_info=True)

        stats.management = await self.positions.random_position_management()

        report = await self.positions.position_report()
        logger.info(
            f"📊 Positions: {report.open_positions} open, "
            f"unrealized ${report.total_unrealized_pnl:+.2f}, "
            f"closed this cycle {stats.management.positions_closed}"
        )
        return stats

    async def force_update(self) -> PositionCycleStats | None:
        return await self.run_cycle()

    async def get_position_report(self) -> PositionReport:
        return await self.positions.position_report()

    async def get_status(self) -> PositionManagerStatus:
        report = await self.positions.position_report()
        return PositionManagerStatus(
            **self.status().model_dump(),
            open_positions=report.open_positions,
            total_unrealized_pnl=report.total_unrealized_pnl,
        )
