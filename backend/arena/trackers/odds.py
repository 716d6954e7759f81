"""Odds tracker: pulls live prices for markets with open positions."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from arena.clock import Clock
from arena.markets.cache import MarketCache
from arena.markets.odds import OddsStore
from arena.positions.store import PositionStore
from arena.services.polymarket.feed import PriceFeed

from .base import Tracker

logger = logging.getLogger(__name__)


class OddsCycleStats(BaseModel):
    markets_checked: int = 0
    markets_updated: int = 0
    fallbacks: int = 0
    positions_revalued: int = 0
    errors: int = 0
    history_removed: int = 0


class OddsTracker(Tracker):
    name = "odds"

    def __init__(
        self,
        price_feed: PriceFeed,
        odds_store: OddsStore,
        positions: PositionStore,
        markets: MarketCache | None = None,
        interval_seconds: float = 900,
        timeout_seconds: float = 120,
        request_delay_seconds: float = 0.2,
        history_retention_days: int = 7,
        clock: Clock | None = None,
    ):
        super().__init__(interval_seconds, timeout_seconds, clock)
        self.price_feed = price_feed
        self.odds_store = odds_store
        self.positions = positions
        self.markets = markets
        self.request_delay_seconds = request_delay_seconds
        self.history_retention_days = history_retention_days

    async def _update_market(self, market_id: str, stats: OddsCycleStats) -> None:
        odds = await self.price_feed.get_market_odds(market_id)

        if odds.is_fallback:
            stats.fallbacks += 1
            if await self.odds_store.get_odds(market_id) is not None:
                logger.debug(f"Keeping last known odds for {market_id}")
                return

        await self.odds_store.record_odds(odds)
        stats.positions_revalued += await self.positions.update_market_odds(
            market_id, odds.to_odds()
        )
        if self.markets is not None and not odds.is_fallback:
            await self.markets.update_prices(market_id, odds.yes_price, odds.no_price)
        stats.markets_updated += 1

    async def _cycle(self) -> OddsCycleStats:
        stats = OddsCycleStats()
        market_ids = await self.positions.get_markets_with_open_positions()
        logger.info(f"📈 Updating odds for {len(market_ids)} markets with open positions")

        for i, market_id in enumerate(market_ids):
            stats.markets_checked += 1
            try:
                await self._update_market(market_id, stats)
            except Exception as e:
                stats.errors += 1
                logger.error(f"Odds update failed for {market_id}: {e}", exc_info=True)

            if i < len(market_ids) - 1 and self.request_delay_seconds > 0:
                await self.clock.sleep(self.request_delay_seconds)

        stats.history_removed = await self.odds_store.cleanup_history(
            self.history_retention_days
        )
        logger.info(
            f"Odds cycle: {stats.markets_updated}/{stats.markets_checked} markets, "
            f"{stats.positions_revalued} positions revalued, {stats.fallbacks} fallbacks, "
            f"{stats.errors} errors"
        )
        return stats
