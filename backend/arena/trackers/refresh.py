"""Market refresh tracker: keeps the market cache in sync with the feed."""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel

from arena.clock import Clock
from arena.markets.cache import MarketCache
from arena.markets.models import UpsertResult
from arena.positions.store import PositionStore
from arena.services.polymarket.feed import PriceFeed

from .base import Tracker

logger = logging.getLogger(__name__)


class RefreshStats(BaseModel):
    """Running totals since the last reset."""

    total_markets: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    resolved: int = 0
    refreshes: int = 0
    last_refresh: datetime | None = None
    errors: int = 0


class MarketRefreshTracker(Tracker):
    name = "market_refresh"

    def __init__(
        self,
        price_feed: PriceFeed,
        markets: MarketCache,
        positions: PositionStore,
        limit: int = 0,
        interval_seconds: float = 7,
        timeout_seconds: float = 120,
        clock: Clock | None = None,
    ):
        super().__init__(interval_seconds, timeout_seconds, clock)
        self.price_feed = price_feed
        self.markets = markets
        self.positions = positions
        self.limit = limit
        self.stats = RefreshStats()

    async def _held_markets_missing(self, listed: set[str]) -> list[str]:
        """Markets we hold positions on that the active listing no longer shows.

        The listing only covers open markets, so these are re-fetched one by
        one to pick up their closed flag.
        """
        held = await self.positions.get_markets_with_open_positions()
        return [market_id for market_id in held if market_id not in listed]

    async def _cycle(self) -> UpsertResult:
        try:
            fresh = await self.price_feed.fetch_markets(limit=self.limit)
        except Exception:
            self.stats.errors += 1
            raise

        listed = {m.id for m in fresh}
        for market_id in await self._held_markets_missing(listed):
            try:
                fresh.append(await self.price_feed.fetch_market(market_id))
            except Exception as e:
                self.stats.errors += 1
                logger.warning(f"Could not re-fetch held market {market_id}: {e}")

        result = await self.markets.upsert_markets(fresh, source="polymarket")

        self.stats.total_markets = (await self.markets.get_cache_stats()).total_markets
        self.stats.added += result.added
        self.stats.updated += result.updated
        self.stats.skipped += result.skipped
        self.stats.resolved += len(result.newly_resolved)
        self.stats.refreshes += 1
        self.stats.last_refresh = self.clock.now()
        return result

    def reset_stats(self) -> RefreshStats:
        previous = self.stats
        self.stats = RefreshStats()
        return previous
