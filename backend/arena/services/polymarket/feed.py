"""Price feed adapter: best-effort current odds for a market."""

from __future__ import annotations

import logging

from arena.clock import Clock, SystemClock
from arena.models import MarketOdds

from .client import PolymarketClient
from .models import NEUTRAL_PRICE, GammaMarket, to_float, extract_prices, normalize_odds

logger = logging.getLogger(__name__)


class PriceFeed:
    """Wraps the Gamma client with the neutral-fallback contract.

    ``get_market_odds`` never raises for transport or payload problems: a
    stale or neutral price is preferred over failing a whole tracker cycle.
    """

    def __init__(self, client: PolymarketClient, clock: Clock | None = None):
        self.client = client
        self.clock = clock or SystemClock()

    def _neutral(self, market_id: str) -> MarketOdds:
        return MarketOdds(
            market_id=market_id,
            yes_price=NEUTRAL_PRICE,
            no_price=NEUTRAL_PRICE,
            volume_24h=0.0,
            last_updated=self.clock.now(),
            is_fallback=True,
        )

    async def get_market_odds(self, market_id: str) -> MarketOdds:
        try:
            data = await self.client.get_market_raw(market_id)
        except Exception as e:
            logger.warning(f"Price fetch failed for {market_id}, using 0.5/0.5: {e}")
            return self._neutral(market_id)

        prices = extract_prices(data)
        if prices is None:
            logger.warning(f"No price fields for {market_id}, using 0.5/0.5")
            return self._neutral(market_id)

        yes_price, no_price = normalize_odds(*prices)
        return MarketOdds(
            market_id=market_id,
            yes_price=yes_price,
            no_price=no_price,
            volume_24h=to_float(data.get("volume24hr", data.get("volume_24hr"))),
            last_updated=self.clock.now(),
        )

    async def fetch_market(self, market_id: str) -> GammaMarket:
        """Full market snapshot including the closed flag. Raises on failure."""
        return await self.client.get_market(market_id)

    async def fetch_markets(self, limit: int = 0, active_only: bool = True) -> list[GammaMarket]:
        return await self.client.get_markets(limit=limit, active_only=active_only)
