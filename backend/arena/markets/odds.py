"""Current market odds and their short rolling history."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from arena.clock import Clock, SystemClock
from arena.models import MarketOdds
from arena.storage import MARKET_ODDS, ODDS_HISTORY, KeyValueStore

logger = logging.getLogger(__name__)


class OddsStore:
    def __init__(self, store: KeyValueStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or SystemClock()

    async def record_odds(self, odds: MarketOdds) -> None:
        """Replace the current odds for a market and append to its history."""
        record = odds.model_dump(mode="json")
        await self.store.set(MARKET_ODDS, odds.market_id, record)
        await self.store.push(
            ODDS_HISTORY,
            {
                "market_id": odds.market_id,
                "yes_price": odds.yes_price,
                "no_price": odds.no_price,
                "volume_24h": odds.volume_24h,
                "timestamp": record["last_updated"],
            },
        )

    async def get_odds(self, market_id: str) -> MarketOdds | None:
        record = await self.store.get(MARKET_ODDS, market_id)
        return MarketOdds.model_validate(record) if record else None

    async def get_all_odds(self) -> dict[str, MarketOdds]:
        records = await self.store.all(MARKET_ODDS)
        return {key: MarketOdds.model_validate(r) for key, r in records.items()}

    async def get_odds_history(self, market_id: str, hours: float = 24) -> list[MarketOdds]:
        cutoff = self.clock.now() - timedelta(hours=hours)
        history = [
            MarketOdds(
                market_id=entry["market_id"],
                yes_price=entry["yes_price"],
                no_price=entry["no_price"],
                volume_24h=entry.get("volume_24h", 0.0),
                last_updated=entry["timestamp"],
            )
            for entry in await self.store.query(ODDS_HISTORY, "market_id", market_id)
        ]
        return sorted(
            (h for h in history if h.last_updated >= cutoff),
            key=lambda h: h.last_updated,
        )

    async def cleanup_history(self, retention_days: int = 7) -> int:
        """Drop history entries older than the retention window."""
        cutoff = self.clock.now() - timedelta(days=retention_days)
        removed = 0
        for key, entry in (await self.store.all(ODDS_HISTORY)).items():
            if datetime.fromisoformat(entry["timestamp"]) < cutoff:
                await self.store.delete(ODDS_HISTORY, key)
                removed += 1
        if removed:
            logger.info(f"Removed {removed} odds history entries older than {retention_days}d")
        return removed
