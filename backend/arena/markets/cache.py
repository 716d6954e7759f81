"""Market cache: the catalog of tradable markets and the resolution trigger.

Refreshes are upserts with thresholded dirty checks so price noise does not
rewrite records. A market whose ``resolved`` flag flips false -> true during
an upsert is settled once the whole batch has been written.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from arena.clock import Clock, SystemClock
from arena.models import CachedMarket, CloseReason, Odds, Side
from arena.outcomes import Declined, DeclineReason, Ok, Outcome
from arena.positions.store import PositionStore
from arena.services.polymarket.models import GammaMarket
from arena.storage import MARKETS, METADATA, KeyValueStore

from .models import CacheStats, SettlementResult, UpsertResult

logger = logging.getLogger(__name__)

PRICE_TOLERANCE = 0.001


def determine_market_outcome(yes_price: float, no_price: float) -> Side | None:
    """Infer a resolved market's outcome from its final prices.

    Returns None on a tie; callers must not guess.
    """
    if yes_price > 0.9 and no_price < 0.1:
        return "YES"
    if no_price > 0.9 and yes_price < 0.1:
        return "NO"
    if yes_price > no_price:
        return "YES"
    if no_price > yes_price:
        return "NO"
    logger.warning(f"Cannot determine outcome: yes={yes_price} no={no_price}")
    return None


def _moved(old: float, new: float, pct: float, floor: float) -> bool:
    return abs(new - old) > max(abs(old) * pct, floor)


def market_changed(existing: CachedMarket, incoming: GammaMarket) -> bool:
    """True if the incoming snapshot differs enough to be worth a write."""
    if abs(existing.yes_price - incoming.yes_price) > PRICE_TOLERANCE:
        return True
    if abs(existing.no_price - incoming.no_price) > PRICE_TOLERANCE:
        return True
    if _moved(existing.volume, incoming.volume, 0.01, 100):
        return True
    if _moved(existing.volume_24hr, incoming.volume_24hr, 0.01, 50):
        return True
    if _moved(existing.liquidity, incoming.liquidity, 0.05, 50):
        return True
    if (
        existing.active != incoming.active
        or existing.resolved != incoming.resolved
        or existing.archived != incoming.archived
    ):
        return True
    return (
        existing.question != incoming.question
        or existing.description != incoming.description
        or existing.end_date != incoming.end_date
    )


class MarketCache:
    def __init__(
        self,
        store: KeyValueStore,
        positions: PositionStore,
        clock: Clock | None = None,
    ):
        self.store = store
        self.positions = positions
        self.clock = clock or SystemClock()

    def _now(self) -> str:
        return self.clock.now().isoformat()

    def _from_gamma(
        self, market: GammaMarket, source: str, existing: CachedMarket | None
    ) -> CachedMarket:
        now = self.clock.now()
        return CachedMarket(
            polymarket_id=market.id,
            question=market.question,
            description=market.description,
            category=market.category,
            yes_price=market.yes_price,
            no_price=market.no_price,
            volume=market.volume,
            volume_24hr=market.volume_24hr,
            liquidity=market.liquidity,
            end_date=market.end_date,
            active=market.active,
            resolved=market.resolved,
            archived=market.archived,
            analyzed=existing.analyzed if existing else False,
            analyzed_at=existing.analyzed_at if existing else None,
            outcome=existing.outcome if existing else None,
            source=source,
            created_at=existing.created_at if existing else now,
            cached_at=existing.cached_at if existing else now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Refresh and settlement
    # ------------------------------------------------------------------

    async def upsert_markets(
        self, markets: Iterable[GammaMarket], source: str = "polymarket"
    ) -> UpsertResult:
        result = UpsertResult()
        stored = await self.store.all(MARKETS)

        for market in markets:
            result.total += 1
            if not market.id:
                result.skipped += 1
                continue

            record = stored.get(market.id)
            existing = CachedMarket.model_validate(record) if record else None

            if existing is not None and not market_changed(existing, market):
                result.skipped += 1
                continue

            cached = self._from_gamma(market, source, existing)
            await self.store.set(MARKETS, market.id, cached.model_dump(mode="json"))

            if existing is None:
                result.added += 1
            else:
                result.updated += 1
                if not existing.resolved and cached.resolved:
                    result.newly_resolved.append(market.id)

        await self.store.set(
            METADATA,
            "markets",
            {
                "last_refresh": self._now(),
                "total_markets": len(await self.store.all(MARKETS)),
                "source": source,
                "last_added": result.added,
                "last_updated": result.updated,
            },
        )

        for market_id in result.newly_resolved:
            try:
                result.settlements.append(await self.settle_market(market_id))
            except Exception as e:
                logger.error(f"Settlement failed for market {market_id}: {e}", exc_info=True)
                result.settlements.append(
                    SettlementResult(market_id=market_id, errors=[str(e)])
                )

        logger.info(
            f"Market upsert: {result.added} added, {result.updated} updated, "
            f"{result.skipped} skipped, {len(result.newly_resolved)} newly resolved"
        )
        return result

    async def settle_market(
        self, market_id: str, outcome: Side | None = None
    ) -> SettlementResult:
        """Resolve and close every prediction on a market.

        Without an explicit outcome, it is inferred from cached prices; an
        ambiguous market is left untouched.
        """
        result = SettlementResult(market_id=market_id)
        market = await self.get_market(market_id)
        if market is None:
            result.errors.append("market not found")
            return result

        if outcome is None:
            outcome = determine_market_outcome(market.yes_price, market.no_price)
            if outcome is None:
                logger.warning(f"⚠️ Market {market_id} resolved but outcome is ambiguous")
                return result

        result.outcome = outcome
        await self.store.update(MARKETS, market_id, {"outcome": outcome})
        final_odds = Odds(
            yes_price=market.yes_price,
            no_price=market.no_price,
            timestamp=self.clock.now(),
        )

        for prediction in await self.positions.get_unresolved_predictions(market_id):
            try:
                settled = await self.positions.resolve_prediction(
                    prediction.id, outcome, final_odds
                )
            except Exception as e:
                result.errors.append(f"{prediction.id}: {e}")
                logger.error(f"Failed to resolve {prediction.id}: {e}", exc_info=True)
                continue
            if settled:
                result.predictions_resolved += 1
            else:
                result.skipped += 1

        for position in await self.positions.get_open_positions(market_id):
            try:
                closed = await self.positions.close_position(
                    position.id, CloseReason.MARKET_RESOLVED
                )
            except Exception as e:
                result.errors.append(f"{position.id}: {e}")
                logger.error(f"Failed to close {position.id}: {e}", exc_info=True)
                continue
            if closed:
                result.positions_closed += 1

        logger.info(
            f"🏁 Market {market_id} settled as {outcome}: "
            f"{result.predictions_resolved} resolved, {result.positions_closed} closed, "
            f"{len(result.errors)} errors"
        )
        return result

    async def manually_resolve_market(
        self, market_id: str, outcome: Side
    ) -> Outcome[SettlementResult]:
        """Admin override: mark resolved with an explicit outcome and settle."""
        if await self.get_market(market_id) is None:
            return Declined(DeclineReason.NOT_FOUND, f"Market {market_id} not found in cache")

        await self.store.update(
            MARKETS,
            market_id,
            {"resolved": True, "active": False, "outcome": outcome, "updated_at": self._now()},
        )
        return Ok(await self.settle_market(market_id, outcome))

    # ------------------------------------------------------------------
    # Catalog access
    # ------------------------------------------------------------------

    async def get_market(self, market_id: str) -> CachedMarket | None:
        record = await self.store.get(MARKETS, market_id)
        return CachedMarket.model_validate(record) if record else None

    async def get_all_markets(self) -> list[CachedMarket]:
        return [CachedMarket.model_validate(r) for r in (await self.store.all(MARKETS)).values()]

    async def update_market(self, market_id: str, changes: dict[str, Any]) -> CachedMarket:
        changes = {**changes, "updated_at": self._now()}
        return CachedMarket.model_validate(await self.store.update(MARKETS, market_id, changes))

    async def update_prices(self, market_id: str, yes_price: float, no_price: float) -> bool:
        """Refresh cached prices from a tracker reading; False if not cached."""
        if await self.store.get(MARKETS, market_id) is None:
            return False
        await self.update_market(market_id, {"yes_price": yes_price, "no_price": no_price})
        return True

    async def delete_market(self, market_id: str) -> bool:
        return await self.store.delete(MARKETS, market_id)

    async def clear_cache(self) -> int:
        count = await self.store.clear(MARKETS)
        await self.store.delete(METADATA, "markets")
        logger.warning(f"Cleared {count} cached markets")
        return count

    async def get_cache_stats(self) -> CacheStats:
        markets = await self.get_all_markets()
        meta = await self.store.get(METADATA, "markets") or {}
        analyzed = sum(1 for m in markets if m.analyzed)
        return CacheStats(
            total_markets=len(markets),
            active_markets=sum(1 for m in markets if m.active and not m.resolved),
            resolved_markets=sum(1 for m in markets if m.resolved),
            archived_markets=sum(1 for m in markets if m.archived),
            analyzed_markets=analyzed,
            unanalyzed_markets=len(markets) - analyzed,
            last_refresh=meta.get("last_refresh"),
            source=meta.get("source"),
        )

    async def search_markets(self, query: str, limit: int = 50) -> list[CachedMarket]:
        needle = query.lower().strip()
        matches = [
            m
            for m in await self.get_all_markets()
            if needle in m.question.lower() or needle in m.description.lower()
        ]
        return sorted(matches, key=lambda m: m.volume, reverse=True)[:limit]

    async def get_markets_by_category(self, category: str) -> list[CachedMarket]:
        wanted = category.lower()
        return [m for m in await self.get_all_markets() if m.category.lower() == wanted]

    async def get_unanalyzed_markets(self, limit: int = 10) -> list[CachedMarket]:
        candidates = [
            m
            for m in await self.get_all_markets()
            if m.active and not m.resolved and not m.archived and not m.analyzed
        ]
        return sorted(candidates, key=lambda m: m.volume, reverse=True)[:limit]

    async def mark_market_analyzed(self, market_id: str) -> None:
        now = self._now()
        await self.store.update(
            MARKETS, market_id, {"analyzed": True, "analyzed_at": now, "updated_at": now}
        )

    async def reset_analyzed_status(self) -> int:
        """Clear every analyzed flag; returns how many were reset."""
        updates = {
            key: {"analyzed": False, "analyzed_at": None}
            for key, record in (await self.store.all(MARKETS)).items()
            if record.get("analyzed")
        }
        if not updates:
            return 0
        count = await self.store.batch_update(MARKETS, updates)
        logger.info(f"Reset analyzed status on {count} markets")
        return count
