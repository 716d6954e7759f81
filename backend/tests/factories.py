"""Shared builders for tests: in-memory services, Gamma payloads, fake HTTP."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx

from arena.agents.orchestrator import expected_payout_for
from arena.clock import FakeClock
from arena.config import LedgerConfig
from arena.ledger import BalanceLedger
from arena.markets import MarketCache, OddsStore
from arena.models import AgentPrediction, Odds, Side
from arena.positions import NeverClosePolicy, PositionStore, PredictionDraft
from arena.roster import AGENT_ROSTER
from arena.services.polymarket import GammaMarket, PolymarketClient, PolymarketConfig, PriceFeed
from arena.storage import KeyValueStore, MemoryStore, YamlStore

END_DATE = "2025-06-30T00:00:00Z"


def gamma_payload(
    market_id: str = "m1",
    yes: float = 0.4,
    no: float = 0.6,
    closed: bool = False,
    volume: float = 50000,
    **extra: Any,
) -> dict[str, Any]:
    payload = {
        "id": market_id,
        "question": f"Will event {market_id} happen?",
        "description": "Resolves YES if it happens.",
        "category": "Politics",
        "outcomePrices": f'["{yes}", "{no}"]',
        "volumeNum": volume,
        "volume24hr": volume / 10,
        "liquidityNum": 5000,
        "endDate": END_DATE,
        "active": not closed,
        "closed": closed,
        "archived": False,
    }
    payload.update(extra)
    return payload


def gamma_market(market_id: str = "m1", **kwargs: Any) -> GammaMarket:
    return GammaMarket.from_api(gamma_payload(market_id, **kwargs))


def gamma_transport(
    markets: dict[str, dict[str, Any]] | None = None,
    listing: list[dict[str, Any]] | None = None,
) -> httpx.MockTransport:
    """Serves ``/markets`` from ``listing`` and ``/markets/{id}`` from ``markets``."""
    markets = markets or {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.rstrip("/")
        if path == "/markets":
            return httpx.Response(200, json=listing if listing is not None else list(markets.values()))
        market_id = path.rsplit("/", 1)[-1]
        if market_id in markets:
            return httpx.Response(200, json=markets[market_id])
        return httpx.Response(404, json={"error": "not found"})

    return httpx.MockTransport(handler)


def gamma_client(transport: httpx.AsyncBaseTransport) -> PolymarketClient:
    return PolymarketClient(PolymarketConfig(max_retries=1), transport=transport)


class UnwritableYamlStore(YamlStore):
    """YamlStore whose snapshots of ``failing`` collections cannot be written."""

    def __init__(self, directory: Path, failing: set[str]):
        self.failing = failing
        super().__init__(directory)

    def _path(self, collection: str) -> Path:
        if collection in self.failing:
            return self.directory / "missing" / f"{collection}.yaml"
        return super()._path(collection)


class Harness:
    """Ledger, positions, odds and market cache over one store."""

    def __init__(
        self,
        clock: FakeClock | None = None,
        closure_policy=None,
        store: KeyValueStore | None = None,
    ):
        self.clock = clock or FakeClock()
        self.store = store or MemoryStore()
        self.ledger = BalanceLedger(self.store, LedgerConfig(), self.clock)
        self.positions = PositionStore(
            self.store, self.ledger, self.clock, closure_policy or NeverClosePolicy()
        )
        self.odds_store = OddsStore(self.store, self.clock)
        self.markets = MarketCache(self.store, self.positions, self.clock)

    def price_feed(self, transport: httpx.AsyncBaseTransport) -> PriceFeed:
        return PriceFeed(gamma_client(transport), self.clock)

    async def seed_agents(self) -> None:
        await self.ledger.initialize(AGENT_ROSTER)

    async def open_position(
        self,
        agent_id: str = "chatgpt-4",
        market_id: str = "m1",
        side: Side = "YES",
        bet: float = 10.0,
        yes: float = 0.4,
        no: float = 0.6,
    ) -> AgentPrediction:
        """Debit and record a position the way the orchestrator does."""
        placed = await self.ledger.place_bet(agent_id, bet)
        assert placed, placed
        entry_odds = Odds(yes_price=yes, no_price=no)
        return await self.positions.save_prediction(
            PredictionDraft(
                agent_id=agent_id,
                agent_name=agent_id,
                market_id=market_id,
                prediction=side,
                confidence=0.8,
                bet_amount=bet,
                entry_odds=entry_odds,
                expected_payout=expected_payout_for(bet, entry_odds.price_for(side)),
            )
        )

    async def balance(self, agent_id: str = "chatgpt-4") -> float:
        record = await self.ledger.get_balance(agent_id)
        assert record is not None
        return record.current_balance
