"""Wires the services together around one store, price feed and clock."""

from __future__ import annotations

import logging
import random
from contextlib import AsyncExitStack
from typing import Any

from arena.agents.classifier import Classifier, PydanticAIClassifier
from arena.agents.orchestrator import AnalysisOrchestrator
from arena.clock import Clock, SystemClock
from arena.config import Settings
from arena.ledger.balances import BalanceLedger
from arena.markets.cache import MarketCache
from arena.markets.odds import OddsStore
from arena.positions.closure import ClosurePolicy, StochasticClosurePolicy
from arena.positions.store import PositionStore
from arena.roster import AGENT_ROSTER
from arena.services.polymarket import PolymarketClient, PriceFeed
from arena.storage import KeyValueStore, create_store
from arena.trackers import (
    IntegratedTracker,
    MarketRefreshTracker,
    OddsTracker,
    PositionManager,
    Tracker,
)

logger = logging.getLogger(__name__)


class Arena:
    """All long-lived services of one process.

    Use as an async context manager: entering opens the price feed's HTTP
    client and seeds agent balances; leaving closes both.
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore | None = None,
        price_feed: PriceFeed | None = None,
        classifier: Classifier | None = None,
        closure_policy: ClosurePolicy | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.clock = clock or SystemClock()
        self.store = store or create_store(settings)
        self._exit_stack = AsyncExitStack()

        self._client: PolymarketClient | None = None
        if price_feed is None:
            self._client = PolymarketClient(settings.price_feed)
            price_feed = PriceFeed(self._client, self.clock)
        self.price_feed = price_feed

        self.ledger = BalanceLedger(self.store, settings.ledger, self.clock)
        self.positions = PositionStore(
            self.store,
            self.ledger,
            self.clock,
            closure_policy or StochasticClosurePolicy(settings.positions),
        )
        self.odds_store = OddsStore(self.store, self.clock)
        self.markets = MarketCache(self.store, self.positions, self.clock)
        self.orchestrator = AnalysisOrchestrator(
            self.store,
            self.ledger,
            self.positions,
            self.markets,
            classifier
            or PydanticAIClassifier(
                settings.orchestrator.reasoning_model, settings.openai_api_key
            ),
            roster=AGENT_ROSTER,
            config=settings.orchestrator,
            sizing=settings.sizing,
            clock=self.clock,
            rng=rng,
        )
        self.trackers = self._build_trackers()

    def _build_trackers(self) -> dict[str, Tracker]:
        cfg = self.settings.trackers
        odds = OddsTracker(
            self.price_feed,
            self.odds_store,
            self.positions,
            self.markets,
            interval_seconds=cfg.odds_interval_seconds,
            timeout_seconds=cfg.cycle_timeout_seconds,
            request_delay_seconds=cfg.odds_request_delay_seconds,
            history_retention_days=cfg.odds_history_retention_days,
            clock=self.clock,
        )
        positions = PositionManager(
            self.positions,
            self.odds_store,
            self.markets,
            interval_seconds=cfg.positions_interval_seconds,
            timeout_seconds=cfg.cycle_timeout_seconds,
            clock=self.clock,
        )
        refresh = MarketRefreshTracker(
            self.price_feed,
            self.markets,
            self.positions,
            limit=cfg.refresh_market_limit,
            interval_seconds=cfg.market_refresh_interval_seconds,
            timeout_seconds=cfg.cycle_timeout_seconds,
            clock=self.clock,
        )
        integrated = IntegratedTracker(
            odds,
            positions,
            interval_seconds=cfg.integrated_interval_seconds,
            timeout_seconds=cfg.cycle_timeout_seconds * 2,
            clock=self.clock,
        )
        return {t.name: t for t in (odds, positions, refresh, integrated)}

    async def __aenter__(self) -> Arena:
        if self._client is not None:
            await self._exit_stack.enter_async_context(self._client)
        await self.ledger.initialize(AGENT_ROSTER)
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> None:
        for tracker in self.trackers.values():
            tracker.running = False
            tracker.cancel()
        await self._exit_stack.aclose()
        await self.store.close()
