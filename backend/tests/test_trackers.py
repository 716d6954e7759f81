"""Tests for tracker cycles and their lifecycle guarantees."""

import asyncio
from typing import Any

import pytest

from arena.models import CloseReason, MarketOdds
from arena.trackers import (
    IntegratedTracker,
    MarketRefreshTracker,
    OddsCycleStats,
    OddsTracker,
    PositionCycleStats,
    PositionManager,
    Tracker,
)

from factories import Harness, gamma_market, gamma_payload, gamma_transport


class SleepyTracker(Tracker):
    name = "sleepy"

    def __init__(self, seconds: float, timeout_seconds: float = 1.0):
        super().__init__(interval_seconds=60, timeout_seconds=timeout_seconds)
        self.seconds = seconds

    async def _cycle(self) -> str:
        await asyncio.sleep(self.seconds)
        return "done"


class BrokenTracker(Tracker):
    name = "broken"

    async def _cycle(self) -> None:
        raise RuntimeError("upstream exploded")


class RecordingTracker(Tracker):
    def __init__(self, name: str, log: list[str], result: Any, delay: float = 0):
        super().__init__(interval_seconds=60)
        self.name = name
        self.log = log
        self.result = result
        self.delay = delay

    async def _cycle(self) -> Any:
        self.log.append(f"{self.name}:start")
        await asyncio.sleep(self.delay)
        self.log.append(f"{self.name}:end")
        return self.result


class AlwaysProfitTaking:
    def decide(self, pnl_pct: float, age_hours: float) -> CloseReason | None:
        return CloseReason.PROFIT_TAKING if pnl_pct > 0 else None


def test_cycle_timeout_is_recorded() -> None:
    async def run() -> None:
        tracker = SleepyTracker(seconds=5, timeout_seconds=0.05)
        assert await tracker.run_cycle() is None
        status = tracker.status()
        assert status.cycles_timed_out == 1
        assert "timed out" in status.last_error
        assert not status.cycle_in_progress

    asyncio.run(run())


def test_overlapping_cycle_is_skipped() -> None:
    async def run() -> None:
        tracker = SleepyTracker(seconds=0.05)
        results = await asyncio.gather(tracker.run_cycle(), tracker.run_cycle())
        assert results.count(None) == 1
        assert "done" in results
        assert tracker.status().cycles_completed == 1

    asyncio.run(run())


def test_failed_cycle_is_recorded_not_raised() -> None:
    async def run() -> None:
        tracker = BrokenTracker(interval_seconds=60)
        assert await tracker.run_cycle() is None
        status = tracker.status()
        assert status.cycles_failed == 1
        assert status.last_error == "upstream exploded"

    asyncio.run(run())


def test_cancelling_stopped_tracker_ends_cycle() -> None:
    async def run() -> None:
        tracker = SleepyTracker(seconds=5)
        pending = asyncio.create_task(tracker.run_cycle())
        await asyncio.sleep(0.01)

        assert tracker.cancel()
        assert await pending is None
        assert not tracker.cancel()

    asyncio.run(run())


def test_integrated_runs_odds_before_positions() -> None:
    async def run() -> None:
        log: list[str] = []
        integrated = IntegratedTracker(
            RecordingTracker("odds", log, OddsCycleStats()),
            RecordingTracker("positions", log, PositionCycleStats()),
        )
        result = await integrated.run_cycle()

        assert result is not None
        assert log == ["odds:start", "odds:end", "positions:start", "positions:end"]

    asyncio.run(run())


def test_integrated_waits_for_in_flight_odds_cycle() -> None:
    async def run() -> None:
        log: list[str] = []
        odds = RecordingTracker("odds", log, OddsCycleStats(), delay=0.05)
        positions = RecordingTracker("positions", log, PositionCycleStats())
        integrated = IntegratedTracker(odds, positions)

        standalone = asyncio.create_task(odds.run_cycle())
        await asyncio.sleep(0.01)
        assert odds.status().cycle_in_progress

        result = await integrated.run_cycle()

        assert await standalone == OddsCycleStats()
        assert result is not None
        assert log == [
            "odds:start", "odds:end",
            "odds:start", "odds:end",
            "positions:start", "positions:end",
        ]

    asyncio.run(run())


def test_integrated_skips_positions_when_odds_fail() -> None:
    async def run() -> None:
        log: list[str] = []
        integrated = IntegratedTracker(
            BrokenTracker(interval_seconds=60),
            RecordingTracker("positions", log, PositionCycleStats()),
        )
        result = await integrated.run_cycle()

        assert result is not None
        assert result.odds is None and result.positions is None
        assert log == []

    asyncio.run(run())


def test_odds_cycle_revalues_open_positions() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.markets.upsert_markets([gamma_market("m1"), gamma_market("m2")])
        position = await harness.open_position("chatgpt-4", "m1")
        await harness.open_position("claude-sonnet", "m2")

        feed = harness.price_feed(gamma_transport({
            "m1": gamma_payload("m1", yes=0.5, no=0.5),
            "m2": gamma_payload("m2", yes=0.4, no=0.6),
        }))
        tracker = OddsTracker(
            feed, harness.odds_store, harness.positions, harness.markets,
            request_delay_seconds=0.2, clock=harness.clock,
        )
        async with feed.client:
            stats = await tracker.run_cycle()

        assert stats.markets_checked == 2
        assert stats.markets_updated == 2
        assert stats.positions_revalued == 2
        assert stats.fallbacks == 0
        assert harness.clock.sleeps == [0.2]
        assert (await harness.positions.get_prediction(position.id)).unrealized_pnl == pytest.approx(2.5)
        assert (await harness.odds_store.get_odds("m1")).yes_price == pytest.approx(0.5)
        assert (await harness.markets.get_market("m1")).yes_price == pytest.approx(0.5)
        assert len(await harness.odds_store.get_odds_history("m1")) == 1

    asyncio.run(run())


def test_odds_fallback_keeps_last_known_odds() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        position = await harness.open_position()
        await harness.odds_store.record_odds(
            MarketOdds(market_id="m1", yes_price=0.45, no_price=0.55, last_updated=harness.clock.now())
        )

        feed = harness.price_feed(gamma_transport({}))
        tracker = OddsTracker(feed, harness.odds_store, harness.positions, clock=harness.clock)
        async with feed.client:
            stats = await tracker.run_cycle()

        assert stats.fallbacks == 1
        assert stats.markets_updated == 0
        assert (await harness.odds_store.get_odds("m1")).yes_price == pytest.approx(0.45)
        assert (await harness.positions.get_prediction(position.id)).unrealized_pnl == 0.0

    asyncio.run(run())


def test_odds_history_cleanup() -> None:
    async def run() -> None:
        harness = Harness()
        odds = MarketOdds(market_id="m1", yes_price=0.4, no_price=0.6, last_updated=harness.clock.now())
        await harness.odds_store.record_odds(odds)
        harness.clock.advance(days=8)
        await harness.odds_store.record_odds(odds.model_copy(update={"last_updated": harness.clock.now()}))

        assert await harness.odds_store.cleanup_history(retention_days=7) == 1
        assert len(await harness.odds_store.get_odds_history("m1", hours=24)) == 1

    asyncio.run(run())


def test_position_manager_revalues_then_manages() -> None:
    async def run() -> None:
        harness = Harness(closure_policy=AlwaysProfitTaking())
        await harness.seed_agents()
        await harness.markets.upsert_markets([gamma_market("m1")])
        await harness.open_position()
        await harness.odds_store.record_odds(
            MarketOdds(market_id="m1", yes_price=0.6, no_price=0.4, last_updated=harness.clock.now())
        )

        manager = PositionManager(
            harness.positions, harness.odds_store, harness.markets, clock=harness.clock
        )
        stats = await manager.force_update()

        assert stats.positions_revalued == 1
        assert stats.management.profit_taking == 1
        # 25 shares marked at 0.60
        assert await harness.balance() == pytest.approx(1005.0)
        status = await manager.get_status()
        assert status.open_positions == 0
        assert status.cycles_completed == 1

    asyncio.run(run())


def test_refresh_refetches_held_markets_missing_from_listing() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.markets.upsert_markets([gamma_market("m1")])
        await harness.open_position()

        feed = harness.price_feed(gamma_transport(
            markets={"m1": gamma_payload("m1", yes=1, no=0, closed=True)},
            listing=[gamma_payload("m2")],
        ))
        tracker = MarketRefreshTracker(feed, harness.markets, harness.positions, clock=harness.clock)
        async with feed.client:
            result = await tracker.run_cycle()

        assert result.added == 1
        assert result.newly_resolved == ["m1"]
        assert tracker.stats.resolved == 1
        assert tracker.stats.refreshes == 1
        assert tracker.stats.total_markets == 2
        assert await harness.balance() == pytest.approx(1015.0)

        previous = tracker.reset_stats()
        assert previous.refreshes == 1
        assert tracker.stats.refreshes == 0

    asyncio.run(run())
