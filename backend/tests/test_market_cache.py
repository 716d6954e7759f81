"""Tests for the market cache refresh and resolution trigger."""

import asyncio

import pytest

from arena.markets import determine_market_outcome
from arena.models import PositionStatus
from arena.outcomes import Declined, DeclineReason, Ok

from factories import Harness, gamma_market


def test_determine_market_outcome() -> None:
    assert determine_market_outcome(0.99, 0.01) == "YES"
    assert determine_market_outcome(0.02, 0.98) == "NO"
    assert determine_market_outcome(0.6, 0.4) == "YES"
    assert determine_market_outcome(0.3, 0.7) == "NO"
    assert determine_market_outcome(0.5, 0.5) is None


def test_upsert_counts_added_updated_skipped() -> None:
    async def run() -> None:
        harness = Harness()
        cache = harness.markets

        first = await cache.upsert_markets([gamma_market("m1"), gamma_market("m2")])
        assert (first.added, first.updated, first.skipped, first.total) == (2, 0, 0, 2)

        same = await cache.upsert_markets([gamma_market("m1"), gamma_market("m2")])
        assert (same.added, same.updated, same.skipped) == (0, 0, 2)

        noise = await cache.upsert_markets([gamma_market("m1", yes=0.4005, no=0.5995)])
        assert noise.skipped == 1

        moved = await cache.upsert_markets([gamma_market("m1", yes=0.45, no=0.55)])
        assert moved.updated == 1
        assert (await cache.get_market("m1")).yes_price == pytest.approx(0.45)

        stats = await cache.get_cache_stats()
        assert stats.total_markets == 2
        assert stats.source == "polymarket"
        assert stats.last_refresh is not None

    asyncio.run(run())


def test_small_volume_change_is_not_a_write() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.markets.upsert_markets([gamma_market("m1", volume=50000)])

        small = await harness.markets.upsert_markets([gamma_market("m1", volume=50400)])
        assert small.skipped == 1

        large = await harness.markets.upsert_markets([gamma_market("m1", volume=52000)])
        assert large.updated == 1

    asyncio.run(run())


def test_update_keeps_analyzed_flag_and_created_at() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.markets.upsert_markets([gamma_market("m1")])
        created = (await harness.markets.get_market("m1")).created_at
        await harness.markets.mark_market_analyzed("m1")

        harness.clock.advance(hours=1)
        await harness.markets.upsert_markets([gamma_market("m1", yes=0.7, no=0.3)])

        market = await harness.markets.get_market("m1")
        assert market.analyzed is True
        assert market.created_at == created
        assert market.updated_at > created

    asyncio.run(run())


def test_newly_resolved_market_settles_positions() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.markets.upsert_markets([gamma_market("m1")])
        yes_bet = await harness.open_position("chatgpt-4", side="YES")
        no_bet = await harness.open_position("claude-sonnet", side="NO")

        result = await harness.markets.upsert_markets(
            [gamma_market("m1", yes=1, no=0, closed=True)]
        )

        assert result.newly_resolved == ["m1"]
        settlement = result.settlements[0]
        assert settlement.outcome == "YES"
        assert settlement.predictions_resolved == 2
        assert settlement.errors == []

        assert await harness.balance("chatgpt-4") == pytest.approx(1015.0)
        assert await harness.balance("claude-sonnet") == pytest.approx(990.0)
        for prediction_id in (yes_bet.id, no_bet.id):
            settled = await harness.positions.get_prediction(prediction_id)
            assert settled.resolved
            assert settled.position_status == PositionStatus.CLOSED_RESOLVED
        assert (await harness.markets.get_market("m1")).outcome == "YES"

        replay = await harness.markets.upsert_markets(
            [gamma_market("m1", yes=1, no=0, closed=True)]
        )
        assert replay.newly_resolved == []
        assert await harness.balance("chatgpt-4") == pytest.approx(1015.0)

    asyncio.run(run())


def test_ambiguous_resolution_is_not_settled() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.markets.upsert_markets([gamma_market("m1")])
        position = await harness.open_position()

        result = await harness.markets.upsert_markets(
            [gamma_market("m1", yes=0.5, no=0.5, closed=True)]
        )

        assert result.newly_resolved == ["m1"]
        assert result.settlements[0].outcome is None
        assert result.settlements[0].predictions_resolved == 0
        assert (await harness.positions.get_prediction(position.id)).is_open
        assert await harness.balance() == pytest.approx(990.0)

    asyncio.run(run())


def test_manual_resolution_settles_with_given_outcome() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.markets.upsert_markets([gamma_market("m1")])
        await harness.open_position("claude-sonnet", side="NO")

        settled = await harness.markets.manually_resolve_market("m1", "NO")

        assert isinstance(settled, Ok)
        assert settled.value.predictions_resolved == 1
        assert await harness.balance("claude-sonnet") == pytest.approx(990 + 10 / 0.6)
        market = await harness.markets.get_market("m1")
        assert market.resolved and not market.active

        missing = await harness.markets.manually_resolve_market("nope", "YES")
        assert isinstance(missing, Declined)
        assert missing.reason == DeclineReason.NOT_FOUND

    asyncio.run(run())


def test_unanalyzed_markets_by_volume() -> None:
    async def run() -> None:
        harness = Harness()
        cache = harness.markets
        await cache.upsert_markets([
            gamma_market("small", volume=2000),
            gamma_market("big", volume=90000),
            gamma_market("mid", volume=20000),
            gamma_market("done", volume=99000, closed=True),
        ])
        await cache.mark_market_analyzed("mid")

        unanalyzed = await cache.get_unanalyzed_markets(limit=5)
        assert [m.polymarket_id for m in unanalyzed] == ["big", "small"]

        assert await cache.reset_analyzed_status() == 1
        assert len(await cache.get_unanalyzed_markets(limit=5)) == 3

    asyncio.run(run())


def test_search_and_category() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.markets.upsert_markets([
            gamma_market("m1", question="Will the Fed cut rates?", category="Economics"),
            gamma_market("m2", question="Will it snow in Paris?", category="Weather"),
        ])

        found = await harness.markets.search_markets("fed")
        assert [m.polymarket_id for m in found] == ["m1"]
        weather = await harness.markets.get_markets_by_category("weather")
        assert [m.polymarket_id for m in weather] == ["m2"]

        assert await harness.markets.delete_market("m2")
        assert await harness.markets.clear_cache() == 1

    asyncio.run(run())
