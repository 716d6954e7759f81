"""Tests for the balance ledger."""

import asyncio

import pytest

from arena.ledger import net_worth, run_bankruptcy_check
from arena.models import Odds
from arena.outcomes import Declined, DeclineReason, Ok
from arena.roster import AGENT_ROSTER
from arena.storage import AGENT_BALANCES

from factories import Harness


def test_initialize_is_idempotent() -> None:
    async def run() -> None:
        harness = Harness()
        created = await harness.ledger.initialize(AGENT_ROSTER)
        assert len(created) == 8
        assert await harness.ledger.initialize([]) == []
        await harness.seed_agents()
        assert len(await harness.ledger.get_all_balances()) == 8

    asyncio.run(run())


def test_win_scenario_debits_then_credits_payout() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()

        placed = await harness.ledger.place_bet("chatgpt-4", 4.0)
        assert isinstance(placed, Ok)
        assert placed.value.current_balance == pytest.approx(996.0)
        assert placed.value.total_wagered == pytest.approx(4.0)
        assert placed.value.prediction_count == 1

        resolved = await harness.ledger.resolve_bet("chatgpt-4", 4.0, True, 10.0)
        assert isinstance(resolved, Ok)
        balance = resolved.value
        assert balance.current_balance == pytest.approx(1006.0)
        assert balance.total_winnings == pytest.approx(10.0)
        assert balance.win_count == 1
        assert balance.current_streak == 1
        assert balance.win_rate == pytest.approx(100.0)
        assert balance.roi == pytest.approx(150.0)
        assert balance.biggest_win == pytest.approx(6.0)

    asyncio.run(run())


def test_loss_does_not_touch_cash_again() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()

        await harness.ledger.place_bet("chatgpt-4", 5.0)
        resolved = await harness.ledger.resolve_bet("chatgpt-4", 5.0, False, 0.0)
        assert isinstance(resolved, Ok)
        balance = resolved.value
        assert balance.current_balance == pytest.approx(995.0)
        assert balance.total_losses == pytest.approx(5.0)
        assert balance.loss_count == 1
        assert balance.current_streak == -1
        assert balance.win_rate == 0.0
        assert balance.roi == pytest.approx(-100.0)
        assert balance.biggest_loss == pytest.approx(5.0)

    asyncio.run(run())


def test_streak_resets_when_direction_changes() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        ledger = harness.ledger

        for _ in range(2):
            await ledger.place_bet("chatgpt-4", 1.0)
            await ledger.resolve_bet("chatgpt-4", 1.0, False, 0.0)
        assert (await ledger.get_balance("chatgpt-4")).current_streak == -2

        await ledger.place_bet("chatgpt-4", 1.0)
        await ledger.resolve_bet("chatgpt-4", 1.0, True, 2.0)
        balance = await ledger.get_balance("chatgpt-4")
        assert balance.current_streak == 1
        assert balance.win_rate == pytest.approx(100 / 3)

    asyncio.run(run())


def test_place_bet_declines() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        ledger = harness.ledger

        invalid = await ledger.place_bet("chatgpt-4", 0)
        assert isinstance(invalid, Declined)
        assert invalid.reason == DeclineReason.INVALID_AMOUNT

        unknown = await ledger.place_bet("nobody", 1.0)
        assert isinstance(unknown, Declined)
        assert unknown.reason == DeclineReason.UNKNOWN_AGENT

        await harness.store.update(AGENT_BALANCES, "chatgpt-4", {"current_balance": 10.0})
        at_floor = await ledger.place_bet("chatgpt-4", 1.0)
        assert isinstance(at_floor, Declined)
        assert at_floor.reason == DeclineReason.BELOW_BANKRUPTCY_FLOOR

        await harness.store.update(AGENT_BALANCES, "chatgpt-4", {"current_balance": 12.0})
        too_big = await ledger.place_bet("chatgpt-4", 20.0)
        assert isinstance(too_big, Declined)
        assert too_big.reason == DeclineReason.INSUFFICIENT_BALANCE
        assert await harness.balance() == pytest.approx(12.0)
        assert not await ledger.can_agent_make_bet("chatgpt-4", 20.0)

    asyncio.run(run())


def test_concurrent_bets_cannot_overspend() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.store.update(AGENT_BALANCES, "chatgpt-4", {"current_balance": 15.0})

        results = await asyncio.gather(
            *(harness.ledger.place_bet("chatgpt-4", 5.0) for _ in range(5))
        )

        assert sum(1 for r in results if isinstance(r, Ok)) == 1
        assert await harness.balance() == pytest.approx(10.0)

    asyncio.run(run())


def test_resolve_unknown_agent_is_declined() -> None:
    async def run() -> None:
        harness = Harness()
        result = await harness.ledger.resolve_bet("nobody", 1.0, True, 2.0)
        assert isinstance(result, Declined)
        assert result.reason == DeclineReason.UNKNOWN_AGENT

    asyncio.run(run())


def test_refund_reverses_placement() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.ledger.place_bet("chatgpt-4", 3.0)

        refunded = await harness.ledger.refund_bet("chatgpt-4", 3.0)
        assert refunded.current_balance == pytest.approx(1000.0)
        assert refunded.total_wagered == 0.0
        assert refunded.prediction_count == 0

    asyncio.run(run())


def test_reset_agent_balance_keeps_created_at() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        before = await harness.ledger.get_balance("chatgpt-4")

        harness.clock.advance(hours=5)
        await harness.ledger.place_bet("chatgpt-4", 5.0)
        await harness.ledger.resolve_bet("chatgpt-4", 5.0, False, 0.0)

        reset = await harness.ledger.reset_agent_balance("chatgpt-4")
        assert isinstance(reset, Ok)
        assert reset.value.current_balance == pytest.approx(1000.0)
        assert reset.value.loss_count == 0
        assert reset.value.created_at == before.created_at
        assert reset.value.last_updated > before.last_updated

        missing = await harness.ledger.reset_agent_balance("nobody")
        assert isinstance(missing, Declined)

    asyncio.run(run())


def test_leaderboard_sorting() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.ledger.place_bet("gemini-pro", 5.0)
        await harness.ledger.resolve_bet("gemini-pro", 5.0, True, 20.0)
        await harness.ledger.place_bet("grok-beta", 5.0)
        await harness.ledger.resolve_bet("grok-beta", 5.0, False, 0.0)

        board = await harness.ledger.get_leaderboard("balance")
        assert board[0].agent_id == "gemini-pro"
        assert board[-1].agent_id == "grok-beta"

        by_roi = await harness.ledger.get_leaderboard("roi")
        assert by_roi[0].agent_id == "gemini-pro"

        with pytest.raises(ValueError):
            await harness.ledger.get_leaderboard("luck")  # type: ignore[arg-type]

    asyncio.run(run())


def test_bankruptcy_check_flags_agents() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.store.update(AGENT_BALANCES, "grok-beta", {"current_balance": 0.0})
        await harness.store.update(AGENT_BALANCES, "gemini-pro", {"current_balance": 8.0})

        report = await run_bankruptcy_check(harness.ledger, harness.positions)

        assert report.checked == 8
        assert report.newly_bankrupt == ["grok-beta"]
        assert set(report.unable_to_bet) == {"grok-beta", "gemini-pro"}
        assert (await harness.ledger.get_balance("grok-beta")).bankrupt

        again = await run_bankruptcy_check(harness.ledger, harness.positions)
        assert again.newly_bankrupt == []

    asyncio.run(run())


def test_net_worth_counts_marked_open_positions() -> None:
    async def run() -> None:
        harness = Harness()
        await harness.seed_agents()
        await harness.open_position("chatgpt-4", "m1", "YES", bet=10.0, yes=0.4, no=0.6)
        await harness.positions.update_market_odds("m1", Odds(yes_price=0.5, no_price=0.5))

        # 990 cash + 10 stake + 2.5 unrealized
        assert await net_worth(harness.ledger, harness.positions, "chatgpt-4") == pytest.approx(1002.5)
        assert await net_worth(harness.ledger, harness.positions, "nobody") == 0.0

        report = await run_bankruptcy_check(harness.ledger, harness.positions)
        solvency = next(a for a in report.agents if a.agent_id == "chatgpt-4")
        assert solvency.cash == pytest.approx(990.0)
        assert solvency.open_position_value == pytest.approx(12.5)
        assert solvency.net_worth == pytest.approx(1002.5)

    asyncio.run(run())
