"""Analysis orchestrator: assigns fresh markets to agents and opens positions.

Per assignment the order is: duplicate check, reasoning, sizing, atomic
debit, position write. The debit comes before the write so two sessions
cannot both spend the same cash; if the write then fails the stake is
refunded.
"""

from __future__ import annotations

import logging
import math
import random
from datetime import timedelta
from typing import Sequence
from uuid import uuid4

from arena.clock import Clock, SystemClock
from arena.config import LedgerConfig, OrchestratorConfig, SizingConfig
from arena.ledger.balances import BalanceLedger
from arena.ledger.sizing import adjust_bet_for_psychology, calculate_bet_amount
from arena.markets.cache import MarketCache
from arena.models import CachedMarket, Odds
from arena.outcomes import Declined, Failed, Ok
from arena.positions.models import PredictionDraft
from arena.positions.store import PositionStore
from arena.roster import AGENT_ROSTER, AgentProfile
from arena.storage import ANALYSIS_SESSIONS, KeyValueStore

from .classifier import Classifier
from .models import AnalysisSession, Assignment, AssignmentResult

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Generate unique analysis session ID with session_ prefix."""
    return f"session_{uuid4().hex[:8]}"


def expected_payout_for(bet_amount: float, entry_price: float) -> float:
    """Payout if the side wins: shares bought at entry redeem at $1."""
    if entry_price <= 0:
        return bet_amount * 2
    return bet_amount / entry_price


class AnalysisOrchestrator:
    def __init__(
        self,
        store: KeyValueStore,
        ledger: BalanceLedger,
        positions: PositionStore,
        markets: MarketCache,
        classifier: Classifier,
        roster: Sequence[AgentProfile] = AGENT_ROSTER,
        config: OrchestratorConfig | None = None,
        sizing: SizingConfig | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.positions = positions
        self.markets = markets
        self.classifier = classifier
        self.roster = list(roster)
        self.config = config or OrchestratorConfig()
        self.sizing = sizing or SizingConfig()
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()
        self._in_flight: set[tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Market selection
    # ------------------------------------------------------------------

    def is_suitable(self, market: CachedMarket) -> bool:
        if not market.active or market.resolved or market.archived:
            return False
        if market.volume < self.config.min_volume:
            return False
        if market.end_date is not None:
            remaining = market.end_date - self.clock.now()
            if remaining < timedelta(days=self.config.min_days_to_close):
                return False
        return True

    def filter_markets(self, markets: list[CachedMarket]) -> list[CachedMarket]:
        return [m for m in markets if self.is_suitable(m)]

    def distribute_agents(
        self, markets: list[CachedMarket], agents: list[AgentProfile]
    ) -> list[Assignment]:
        """Round-robin a shuffled roster over the markets.

        Each market gets up to min(max_agents_per_market, ceil(agents/markets))
        agents so different agents tend to land on different markets.
        """
        if not markets or not agents:
            return []

        per_market = min(
            self.config.max_agents_per_market,
            math.ceil(len(agents) / len(markets)),
            len(agents),
        )
        shuffled = list(agents)
        self.rng.shuffle(shuffled)

        assignments: list[Assignment] = []
        index = 0
        for market in markets:
            for _ in range(per_market):
                agent = shuffled[index % len(shuffled)]
                assignments.append(Assignment(agent_id=agent.id, market_id=market.polymarket_id))
                index += 1
        return assignments

    # ------------------------------------------------------------------
    # Single assignment
    # ------------------------------------------------------------------

    def _result(
        self, agent: AgentProfile, market: CachedMarket, status: str, detail: str, **extra
    ) -> AssignmentResult:
        return AssignmentResult(
            agent_id=agent.id,
            market_id=market.polymarket_id,
            status=status,
            detail=detail,
            **extra,
        )

    async def analyze_assignment(
        self, agent: AgentProfile, market: CachedMarket
    ) -> AssignmentResult:
        """Run one agent on one market. Business declines are results, not errors."""
        claim = (agent.id, market.polymarket_id)
        if claim in self._in_flight or await self.positions.has_agent_predicted(*claim):
            logger.info(f"🔄 {agent.name} already predicted on {market.polymarket_id}")
            return self._result(agent, market, "declined", "duplicate_bet")

        self._in_flight.add(claim)
        try:
            return await self._place(agent, market)
        finally:
            self._in_flight.discard(claim)

    async def _place(self, agent: AgentProfile, market: CachedMarket) -> AssignmentResult:
        decision = await self.classifier.classify(agent, market)

        balance = await self.ledger.get_balance(agent.id)
        if balance is None:
            return self._result(agent, market, "declined", "unknown_agent")

        decided = {"prediction": decision.prediction, "confidence": decision.confidence}
        floor = self.ledger.bankruptcy_floor
        bet = calculate_bet_amount(decision.confidence, balance.current_balance, floor, self.sizing)
        if bet <= 0:
            logger.info(
                f"💸 {agent.name}: no bet (confidence {decision.confidence:.2f}, "
                f"balance ${balance.current_balance:.2f})"
            )
            return self._result(agent, market, "declined", "low_confidence_or_floor", **decided)

        bet = adjust_bet_for_psychology(bet, balance, self.sizing)
        bet = min(bet, balance.current_balance - floor)
        if bet <= 0 or not await self.ledger.can_agent_make_bet(agent.id, bet):
            return self._result(agent, market, "declined", "insufficient_balance", **decided)

        placed = await self.ledger.place_bet(agent.id, bet)
        if not isinstance(placed, Ok):
            reason = placed.reason.value if isinstance(placed, Declined) else placed.message
            return self._result(agent, market, "declined", reason, **decided)

        entry_odds = Odds(
            yes_price=market.yes_price,
            no_price=market.no_price,
            timestamp=self.clock.now(),
        )
        draft = PredictionDraft(
            agent_id=agent.id,
            agent_name=agent.name,
            market_id=market.polymarket_id,
            market_question=market.question,
            prediction=decision.prediction,
            confidence=decision.confidence,
            reasoning=decision.reasoning,
            research_cost=self.config.research_cost,
            bet_amount=bet,
            entry_odds=entry_odds,
            expected_payout=expected_payout_for(bet, entry_odds.price_for(decision.prediction)),
        )
        try:
            prediction = await self.positions.save_prediction(draft)
        except Exception:
            await self.ledger.refund_bet(agent.id, bet)
            raise

        return self._result(
            agent,
            market,
            "placed",
            f"${bet:.2f} on {decision.prediction}",
            prediction_id=prediction.id,
            bet_amount=bet,
            **decided,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def _run_session(
        self, session: AnalysisSession, markets: list[CachedMarket]
    ) -> AnalysisSession:
        by_id = {agent.id: agent for agent in self.roster}
        market_by_id = {m.polymarket_id: m for m in markets}
        assignments = self.distribute_agents(markets, self.roster)

        for assignment in assignments:
            agent = by_id[assignment.agent_id]
            market = market_by_id[assignment.market_id]
            try:
                result = await self.analyze_assignment(agent, market)
            except Exception as e:
                failure = Failed(e)
                logger.error(
                    f"{agent.name} analysis of {market.polymarket_id} failed: {e}", exc_info=True
                )
                session.errors.append(f"{agent.id}/{market.polymarket_id}: {failure.message}")
                result = self._result(agent, market, "failed", failure.message)

            session.results.append(result)
            if result.status == "placed":
                session.predictions_made += 1
                session.total_wagered += result.bet_amount

        for market in markets:
            try:
                await self.markets.mark_market_analyzed(market.polymarket_id)
            except Exception as e:
                session.errors.append(f"mark analyzed {market.polymarket_id}: {e}")
                logger.error(f"Failed to mark {market.polymarket_id} analyzed: {e}")
        session.markets_analyzed = len(markets)
        return session

    async def _finish(self, session: AnalysisSession, status: str = "completed") -> AnalysisSession:
        session.status = status
        session.completed_at = self.clock.now()
        await self.store.set(ANALYSIS_SESSIONS, session.session_id, session.model_dump(mode="json"))
        logger.info(
            f"✅ Session {session.session_id} {status}: {session.markets_analyzed} markets, "
            f"{session.predictions_made} predictions, ${session.total_wagered:.2f} wagered, "
            f"{len(session.errors)} errors"
        )
        return session

    def _start(self, triggered_by: str) -> AnalysisSession:
        return AnalysisSession(
            session_id=generate_session_id(),
            triggered_by=triggered_by,
            started_at=self.clock.now(),
        )

    async def trigger_analysis(self, triggered_by: str = "admin") -> AnalysisSession:
        """Pick fresh markets, spread agents over them and place bets."""
        session = self._start(triggered_by)
        logger.info(f"🚀 Starting analysis session {session.session_id}")

        try:
            await self.ledger.initialize(self.roster)
            candidates = await self.markets.get_unanalyzed_markets(self.config.markets_per_session)
            if not candidates:
                logger.warning("No unanalyzed markets available; consider resetting analyzed status")
                return await self._finish(session)

            markets = self.filter_markets(candidates)
            if not markets:
                logger.warning("No suitable markets found for analysis")
                return await self._finish(session)

            await self._run_session(session, markets)
        except Exception as e:
            logger.error(f"Analysis session {session.session_id} failed: {e}", exc_info=True)
            session.errors.append(str(e))
            return await self._finish(session, "failed")

        return await self._finish(session)

    async def trigger_single_market_analysis(
        self, market_id: str, triggered_by: str = "admin"
    ) -> AnalysisSession:
        """Run the whole roster, capped per market, against one named market."""
        session = self._start(triggered_by)
        try:
            await self.ledger.initialize(self.roster)
            market = await self.markets.get_market(market_id)
            if market is None:
                session.errors.append(f"Market {market_id} not found")
                return await self._finish(session, "failed")
            if not self.is_suitable(market):
                session.errors.append(f"Market {market_id} is not suitable for analysis")
                return await self._finish(session)

            await self._run_session(session, [market])
        except Exception as e:
            logger.error(f"Single-market analysis of {market_id} failed: {e}", exc_info=True)
            session.errors.append(str(e))
            return await self._finish(session, "failed")

        return await self._finish(session)

    async def reset_analyzed_status(self) -> tuple[int, int]:
        """Make every market eligible again and wipe all predictions.

        Returns (markets reset, predictions cleared).
        """
        markets_reset = await self.markets.reset_analyzed_status()
        predictions_cleared = await self.positions.clear_all_predictions()
        return markets_reset, predictions_cleared

    async def get_recent_sessions(self, limit: int = 10) -> list[AnalysisSession]:
        sessions = [
            AnalysisSession.model_validate(r)
            for r in (await self.store.all(ANALYSIS_SESSIONS)).values()
        ]
        return sorted(sessions, key=lambda s: s.started_at, reverse=True)[:limit]
