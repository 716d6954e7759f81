"""Position store: prediction records and their OPEN -> CLOSED_* lifecycle.

Every record is settled against the balance ledger at most once. The status
check and the status write happen inside one ``atomic_update`` so a
position-manager close and a market-resolution settle cannot both credit.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

from arena.clock import Clock, SystemClock
from arena.exceptions import RecordNotFoundError
from arena.ledger.balances import BalanceLedger
from arena.models import AgentPrediction, CloseReason, Odds, PositionStatus, Side
from arena.outcomes import Declined, DeclineReason, Ok, Outcome
from arena.storage import AGENT_PREDICTIONS, METADATA, KeyValueStore, Record

from .closure import ClosurePolicy, StochasticClosurePolicy
from .models import (
    AgentExposure,
    AgentStats,
    ManagementStats,
    PositionReport,
    PredictionDraft,
)

logger = logging.getLogger(__name__)

_OPEN = PositionStatus.OPEN.value


def compute_unrealized_pnl(
    side: Side, bet_amount: float, entry_odds: Odds, current_odds: Odds
) -> float:
    """Constant-shares mark: shares bought at entry, valued at the current price."""
    entry_price = entry_odds.price_for(side)
    if entry_price <= 0:
        return 0.0
    shares = bet_amount / entry_price
    return shares * current_odds.price_for(side) - bet_amount


def _is_open(record: Record) -> bool:
    return record.get("position_status") == _OPEN


class PositionStore:
    def __init__(
        self,
        store: KeyValueStore,
        ledger: BalanceLedger,
        clock: Clock | None = None,
        closure_policy: ClosurePolicy | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.closure_policy = closure_policy or StochasticClosurePolicy()

    def _now(self) -> str:
        return self.clock.now().isoformat()

    async def _touch_metadata(self, added: int = 0) -> None:
        meta = await self.store.get(METADATA, "predictions") or {"total_predictions": 0}
        meta["total_predictions"] = meta.get("total_predictions", 0) + added
        meta["last_update"] = self._now()
        meta["version"] = meta.get("version", 0) + 1
        await self.store.set(METADATA, "predictions", meta)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def save_prediction(self, draft: PredictionDraft) -> AgentPrediction:
        """Write a new OPEN position. Persistence errors propagate to the caller."""
        now = self.clock.now()
        prediction = AgentPrediction(
            **draft.model_dump(),
            position_status=PositionStatus.OPEN,
            current_market_odds=Odds(
                yes_price=draft.entry_odds.yes_price,
                no_price=draft.entry_odds.no_price,
                timestamp=now,
            ),
            unrealized_pnl=0.0,
            resolved=False,
            created_at=now,
            updated_at=now,
        )
        try:
            prediction.id = await self.store.push(AGENT_PREDICTIONS, prediction.to_record())
        except Exception as e:
            logger.error(
                f"Failed to save prediction for {draft.agent_id} on {draft.market_id}: {e}"
            )
            raise

        await self._touch_metadata(added=1)
        logger.info(
            f"📝 {draft.agent_name} -> {draft.prediction} on {draft.market_id} "
            f"(${draft.bet_amount:.2f} @ {prediction.entry_price:.3f}, id={prediction.id})"
        )
        return prediction

    # ------------------------------------------------------------------
    # Mark-to-market
    # ------------------------------------------------------------------

    async def update_market_odds(self, market_id: str, odds: Odds) -> int:
        """Revalue every OPEN position on a market; returns positions written."""
        snapshot = Odds(
            yes_price=odds.yes_price,
            no_price=odds.no_price,
            timestamp=odds.timestamp or self.clock.now(),
        )
        updates: dict[str, Record] = {}
        now = self._now()

        for position in await self.get_open_positions(market_id):
            pnl = compute_unrealized_pnl(
                position.prediction, position.bet_amount, position.entry_odds, snapshot
            )
            updates[position.id] = {
                "current_market_odds": snapshot.model_dump(mode="json"),
                "unrealized_pnl": pnl,
                "updated_at": now,
            }

        if not updates:
            return 0

        # Positions closed since the read keep their crystallized mark.
        written = await self.store.batch_update(AGENT_PREDICTIONS, updates, where=_is_open)
        logger.debug(f"Marked {written} positions on {market_id} to market")
        return written

    # ------------------------------------------------------------------
    # Closure
    # ------------------------------------------------------------------

    async def close_position(
        self, prediction_id: str, reason: CloseReason
    ) -> Outcome[AgentPrediction]:
        """Close an OPEN position at its last mark and credit the ledger."""
        declined: list[Declined] = []
        now = self._now()

        def close(record: Record) -> Record | None:
            if not _is_open(record) or record.get("resolved"):
                declined.append(Declined(
                    DeclineReason.NOT_OPEN,
                    f"Position {prediction_id} is {record.get('position_status')}",
                ))
                return None

            position = AgentPrediction.model_validate(record)
            current = position.current_market_odds
            close_price = current.price_for(position.prediction) if current else position.entry_price
            pnl = position.unrealized_pnl
            status = (
                PositionStatus.CLOSED_RESOLVED
                if reason == CloseReason.MARKET_RESOLVED
                else PositionStatus.CLOSED_MANUAL
            )
            return {
                "position_status": status.value,
                "close_price": close_price,
                "close_reason": reason.value,
                "closed_at": now,
                "profit_loss": pnl,
                "actual_payout": position.bet_amount + pnl,
                "updated_at": now,
            }

        try:
            updated = await self.store.atomic_update(AGENT_PREDICTIONS, prediction_id, close)
        except RecordNotFoundError:
            return Declined(DeclineReason.NOT_FOUND, f"No prediction {prediction_id}")

        if updated is None:
            logger.warning(f"Close skipped: {declined[0].message}")
            return declined[0]

        position = AgentPrediction.model_validate(updated)
        pnl = position.profit_loss or 0.0
        await self.ledger.resolve_bet(
            position.agent_id,
            position.bet_amount,
            pnl > 0,
            position.bet_amount + max(pnl, 0.0),
        )
        logger.info(
            f"🔒 Closed {prediction_id} ({reason.value}) for {position.agent_id}: "
            f"P&L ${pnl:+.2f}"
        )
        return Ok(position)

    async def resolve_prediction(
        self,
        prediction_id: str,
        outcome: Side,
        final_odds: Odds | None = None,
    ) -> Outcome[AgentPrediction]:
        """Settle a prediction against the market's true outcome.

        Winners redeem at the entry-implied ``expected_payout``. A position
        already closed manually only records the outcome; its cash was
        settled at close.
        """
        declined: list[Declined] = []
        settles_cash: list[bool] = []
        now = self._now()

        def resolve(record: Record) -> Record | None:
            if record.get("resolved"):
                declined.append(Declined(
                    DeclineReason.ALREADY_RESOLVED,
                    f"Prediction {prediction_id} is already resolved",
                ))
                return None

            position = AgentPrediction.model_validate(record)
            correct = position.prediction == outcome
            changes: Record = {
                "resolved": True,
                "correct": correct,
                "outcome": outcome,
                "resolved_at": now,
                "updated_at": now,
            }
            if not position.is_open:
                settles_cash.append(False)
                return changes

            payout = position.expected_payout if correct else 0.0
            if final_odds is not None:
                close_price = final_odds.price_for(position.prediction)
            else:
                close_price = 1.0 if correct else 0.0
            settles_cash.append(True)
            changes.update({
                "position_status": PositionStatus.CLOSED_RESOLVED.value,
                "close_reason": CloseReason.MARKET_RESOLVED.value,
                "close_price": close_price,
                "closed_at": now,
                "actual_payout": payout,
                "profit_loss": payout - position.bet_amount,
            })
            return changes

        try:
            updated = await self.store.atomic_update(AGENT_PREDICTIONS, prediction_id, resolve)
        except RecordNotFoundError:
            return Declined(DeclineReason.NOT_FOUND, f"No prediction {prediction_id}")

        if updated is None:
            logger.warning(f"Resolve skipped: {declined[0].message}")
            return declined[0]

        position = AgentPrediction.model_validate(updated)
        if settles_cash[0]:
            await self.ledger.resolve_bet(
                position.agent_id,
                position.bet_amount,
                bool(position.correct),
                position.actual_payout or 0.0,
            )
        logger.info(
            f"🏁 Resolved {prediction_id} as {outcome}: {position.agent_id} "
            f"{'correct' if position.correct else 'wrong'}"
            f"{'' if settles_cash[0] else ' (already closed)'}"
        )
        return Ok(position)

    async def random_position_management(self) -> ManagementStats:
        """Run the closure policy over every OPEN position once."""
        stats = ManagementStats()
        now = self.clock.now()

        for position in await self.get_open_positions():
            stats.positions_checked += 1
            pnl_pct = position.unrealized_pnl / position.bet_amount * 100
            age_hours = (now - position.created_at).total_seconds() / 3600

            reason = self.closure_policy.decide(pnl_pct, age_hours)
            if reason is None:
                continue

            try:
                result = await self.close_position(position.id, reason)
            except Exception as e:
                stats.errors += 1
                logger.error(f"Failed to close {position.id}: {e}", exc_info=True)
                continue

            if not result:
                continue
            if reason == CloseReason.PROFIT_TAKING:
                stats.profit_taking += 1
            elif reason == CloseReason.STOP_LOSS:
                stats.stop_loss += 1
            else:
                stats.random_exit += 1

        if stats.positions_closed:
            logger.info(
                f"Position management closed {stats.positions_closed}/"
                f"{stats.positions_checked} (profit={stats.profit_taking}, "
                f"stop={stats.stop_loss}, random={stats.random_exit})"
            )
        return stats

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(records: list[Record]) -> list[AgentPrediction]:
        return [AgentPrediction.model_validate(r) for r in records]

    @staticmethod
    def _newest_first(predictions: list[AgentPrediction]) -> list[AgentPrediction]:
        return sorted(predictions, key=lambda p: p.created_at, reverse=True)

    async def get_prediction(self, prediction_id: str) -> AgentPrediction | None:
        record = await self.store.get(AGENT_PREDICTIONS, prediction_id)
        return AgentPrediction.model_validate(record) if record else None

    async def get_predictions_by_agent(
        self, agent_id: str, limit: int = 50
    ) -> list[AgentPrediction]:
        records = await self.store.query(AGENT_PREDICTIONS, "agent_id", agent_id)
        return self._newest_first(self._parse(records))[:limit]

    async def get_predictions_by_market(self, market_id: str) -> list[AgentPrediction]:
        records = await self.store.query(AGENT_PREDICTIONS, "market_id", market_id)
        return self._newest_first(self._parse(records))

    async def get_recent_predictions(self, limit: int = 20) -> list[AgentPrediction]:
        records = await self.store.all(AGENT_PREDICTIONS)
        return self._newest_first(self._parse(list(records.values())))[:limit]

    async def get_open_positions(self, market_id: str | None = None) -> list[AgentPrediction]:
        records = await self.store.query(AGENT_PREDICTIONS, "position_status", _OPEN)
        if market_id is not None:
            records = [r for r in records if r.get("market_id") == market_id]
        return self._parse(records)

    async def get_unresolved_predictions(self, market_id: str) -> list[AgentPrediction]:
        records = await self.store.query(AGENT_PREDICTIONS, "market_id", market_id)
        return self._parse([r for r in records if not r.get("resolved")])

    async def has_agent_predicted(self, agent_id: str, market_id: str) -> bool:
        records = await self.store.query(AGENT_PREDICTIONS, "agent_id", agent_id)
        return any(r.get("market_id") == market_id for r in records)

    async def get_markets_with_open_positions(self) -> list[str]:
        return sorted({p.market_id for p in await self.get_open_positions()})

    async def calculate_unrealized_pnl(self, agent_id: str) -> float:
        return sum(
            p.unrealized_pnl
            for p in await self.get_open_positions()
            if p.agent_id == agent_id
        )

    async def get_open_position_value(self, agent_id: str) -> float:
        """Current value of an agent's open positions (stake plus mark)."""
        return sum(
            p.bet_amount + p.unrealized_pnl
            for p in await self.get_open_positions()
            if p.agent_id == agent_id
        )

    async def get_agent_stats(self, agent_id: str) -> AgentStats:
        predictions = self._parse(
            await self.store.query(AGENT_PREDICTIONS, "agent_id", agent_id)
        )
        resolved = [p for p in predictions if p.resolved]
        correct = [p for p in resolved if p.correct]
        total_pnl = sum(p.profit_loss or 0.0 for p in predictions if not p.is_open)
        research_cost = sum(p.research_cost for p in predictions)

        return AgentStats(
            agent_id=agent_id,
            total_predictions=len(predictions),
            open_positions=sum(1 for p in predictions if p.is_open),
            resolved_predictions=len(resolved),
            correct_predictions=len(correct),
            accuracy=len(correct) / len(resolved) * 100 if resolved else 0.0,
            total_profit_loss=total_pnl,
            total_research_cost=research_cost,
            roi=total_pnl / research_cost * 100 if research_cost > 0 else 0.0,
        )

    async def position_report(self) -> PositionReport:
        predictions = self._parse(list((await self.store.all(AGENT_PREDICTIONS)).values()))
        statuses = Counter(p.position_status for p in predictions)
        reasons = Counter(p.close_reason.value for p in predictions if p.close_reason)
        exposure: dict[str, AgentExposure] = defaultdict(lambda: AgentExposure(agent_id=""))

        for p in predictions:
            if not p.is_open:
                continue
            entry = exposure[p.agent_id]
            entry.agent_id = p.agent_id
            entry.open_positions += 1
            entry.capital_at_risk += p.bet_amount
            entry.unrealized_pnl += p.unrealized_pnl

        return PositionReport(
            total_predictions=len(predictions),
            open_positions=statuses[PositionStatus.OPEN],
            closed_manual=statuses[PositionStatus.CLOSED_MANUAL],
            closed_resolved=statuses[PositionStatus.CLOSED_RESOLVED],
            total_unrealized_pnl=sum(p.unrealized_pnl for p in predictions if p.is_open),
            total_realized_pnl=sum(p.profit_loss or 0.0 for p in predictions if not p.is_open),
            by_reason=dict(reasons),
            by_agent=sorted(exposure.values(), key=lambda e: e.capital_at_risk, reverse=True),
        )

    async def clear_all_predictions(self) -> int:
        count = await self.store.clear(AGENT_PREDICTIONS)
        await self.store.set(
            METADATA,
            "predictions",
            {"total_predictions": 0, "last_update": self._now(), "version": 0},
        )
        logger.warning(f"Cleared {count} predictions")
        return count
