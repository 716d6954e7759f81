"""Balance ledger: the only code path that mutates agent bankrolls.

Cash is debited when a bet is placed and credited when the position is
settled, so ``current_balance`` is cash on hand, never net worth.
"""

from __future__ import annotations

import logging
from typing import Iterable, Literal

from arena.clock import Clock, SystemClock
from arena.config import LedgerConfig
from arena.exceptions import RecordNotFoundError
from arena.models import AgentBalance
from arena.outcomes import Declined, DeclineReason, Ok, Outcome
from arena.roster import AgentProfile
from arena.storage import AGENT_BALANCES, KeyValueStore, Record

logger = logging.getLogger(__name__)

LeaderboardSort = Literal["balance", "roi", "win_rate", "total_winnings"]

_SORT_FIELDS: dict[str, str] = {
    "balance": "current_balance",
    "roi": "roi",
    "win_rate": "win_rate",
    "total_winnings": "total_winnings",
}


def apply_resolution(
    record: Record, bet_amount: float, is_win: bool, payout: float
) -> Record:
    """Fields changed by settling one bet against a balance record."""
    net_gain = payout - bet_amount if is_win else -bet_amount

    current_balance = record["current_balance"]
    total_winnings = record["total_winnings"]
    total_losses = record["total_losses"]
    win_count = record["win_count"]
    loss_count = record["loss_count"]
    streak = record["current_streak"]

    if is_win:
        current_balance += payout
        total_winnings += payout
        win_count += 1
        streak = streak + 1 if streak >= 0 else 1
    else:
        total_losses += bet_amount
        loss_count += 1
        streak = streak - 1 if streak <= 0 else -1

    settled = win_count + loss_count
    total_wagered = record["total_wagered"]
    changes: Record = {
        "current_balance": current_balance,
        "total_winnings": total_winnings,
        "total_losses": total_losses,
        "win_count": win_count,
        "loss_count": loss_count,
        "current_streak": streak,
        "win_rate": win_count / settled * 100 if settled else 0.0,
        "roi": (
            (total_winnings - total_wagered) / total_wagered * 100
            if total_wagered > 0
            else 0.0
        ),
    }
    if net_gain > 0:
        changes["biggest_win"] = max(record["biggest_win"], net_gain)
    elif net_gain < 0:
        changes["biggest_loss"] = max(record["biggest_loss"], abs(net_gain))
    return changes


class BalanceLedger:
    def __init__(
        self,
        store: KeyValueStore,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.config = config or LedgerConfig()
        self.clock = clock or SystemClock()

    @property
    def bankruptcy_floor(self) -> float:
        return self.config.bankruptcy_floor

    def _fresh_record(
        self, agent_id: str, agent_name: str, initial_balance: float
    ) -> AgentBalance:
        now = self.clock.now()
        return AgentBalance(
            agent_id=agent_id,
            agent_name=agent_name,
            current_balance=initial_balance,
            initial_balance=initial_balance,
            last_updated=now,
            created_at=now,
        )

    async def initialize(self, roster: Iterable[AgentProfile]) -> list[str]:
        """Create a balance record for each agent that has none; returns created ids."""
        created: list[str] = []
        for agent in roster:
            if await self.store.get(AGENT_BALANCES, agent.id) is not None:
                continue
            record = self._fresh_record(agent.id, agent.name, agent.initial_balance)
            await self.store.set(AGENT_BALANCES, agent.id, record.model_dump(mode="json"))
            created.append(agent.id)

        if created:
            logger.info(f"Initialized balances for {len(created)} agents")
        return created

    async def get_balance(self, agent_id: str) -> AgentBalance | None:
        record = await self.store.get(AGENT_BALANCES, agent_id)
        return AgentBalance.model_validate(record) if record else None

    async def get_all_balances(self) -> list[AgentBalance]:
        records = await self.store.all(AGENT_BALANCES)
        return [AgentBalance.model_validate(r) for r in records.values()]

    async def can_agent_make_bet(self, agent_id: str, amount: float) -> bool:
        balance = await self.get_balance(agent_id)
        if balance is None:
            return False
        return (
            amount > 0
            and balance.current_balance >= amount
            and balance.current_balance > self.bankruptcy_floor
        )

    async def place_bet(self, agent_id: str, amount: float) -> Outcome[AgentBalance]:
        """Debit a stake, atomically refusing if the balance cannot cover it."""
        if amount <= 0:
            return Declined(DeclineReason.INVALID_AMOUNT, f"Bet amount must be positive: {amount}")

        declined: list[Declined] = []
        now = self.clock.now().isoformat()

        def debit(record: Record) -> Record | None:
            balance = record["current_balance"]
            if balance <= self.bankruptcy_floor:
                declined.append(Declined(
                    DeclineReason.BELOW_BANKRUPTCY_FLOOR,
                    f"Balance ${balance:.2f} is at or below ${self.bankruptcy_floor:.2f}",
                ))
                return None
            if balance - amount < 0:
                declined.append(Declined(
                    DeclineReason.INSUFFICIENT_BALANCE,
                    f"Balance ${balance:.2f} cannot cover ${amount:.2f}",
                ))
                return None
            return {
                "current_balance": balance - amount,
                "total_wagered": record["total_wagered"] + amount,
                "prediction_count": record["prediction_count"] + 1,
                "last_updated": now,
            }

        try:
            updated = await self.store.atomic_update(AGENT_BALANCES, agent_id, debit)
        except RecordNotFoundError:
            logger.warning(f"Cannot place bet for unknown agent {agent_id}")
            return Declined(DeclineReason.UNKNOWN_AGENT, f"No balance for {agent_id}")

        if updated is None:
            logger.info(f"Bet declined for {agent_id}: {declined[0].message}")
            return declined[0]

        logger.info(
            f"💰 {agent_id} placed ${amount:.2f} bet, "
            f"balance now ${updated['current_balance']:.2f}"
        )
        return Ok(AgentBalance.model_validate(updated))

    async def refund_bet(self, agent_id: str, amount: float) -> AgentBalance:
        """Reverse a placement whose position could not be recorded."""
        now = self.clock.now().isoformat()

        def refund(record: Record) -> Record:
            return {
                "current_balance": record["current_balance"] + amount,
                "total_wagered": max(record["total_wagered"] - amount, 0.0),
                "prediction_count": max(record["prediction_count"] - 1, 0),
                "last_updated": now,
            }

        updated = await self.store.atomic_update(AGENT_BALANCES, agent_id, refund)
        logger.warning(f"Refunded ${amount:.2f} to {agent_id}")
        return AgentBalance.model_validate(updated)

    async def resolve_bet(
        self,
        agent_id: str,
        bet_amount: float,
        is_win: bool,
        payout: float,
    ) -> Outcome[AgentBalance]:
        """Credit a settled bet. Losses do not touch cash; it left at placement."""
        now = self.clock.now().isoformat()

        def settle(record: Record) -> Record:
            changes = apply_resolution(record, bet_amount, is_win, payout)
            changes["last_updated"] = now
            return changes

        try:
            updated = await self.store.atomic_update(AGENT_BALANCES, agent_id, settle)
        except RecordNotFoundError:
            logger.warning(f"Cannot resolve bet for unknown agent {agent_id}")
            return Declined(DeclineReason.UNKNOWN_AGENT, f"No balance for {agent_id}")

        logger.info(
            f"{'✅ WIN' if is_win else '❌ LOSS'} {agent_id}: bet ${bet_amount:.2f}, "
            f"payout ${payout if is_win else 0:.2f}, "
            f"balance ${updated['current_balance']:.2f}"
        )
        return Ok(AgentBalance.model_validate(updated))

    async def reset_agent_balance(self, agent_id: str) -> Outcome[AgentBalance]:
        existing = await self.get_balance(agent_id)
        if existing is None:
            return Declined(DeclineReason.UNKNOWN_AGENT, f"No balance for {agent_id}")

        record = self._fresh_record(agent_id, existing.agent_name, existing.initial_balance)
        record.created_at = existing.created_at
        await self.store.set(AGENT_BALANCES, agent_id, record.model_dump(mode="json"))
        logger.info(f"Reset {agent_id} balance to ${existing.initial_balance:.2f}")
        return Ok(record)

    async def mark_bankrupt(self, agent_id: str) -> AgentBalance:
        updated = await self.store.update(
            AGENT_BALANCES,
            agent_id,
            {"bankrupt": True, "last_updated": self.clock.now().isoformat()},
        )
        return AgentBalance.model_validate(updated)

    async def get_leaderboard(self, sort_by: LeaderboardSort = "balance") -> list[AgentBalance]:
        field = _SORT_FIELDS.get(sort_by)
        if field is None:
            raise ValueError(f"Unknown leaderboard sort: {sort_by}")
        balances = await self.get_all_balances()
        return sorted(balances, key=lambda b: getattr(b, field), reverse=True)
