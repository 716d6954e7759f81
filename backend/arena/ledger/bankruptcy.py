"""Bankruptcy check: flags agents that can no longer keep playing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .balances import BalanceLedger

if TYPE_CHECKING:
    from arena.positions.store import PositionStore

logger = logging.getLogger(__name__)


class AgentSolvency(BaseModel):
    agent_id: str
    agent_name: str
    cash: float
    open_position_value: float
    net_worth: float
    can_bet: bool
    bankrupt: bool


class BankruptcyReport(BaseModel):
    checked: int = 0
    newly_bankrupt: list[str] = Field(default_factory=list)
    unable_to_bet: list[str] = Field(default_factory=list)
    agents: list[AgentSolvency] = Field(default_factory=list)


async def net_worth(ledger: BalanceLedger, positions: PositionStore, agent_id: str) -> float:
    """Cash plus the marked value of open positions. Computed, never stored."""
    balance = await ledger.get_balance(agent_id)
    if balance is None:
        return 0.0
    return balance.current_balance + await positions.get_open_position_value(agent_id)


async def run_bankruptcy_check(
    ledger: BalanceLedger, positions: PositionStore
) -> BankruptcyReport:
    """Mark agents with no cash left and list those under the betting floor."""
    report = BankruptcyReport()

    for balance in await ledger.get_all_balances():
        report.checked += 1
        worth = await net_worth(ledger, positions, balance.agent_id)
        can_bet = balance.current_balance > ledger.bankruptcy_floor
        bankrupt = balance.bankrupt

        if balance.current_balance <= 0 and not balance.bankrupt:
            await ledger.mark_bankrupt(balance.agent_id)
            report.newly_bankrupt.append(balance.agent_id)
            bankrupt = True
            logger.warning(f"💀 {balance.agent_name} is bankrupt")
        if not can_bet:
            report.unable_to_bet.append(balance.agent_id)

        report.agents.append(
            AgentSolvency(
                agent_id=balance.agent_id,
                agent_name=balance.agent_name,
                cash=balance.current_balance,
                open_position_value=worth - balance.current_balance,
                net_worth=worth,
                can_bet=can_bet,
                bankrupt=bankrupt,
            )
        )

    logger.info(
        f"Bankruptcy check: {report.checked} agents, "
        f"{len(report.unable_to_bet)} below floor, "
        f"{len(report.newly_bankrupt)} newly bankrupt"
    )
    return report
