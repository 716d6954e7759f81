"""Inputs and reports for the position store."""

from __future__ import annotations

from pydantic import BaseModel, Field

from arena.models import Odds, Side


class PredictionDraft(BaseModel):
    """A fully decided and sized bet, ready to become an OPEN position."""

    agent_id: str
    agent_name: str
    market_id: str
    market_question: str = ""
    prediction: Side
    confidence: float = Field(ge=0, le=1)
    reasoning: str = ""
    research_cost: float = 0.0
    bet_amount: float = Field(gt=0)
    entry_odds: Odds
    expected_payout: float


class ManagementStats(BaseModel):
    """Summary of one random position-management pass."""

    positions_checked: int = 0
    profit_taking: int = 0
    stop_loss: int = 0
    random_exit: int = 0
    errors: int = 0

    @property
    def positions_closed(self) -> int:
        return self.profit_taking + self.stop_loss + self.random_exit


class AgentStats(BaseModel):
    agent_id: str
    total_predictions: int = 0
    open_positions: int = 0
    resolved_predictions: int = 0
    correct_predictions: int = 0
    accuracy: float = 0.0
    total_profit_loss: float = 0.0
    total_research_cost: float = 0.0
    roi: float = 0.0


class AgentExposure(BaseModel):
    agent_id: str
    open_positions: int = 0
    capital_at_risk: float = 0.0
    unrealized_pnl: float = 0.0


class PositionReport(BaseModel):
    total_predictions: int = 0
    open_positions: int = 0
    closed_manual: int = 0
    closed_resolved: int = 0
    total_unrealized_pnl: float = 0.0
    total_realized_pnl: float = 0.0
    by_reason: dict[str, int] = Field(default_factory=dict)
    by_agent: list[AgentExposure] = Field(default_factory=list)
