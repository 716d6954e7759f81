"""Domain records persisted in the key-value store."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

Side = Literal["YES", "NO"]


class PositionStatus(StrEnum):
    OPEN = "OPEN"
    CLOSED_MANUAL = "CLOSED_MANUAL"
    CLOSED_RESOLVED = "CLOSED_RESOLVED"


class CloseReason(StrEnum):
    PROFIT_TAKING = "PROFIT_TAKING"
    STOP_LOSS = "STOP_LOSS"
    MARKET_RESOLVED = "MARKET_RESOLVED"
    RANDOM_EXIT = "RANDOM_EXIT"


class Odds(BaseModel):
    """A (yes, no) price snapshot."""

    yes_price: float
    no_price: float
    timestamp: datetime | None = None

    def price_for(self, side: Side) -> float:
        return self.yes_price if side == "YES" else self.no_price


class AgentBalance(BaseModel):
    """Bankroll of one agent; only the balance ledger mutates it."""

    agent_id: str
    agent_name: str
    current_balance: float
    initial_balance: float
    total_wagered: float = 0.0
    total_winnings: float = 0.0
    total_losses: float = 0.0
    prediction_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    win_rate: float = 0.0
    roi: float = 0.0
    biggest_win: float = 0.0
    biggest_loss: float = 0.0
    current_streak: int = 0
    bankrupt: bool = False
    last_updated: datetime
    created_at: datetime


class MarketOdds(BaseModel):
    """Latest observed prices for a market."""

    market_id: str
    yes_price: float
    no_price: float
    volume_24h: float = 0.0
    last_updated: datetime
    is_fallback: bool = False

    def to_odds(self) -> Odds:
        return Odds(
            yes_price=self.yes_price,
            no_price=self.no_price,
            timestamp=self.last_updated,
        )


class CachedMarket(BaseModel):
    """A tradable market in the local catalog."""

    polymarket_id: str
    question: str = ""
    description: str = ""
    category: str = ""
    yes_price: float = 0.5
    no_price: float = 0.5
    volume: float = 0.0
    volume_24hr: float = 0.0
    liquidity: float = 0.0
    end_date: datetime | None = None
    active: bool = True
    resolved: bool = False
    archived: bool = False
    analyzed: bool = False
    analyzed_at: datetime | None = None
    outcome: Side | None = None
    source: str = "polymarket"
    created_at: datetime
    updated_at: datetime
    cached_at: datetime


class AgentPrediction(BaseModel):
    """A bet and its position lifecycle: OPEN until closed or resolved."""

    id: str = ""
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

    position_status: PositionStatus = PositionStatus.OPEN
    current_market_odds: Odds | None = None
    unrealized_pnl: float = 0.0

    close_price: float | None = None
    close_reason: CloseReason | None = None
    closed_at: datetime | None = None

    resolved: bool = False
    correct: bool | None = None
    profit_loss: float | None = None
    actual_payout: float | None = None
    outcome: Side | None = None
    resolved_at: datetime | None = None

    created_at: datetime
    updated_at: datetime

    @property
    def entry_price(self) -> float:
        return self.entry_odds.price_for(self.prediction)

    @property
    def is_open(self) -> bool:
        return self.position_status == PositionStatus.OPEN

    @property
    def shares(self) -> float:
        if self.entry_price <= 0:
            return 0.0
        return self.bet_amount / self.entry_price

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
