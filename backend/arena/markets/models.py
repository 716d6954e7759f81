"""Result models for market cache operations."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from arena.models import Side


class SettlementResult(BaseModel):
    """Outcome of settling every prediction tied to one resolved market."""

    market_id: str
    outcome: Side | None = None
    predictions_resolved: int = 0
    positions_closed: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class UpsertResult(BaseModel):
    added: int = 0
    updated: int = 0
    skipped: int = 0
    total: int = 0
    newly_resolved: list[str] = Field(default_factory=list)
    settlements: list[SettlementResult] = Field(default_factory=list)


class CacheStats(BaseModel):
    total_markets: int = 0
    active_markets: int = 0
    resolved_markets: int = 0
    archived_markets: int = 0
    analyzed_markets: int = 0
    unanalyzed_markets: int = 0
    last_refresh: datetime | None = None
    source: str | None = None
