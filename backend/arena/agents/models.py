"""Data models for analysis sessions."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from arena.models import Side


class Decision(BaseModel):
    """Direction, confidence and rationale produced by the reasoning step."""

    prediction: Side
    confidence: float = Field(ge=0.5, le=1.0)
    reasoning: str = ""


class Assignment(BaseModel):
    agent_id: str
    market_id: str


class AssignmentResult(BaseModel):
    agent_id: str
    market_id: str
    status: Literal["placed", "declined", "failed"]
    detail: str = ""
    prediction_id: str | None = None
    prediction: Side | None = None
    confidence: float | None = None
    bet_amount: float = 0.0


class AnalysisSession(BaseModel):
    session_id: str
    triggered_by: str = "manual"
    started_at: datetime
    completed_at: datetime | None = None
    status: Literal["running", "completed", "failed"] = "running"
    markets_analyzed: int = 0
    predictions_made: int = 0
    total_wagered: float = 0.0
    results: list[AssignmentResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
