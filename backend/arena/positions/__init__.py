from .closure import ClosurePolicy, NeverClosePolicy, StochasticClosurePolicy
from .models import AgentStats, ManagementStats, PositionReport, PredictionDraft
from .store import PositionStore, compute_unrealized_pnl

__all__ = [
    "ClosurePolicy",
    "NeverClosePolicy",
    "StochasticClosurePolicy",
    "AgentStats",
    "ManagementStats",
    "PositionReport",
    "PredictionDraft",
    "PositionStore",
    "compute_unrealized_pnl",
]
