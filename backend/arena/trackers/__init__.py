from .base import Tracker, TrackerStatus
from .integrated import IntegratedCycleStats, IntegratedTracker
from .odds import OddsCycleStats, OddsTracker
from .positions import PositionCycleStats, PositionManager
from .refresh import MarketRefreshTracker, RefreshStats

__all__ = [
    "Tracker",
    "TrackerStatus",
    "IntegratedCycleStats",
    "IntegratedTracker",
    "OddsCycleStats",
    "OddsTracker",
    "PositionCycleStats",
    "PositionManager",
    "MarketRefreshTracker",
    "RefreshStats",
]
