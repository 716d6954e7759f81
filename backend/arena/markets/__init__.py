from .cache import MarketCache, determine_market_outcome, market_changed
from .models import CacheStats, SettlementResult, UpsertResult
from .odds import OddsStore

__all__ = [
    "MarketCache",
    "determine_market_outcome",
    "market_changed",
    "CacheStats",
    "SettlementResult",
    "UpsertResult",
    "OddsStore",
]
