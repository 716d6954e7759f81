from .client import PolymarketClient
from .config import PolymarketConfig
from .exceptions import (
    PolymarketAPIError,
    PolymarketNotFoundError,
    PolymarketRateLimitError,
)
from .feed import PriceFeed
from .models import GammaMarket, extract_prices, normalize_odds, normalize_price

__all__ = [
    "PolymarketClient",
    "PolymarketConfig",
    "PolymarketAPIError",
    "PolymarketNotFoundError",
    "PolymarketRateLimitError",
    "PriceFeed",
    "GammaMarket",
    "extract_prices",
    "normalize_odds",
    "normalize_price",
]
