from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

NEUTRAL_PRICE = 0.5


def normalize_price(value: Any) -> float | None:
    """Coerce a quoted price into a 0-1 probability.

    Values above 1 are treated as percent/cents quotes.
    """
    if value is None or value == "":
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if price < 0:
        return None
    if price > 1:
        price = price / 100
    return min(price, 1.0)


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_outcome_prices(raw: Any) -> tuple[float, float] | None:
    """Read the two-element ``outcomePrices`` field (JSON string or list)."""
    if raw is None:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Unparseable outcomePrices: {raw!r}")
            return None
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        return None
    yes_price = normalize_price(raw[0])
    no_price = normalize_price(raw[1])
    if yes_price is None or no_price is None:
        return None
    return yes_price, no_price


def _parse_tokens(tokens: Any) -> tuple[float, float] | None:
    """Read prices from a ``tokens`` list of {outcome, price} entries."""
    if not isinstance(tokens, list):
        return None
    prices: dict[str, float] = {}
    for token in tokens:
        if not isinstance(token, dict):
            continue
        outcome = str(token.get("outcome", "")).upper()
        price = normalize_price(token.get("price"))
        if outcome in ("YES", "NO") and price is not None:
            prices[outcome] = price
    if "YES" in prices and "NO" in prices:
        return prices["YES"], prices["NO"]
    if "YES" in prices:
        return prices["YES"], 1 - prices["YES"]
    if "NO" in prices:
        return 1 - prices["NO"], prices["NO"]
    return None


def normalize_odds(yes_price: float, no_price: float) -> tuple[float, float]:
    """Scale a price pair so it sums to 1; neutral if both are zero."""
    total = yes_price + no_price
    if total <= 0:
        return NEUTRAL_PRICE, NEUTRAL_PRICE
    return yes_price / total, no_price / total


def extract_prices(data: dict[str, Any]) -> tuple[float, float] | None:
    """Best-effort (yes, no) price pair from a Gamma market payload.

    Order of preference: outcomePrices, tokens, explicit yes/no fields,
    best bid/ask midpoint, last trade price.
    """
    prices = _parse_outcome_prices(data.get("outcomePrices"))
    if prices:
        return prices

    prices = _parse_tokens(data.get("tokens"))
    if prices:
        return prices

    yes_price = normalize_price(data.get("yes_price"))
    no_price = normalize_price(data.get("no_price"))
    if yes_price is not None and no_price is not None:
        return yes_price, no_price

    best_bid = normalize_price(data.get("bestBid"))
    best_ask = normalize_price(data.get("bestAsk"))
    if best_bid is not None and best_ask is not None:
        mid = (best_bid + best_ask) / 2
        return mid, 1 - mid

    last_trade = normalize_price(data.get("lastTradePrice"))
    if last_trade is not None:
        return last_trade, 1 - last_trade

    return None


class GammaMarket(BaseModel):
    """A market as listed by the Gamma API, flattened to cacheable fields."""

    id: str
    question: str = ""
    description: str = ""
    category: str = ""
    slug: str = ""
    yes_price: float = NEUTRAL_PRICE
    no_price: float = NEUTRAL_PRICE
    volume: float = 0.0
    volume_24hr: float = 0.0
    liquidity: float = 0.0
    end_date: datetime | None = None
    active: bool = True
    closed: bool = False
    archived: bool = False

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v: Any) -> datetime | None:
        if v is None or v == "":
            return None
        if isinstance(v, datetime):
            return v
        try:
            parsed = datetime.fromisoformat(str(v).replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @property
    def resolved(self) -> bool:
        return self.closed

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> GammaMarket:
        prices = extract_prices(data) or (NEUTRAL_PRICE, NEUTRAL_PRICE)
        volume = to_float(data.get("volumeNum", data.get("volume")))
        return cls(
            id=str(data.get("id", "")),
            question=data.get("question") or "",
            description=data.get("description") or "",
            category=data.get("category") or "",
            slug=data.get("slug") or "",
            yes_price=prices[0],
            no_price=prices[1],
            volume=volume,
            volume_24hr=to_float(data.get("volume24hr", data.get("volume_24hr"))),
            liquidity=to_float(data.get("liquidityNum", data.get("liquidity"))),
            end_date=data.get("endDate") or data.get("end_date"),
            active=bool(data.get("active", True)),
            closed=bool(data.get("closed", False)),
            archived=bool(data.get("archived", False)),
        )
